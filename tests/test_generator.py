"""Tests for random and deterministic password generation."""

import string

import pytest

from keyvault import config
from keyvault.errors import EmptyCharset
from keyvault.generator import (
    MODE_DETERMINISTIC, MODE_RANDOM, SiteContext, build_charset, generate_deterministic,
    generate_password, generate_random, is_generation_error,
)
from keyvault.models import PasswordPolicy

NOTHING_SELECTED = PasswordPolicy(include_uppercase=False, include_lowercase=False,
                                  include_numbers=False, include_symbols=False)


class TestCharset:

    def test_default_excludes_ambiguous(self):
        charset = build_charset(PasswordPolicy())
        assert not set(charset) & set(config.PASSWORD_GENERATOR_AMBIGUOUS_CHARS)
        assert "a" in charset and "Z" in charset and "9" in charset and "!" in charset

    def test_ambiguous_allowed(self):
        charset = build_charset(PasswordPolicy(exclude_ambiguous=False))
        assert set(config.PASSWORD_GENERATOR_AMBIGUOUS_CHARS) <= set(charset)

    def test_custom_characters_deduplicated(self):
        policy = PasswordPolicy(include_uppercase=False, include_numbers=False, include_symbols=False,
                                custom_characters="abc~~")
        charset = build_charset(policy)
        assert charset.count("a") == 1
        assert charset.endswith("~")
        assert len(charset) == len(set(charset))

    def test_exclusions_win_over_custom(self):
        policy = PasswordPolicy(include_uppercase=False, include_lowercase=False, include_symbols=False,
                                custom_characters="x", exclude_characters="x2")
        assert build_charset(policy) == "3456789"

    def test_empty_charset(self):
        with pytest.raises(EmptyCharset):
            build_charset(NOTHING_SELECTED)
        with pytest.raises(EmptyCharset):
            build_charset(PasswordPolicy(include_uppercase=False, include_lowercase=False,
                                         include_symbols=False, exclude_characters=string.digits))


class TestRandom:

    def test_outputs_are_unique_and_within_charset(self):
        policy = PasswordPolicy(length=20)
        allowed = set(build_charset(policy))
        outputs = [generate_random(policy) for _ in range(1000)]
        assert len(set(outputs)) == 1000
        for password in outputs:
            assert len(password) == 20
            assert set(password) <= allowed

    def test_single_class(self):
        policy = PasswordPolicy(length=50, include_uppercase=False, include_lowercase=False,
                                include_symbols=False)
        assert set(generate_random(policy)) <= set("23456789")


class TestDeterministic:

    def test_reproducible(self):
        policy = PasswordPolicy(length=24)
        first = generate_deterministic("master", "example.com", policy)
        assert first == generate_deterministic("master", "example.com", policy)
        assert len(first) == 24
        assert set(first) <= set(build_charset(policy))

    def test_longer_than_digest(self):
        password = generate_deterministic("master", "example.com", PasswordPolicy(length=100))
        assert len(password) == 100
        assert password[:32] == password[32:64]

    def test_inputs_change_output(self):
        policy = PasswordPolicy()
        base = generate_deterministic("master", "example.com", policy)
        assert generate_deterministic("master2", "example.com", policy) != base
        assert generate_deterministic("master", "example.org", policy) != base

    @pytest.mark.parametrize("change", [
        {"length": 17},
        {"include_uppercase": False},
        {"include_lowercase": False},
        {"include_numbers": False},
        {"include_symbols": False},
        {"exclude_ambiguous": False},
        {"custom_characters": "~"},
        {"exclude_characters": "q"},
    ])
    def test_every_policy_field_changes_output(self, change):
        base = generate_deterministic("master", "example.com", PasswordPolicy())
        changed = generate_deterministic("master", "example.com", PasswordPolicy(**change))
        assert changed != base

    def test_empty_inputs_rejected(self):
        with pytest.raises(ValueError):
            generate_deterministic("", "example.com", PasswordPolicy())
        with pytest.raises(ValueError):
            generate_deterministic("master", "", PasswordPolicy())


class TestGeneratePassword:

    def test_default_is_random(self):
        password = generate_password()
        assert len(password) == config.PASSWORD_GENERATOR_DEFAULT_LENGTH
        assert not is_generation_error(password)

    def test_accepts_policy_mapping(self):
        assert len(generate_password({"length": 8})) == 8

    def test_empty_charset_random(self):
        assert generate_password(NOTHING_SELECTED) == config.GENERATOR_ERROR_EMPTY_CHARSET

    def test_missing_context(self):
        assert generate_password(mode=MODE_DETERMINISTIC) == config.GENERATOR_ERROR_MISSING_CONTEXT
        context = SiteContext("master", "")
        assert generate_password(mode=MODE_DETERMINISTIC, context=context) == \
            config.GENERATOR_ERROR_MISSING_CONTEXT

    def test_empty_charset_deterministic(self):
        context = SiteContext("master", "example.com")
        assert generate_password(NOTHING_SELECTED, MODE_DETERMINISTIC, context) == \
            config.GENERATOR_ERROR_INVALID_CHARSET

    def test_invalid_policy_and_mode(self):
        assert generate_password({"length": 0}) == config.GENERATOR_ERROR_GENERIC
        assert generate_password(mode="bogus") == config.GENERATOR_ERROR_GENERIC

    def test_deterministic_matches_direct_call(self):
        context = SiteContext("master", "example.com")
        assert generate_password(None, MODE_DETERMINISTIC, context) == \
            generate_deterministic("master", "example.com", PasswordPolicy())

    def test_sentinels_are_flagged(self):
        for text in config.GENERATOR_ERROR_TEXTS:
            assert is_generation_error(text)
        assert not is_generation_error(generate_password(mode=MODE_RANDOM))
