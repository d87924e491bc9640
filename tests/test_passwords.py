"""Unit tests for auth/passwords.py -- the credential codec.

Covers:
- hash/verify round trip and mismatch
- salted hashing: two hashes of one password differ, both verify
- verify_password fails closed on malformed digests and logs the cause
- hash_password wraps engine failures in HashingError without leaking detail
- generate_random_password length and charset
"""

import logging
from unittest.mock import patch

import pytest

from auth.passwords import generate_random_password, hash_password, verify_password
from core.errors import HashingError


class TestHashAndVerify:
    def test_verify_accepts_matching_password(self):
        digest = hash_password("correct horse")
        assert verify_password("correct horse", digest) is True

    def test_verify_rejects_other_password(self):
        digest = hash_password("correct horse")
        assert verify_password("battery staple", digest) is False

    def test_hash_is_salted(self):
        first = hash_password("same-password")
        second = hash_password("same-password")
        assert first != second
        assert verify_password("same-password", first)
        assert verify_password("same-password", second)

    def test_hash_is_bcrypt_format(self):
        assert hash_password("pw").startswith("$2")

    def test_unicode_password_round_trips(self):
        digest = hash_password("pässwörd-✓")
        assert verify_password("pässwörd-✓", digest)


class TestFailClosed:
    def test_malformed_digest_returns_false(self, caplog):
        with caplog.at_level(logging.WARNING, logger="teamgate.auth"):
            assert verify_password("anything", "not-a-bcrypt-hash") is False
        assert any("verification error" in r.message for r in caplog.records)

    def test_empty_digest_returns_false(self):
        assert verify_password("anything", "") is False

    def test_engine_failure_in_verify_returns_false(self):
        with patch("auth.passwords.bcrypt.checkpw", side_effect=RuntimeError("boom")):
            assert verify_password("pw", hash_password("pw")) is False

    def test_engine_failure_in_hash_raises_generic_error(self, caplog):
        with patch("auth.passwords.bcrypt.hashpw", side_effect=RuntimeError("secret internals")):
            with caplog.at_level(logging.ERROR, logger="teamgate.auth"):
                with pytest.raises(HashingError) as excinfo:
                    hash_password("pw")
        assert "secret internals" not in str(excinfo.value)
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert caplog.records


class TestRandomPassword:
    def test_default_length(self):
        assert len(generate_random_password()) == 12

    def test_custom_length(self):
        assert len(generate_random_password(40)) == 40

    def test_charset(self):
        allowed = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789!@#$%^&*()-_=+")
        assert set(generate_random_password(200)) <= allowed

    def test_values_differ(self):
        assert generate_random_password(32) != generate_random_password(32)

    def test_rejects_non_positive_length(self):
        with pytest.raises(ValueError):
            generate_random_password(0)
