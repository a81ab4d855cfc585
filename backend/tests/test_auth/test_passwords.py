"""Unit tests for password hashing and verification."""

from app.auth.passwords import hash_password, verify_password


class TestHashPassword:
    def test_hash_is_salted_bcrypt(self):
        hash1 = hash_password("samepassword")
        hash2 = hash_password("samepassword")
        assert hash1.startswith("$2")
        assert hash1 != hash2


class TestVerifyPassword:
    def test_correct_and_wrong_password(self):
        hashed = hash_password("testpass123")
        assert verify_password("testpass123", hashed) is True
        assert verify_password("wrongpassword", hashed) is False

    def test_unicode_password(self):
        hashed = hash_password("pässwördü")
        assert verify_password("pässwördü", hashed) is True
        assert verify_password("password", hashed) is False

    def test_password_longer_than_72_bytes(self):
        """bcrypt only reads 72 bytes; longer input is truncated, not rejected."""
        long_pass = "a" * 100
        hashed = hash_password(long_pass)
        assert verify_password(long_pass, hashed) is True
        assert verify_password("a" * 72, hashed) is True
