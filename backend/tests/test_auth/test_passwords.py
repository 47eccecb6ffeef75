"""Unit tests for password hashing and verification."""

from app.auth.passwords import hash_password, verify_password


class TestHashPassword:
    """Test password hashing."""

    def test_hash_differs_from_plaintext(self):
        hashed = hash_password("mypassword")
        assert isinstance(hashed, str)
        assert hashed != "mypassword"

    def test_same_password_different_salts(self):
        """Hashing the same password twice should produce different hashes (different salts)."""
        assert hash_password("samepassword") != hash_password("samepassword")


class TestVerifyPassword:
    """Test password verification."""

    def test_correct_password_verifies(self):
        hashed = hash_password("testpass123")
        assert verify_password("testpass123", hashed) is True

    def test_wrong_password_fails(self):
        hashed = hash_password("testpass123")
        assert verify_password("wrongpassword", hashed) is False

    def test_missing_hash_never_matches(self):
        """Social-login accounts have no password hash."""
        assert verify_password("anything", None) is False
        assert verify_password("anything", "") is False

    def test_unicode_password(self):
        hashed = hash_password("pässwördü")
        assert verify_password("pässwördü", hashed) is True
        assert verify_password("password", hashed) is False
