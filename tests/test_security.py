"""
Tests for security module - InputSanitizer, SecureString and OutputRedactor.
"""

import os
import pytest

from cfmta.errors import ValidationError
from cfmta.security import InputSanitizer, OutputRedactor, SecureString


def test_sanitize_space_guid_valid():
    """Test valid space GUIDs are accepted and lower-cased."""
    assert InputSanitizer.sanitize_space_guid(
        "0D8B2EF4-3C1E-4B5A-9A4E-6F1D2C3B4A59"
    ) == "0d8b2ef4-3c1e-4b5a-9a4e-6f1d2c3b4a59"


def test_sanitize_space_guid_invalid():
    """Test malformed space GUIDs raise ValidationError."""
    invalid_guids = [
        "",  # Empty
        "space-123",  # Not a UUID
        "0d8b2ef4-3c1e-4b5a-9a4e",  # Truncated
        "0d8b2ef4-3c1e-4b5a-9a4e-6f1d2c3b4a59/x",  # Trailing segment
    ]

    for guid in invalid_guids:
        with pytest.raises(ValidationError):
            InputSanitizer.sanitize_space_guid(guid)


def test_sanitize_namespace_valid():
    """Test valid namespaces are accepted."""
    for name in ["blue", "green-2", "a", "Feature01"]:
        assert InputSanitizer.sanitize_namespace(name) == name


def test_sanitize_namespace_empty_means_none():
    """Test that an empty namespace is the same as no namespace."""
    assert InputSanitizer.sanitize_namespace("") is None
    assert InputSanitizer.sanitize_namespace(None) is None


def test_sanitize_namespace_invalid():
    """Test namespaces that are not host labels."""
    invalid_names = [
        "-leading",
        "trailing-",
        "has space",
        "has.dot",
        "under_score",
        "a" * 64,
    ]

    for name in invalid_names:
        with pytest.raises(ValidationError):
            InputSanitizer.sanitize_namespace(name)


def test_sanitize_mta_id():
    """Test MTA id validation."""
    assert InputSanitizer.sanitize_mta_id("com.example.shop") == "com.example.shop"

    with pytest.raises(ValidationError):
        InputSanitizer.sanitize_mta_id("")

    with pytest.raises(ValidationError):
        InputSanitizer.sanitize_mta_id("a/b")

    with pytest.raises(ValidationError):
        InputSanitizer.sanitize_mta_id("x" * 129)


def test_sanitize_archive_path_requires_existing():
    """Test that the archive path must exist."""
    with pytest.raises(ValidationError):
        InputSanitizer.sanitize_archive_path("/nonexistent/app.mtar")


def test_sanitize_archive_path_requires_file(tmp_path):
    """Test that the archive path must be a file, not a directory."""
    with pytest.raises(ValidationError):
        InputSanitizer.sanitize_archive_path(str(tmp_path))


def test_sanitize_archive_path_returns_absolute(tmp_path, monkeypatch):
    """Test that relative paths are resolved."""
    (tmp_path / "app.mtar").write_bytes(b"PK")
    monkeypatch.chdir(tmp_path)

    result = InputSanitizer.sanitize_archive_path("app.mtar")

    assert os.path.isabs(result)
    assert os.path.basename(result) == "app.mtar"


def test_sanitize_url():
    """Test URL validation."""
    url = "https://deploy-service.cf.example.com"
    assert InputSanitizer.sanitize_url(url) == url

    for bad in ["", "ftp://host/file.mtar", "deploy-service.cf.example.com", "https://"]:
        with pytest.raises(ValidationError):
            InputSanitizer.sanitize_url(bad)


def test_secure_string_hides_value():
    """Test that SecureString never renders its value."""
    token = SecureString("eyJhbGciOi")
    assert "eyJ" not in str(token)
    assert "eyJ" not in repr(token)
    assert token.get_value() == "eyJhbGciOi"


def test_secure_string_clear():
    """Test that a cleared SecureString refuses access."""
    with SecureString("secret") as token:
        pass

    assert token.is_cleared()
    with pytest.raises(ValueError):
        token.get_value()


def test_redactor_replaces_secrets():
    """Test that registered secrets are replaced in text."""
    redactor = OutputRedactor([SecureString("secret123")])
    assert redactor.redact("Bearer secret123 rejected") == "Bearer [REDACTED] rejected"


def test_redactor_ignores_cleared_secrets():
    """Test that adding a cleared secret registers nothing."""
    secret = SecureString("gone")
    secret.clear()
    redactor = OutputRedactor()
    redactor.add(secret)
    assert redactor.sensitive_values == []
    assert redactor.redact("gone") == "gone"


def test_redactor_handles_empty_text():
    """Test that empty text passes through."""
    redactor = OutputRedactor([SecureString("x")])
    assert redactor.redact("") == ""


def test_secure_string_bearer_and_coerce():
    """Test bearer header formatting and wrapping of plain strings."""
    token = SecureString.coerce("tok")
    assert isinstance(token, SecureString)
    assert token.bearer() == "Bearer tok"
    assert SecureString.coerce(token) is token
    assert SecureString.coerce(None) is None


def test_redactor_prefers_longest_secret():
    """Test that overlapping secrets are replaced whole."""
    redactor = OutputRedactor([SecureString("abc"), SecureString("abcdef")])
    assert redactor.redact("key=abcdef") == "key=[REDACTED]"
