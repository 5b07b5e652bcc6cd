from __future__ import annotations

import pytest

from biofield_auth.utils.validation import normalize_email, validate_email, validate_name, validate_password


def test_normalize_email():
    assert normalize_email("  Ana.Souza@Example.COM ") == "ana.souza@example.com"


@pytest.mark.parametrize("email", ["ana@example.com", "a.b+tag@sub.example.com.br"])
def test_valid_emails(email):
    assert validate_email(email).is_valid is True


@pytest.mark.parametrize("email", ["", "   ", "ana", "ana@", "@example.com", "ana@example", "ana @example.com"])
def test_invalid_emails(email):
    result = validate_email(email)
    assert result.is_valid is False
    assert result.error_message


def test_password_minimum_length():
    assert validate_password("12345").is_valid is False
    assert validate_password("123456").is_valid is True
    assert validate_password("12345678", min_length=10).is_valid is False
    assert validate_password("").error_message == "Password is required."


def test_name_rejects_control_characters():
    assert validate_name("Ana Souza").is_valid is True
    assert validate_name("   ").is_valid is False
    assert validate_name("Ana\nSouza").is_valid is False
