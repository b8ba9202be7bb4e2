"""Tests for registration, credential checks and sessions."""
import dataclasses

import pytest

from storefront.constants import ROLE_CUSTOMER, ROLE_SUPER_ADMIN
from storefront.db import sqlite as db
from storefront.errors import AuthenticationError, Conflict, ValidationError
from storefront.services import auth


def test_password_hash_round_trip():
    encoded = auth.hash_password("rahasia123")

    assert encoded.startswith("pbkdf2_sha256$")
    assert "rahasia123" not in encoded
    assert auth.verify_password("rahasia123", encoded)
    assert not auth.verify_password("salah", encoded)
    assert not auth.verify_password("rahasia123", "garbage")


def test_same_password_gets_different_salts():
    assert auth.hash_password("rahasia123") != auth.hash_password("rahasia123")


class TestRegister:
    def test_register_creates_customer(self, test_settings):
        u = auth.register_user("siti@example.com", "rahasia123", "Siti")

        assert u["role"] == ROLE_CUSTOMER
        assert "password" not in u

    @pytest.mark.parametrize(
        "email,password,name",
        [
            ("", "rahasia123", "Siti"),
            ("siti@example.com", "", "Siti"),
            ("siti@example.com", "rahasia123", ""),
            ("not-an-email", "rahasia123", "Siti"),
            ("siti@example.com", "12345", "Siti"),
        ],
    )
    def test_register_validation(self, test_settings, email, password, name):
        with pytest.raises(ValidationError):
            auth.register_user(email, password, name)

    def test_duplicate_email_conflicts(self, test_settings):
        auth.register_user("siti@example.com", "rahasia123", "Siti")
        with pytest.raises(Conflict):
            auth.register_user("siti@example.com", "lainnya123", "Siti 2")


class TestAuthenticate:
    def test_good_credentials(self, test_settings):
        created = auth.register_user("siti@example.com", "rahasia123", "Siti")

        u = auth.authenticate("siti@example.com", "rahasia123")

        assert u["id"] == created["id"]
        assert "password" not in u

    @pytest.mark.parametrize("email,password", [("siti@example.com", "salah123"), ("nobody@example.com", "rahasia123"), ("", "")])
    def test_bad_credentials(self, test_settings, email, password):
        auth.register_user("siti@example.com", "rahasia123", "Siti")
        with pytest.raises(AuthenticationError):
            auth.authenticate(email, password)


def test_session_lifecycle(test_settings, users):
    token = auth.start_session(users["a"]["id"])

    assert auth.session_user(token)["id"] == users["a"]["id"]
    assert auth.session_user(None) is None
    assert auth.session_user("unknown") is None

    auth.end_session(token)
    assert auth.session_user(token) is None


def test_expired_session_is_ignored(test_settings, users):
    db.create_session("old", users["a"]["id"], "2000-01-01 00:00:00")

    assert auth.session_user("old") is None


def test_ensure_super_admin(test_settings, monkeypatch):
    configured = dataclasses.replace(
        test_settings, super_admin_email="root@example.com", super_admin_password="superpass"
    )
    monkeypatch.setattr(auth, "settings", configured)

    auth.ensure_super_admin()
    auth.ensure_super_admin()

    u = auth.authenticate("root@example.com", "superpass")
    assert u["role"] == ROLE_SUPER_ADMIN
    assert len(db.list_users()) == 1
