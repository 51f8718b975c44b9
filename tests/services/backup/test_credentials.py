"""Tests for CredentialStore and CredentialCipher."""

from datetime import datetime, timedelta

import pytest
from cryptography.fernet import Fernet

from storefront.db.models import StorageCredential
from storefront.services.backup.credentials import CredentialCipher, CredentialStore, TenantCredential

NOW = datetime(2026, 10, 19, 12, 0, 0)


class TestTenantCredential:
    def test_usable(self):
        assert TenantCredential("t", "tok").is_usable(NOW)

    def test_expired_with_refresh_token_is_usable(self):
        credential = TenantCredential("t", "tok", refresh_token="r", expires_at=NOW - timedelta(minutes=1))
        assert credential.is_expired(NOW)
        assert credential.is_usable(NOW)

    def test_expired_without_refresh_token(self):
        credential = TenantCredential("t", "tok", expires_at=NOW - timedelta(minutes=1))
        assert not credential.is_usable(NOW)

    def test_no_access_token(self):
        assert not TenantCredential("t", "", refresh_token="r").is_usable(NOW)


class TestCredentialCipher:
    def test_plaintext_without_key(self):
        cipher = CredentialCipher("")
        assert not cipher.enabled
        assert cipher.encrypt("secret") == "secret"

    def test_round_trip(self):
        cipher = CredentialCipher(Fernet.generate_key().decode())
        encrypted = cipher.encrypt("secret")
        assert encrypted != "secret"
        assert cipher.decrypt(encrypted) == "secret"

    def test_wrong_key(self):
        encrypted = CredentialCipher(Fernet.generate_key().decode()).encrypt("secret")
        with pytest.raises(ValueError):
            CredentialCipher(Fernet.generate_key().decode()).decrypt(encrypted)


class TestCredentialStore:
    def test_save_and_get(self, session_factory):
        store = CredentialStore(session_factory)
        store.save(TenantCredential("t1", "tok", refresh_token="r", folder_id="f"))
        credential = store.get("t1")
        assert credential.access_token == "tok"
        assert credential.folder_id == "f"
        assert store.get("missing") is None

    def test_tokens_encrypted_at_rest(self, session_factory):
        store = CredentialStore(session_factory, encryption_key=Fernet.generate_key().decode())
        store.save(TenantCredential("t1", "tok", refresh_token="r"))
        with session_factory() as session:
            row = session.query(StorageCredential).filter(StorageCredential.user_id == "t1").one()
            assert row.access_token != "tok"
            assert row.refresh_token != "r"
        assert store.get("t1").refresh_token == "r"

    def test_list_usable(self, session_factory):
        store = CredentialStore(session_factory)
        store.save(TenantCredential("b", "tok"))
        store.save(TenantCredential("a", "tok", expires_at=NOW - timedelta(days=1)))
        store.save(TenantCredential("c", "tok", refresh_token="r", expires_at=NOW - timedelta(days=1)))
        assert [c.tenant_id for c in store.list_usable(NOW)] == ["b", "c"]

    def test_list_usable_skips_undecryptable(self, session_factory):
        CredentialStore(session_factory, encryption_key=Fernet.generate_key().decode()).save(TenantCredential("old", "tok"))
        store = CredentialStore(session_factory, encryption_key=Fernet.generate_key().decode())
        store.save(TenantCredential("new", "tok"))
        assert [c.tenant_id for c in store.list_usable(NOW)] == ["new"]

    def test_get_usable_undecryptable_is_none(self, session_factory):
        CredentialStore(session_factory, encryption_key=Fernet.generate_key().decode()).save(TenantCredential("old", "tok"))
        store = CredentialStore(session_factory, encryption_key=Fernet.generate_key().decode())
        assert store.get_usable("old", NOW) is None
        with pytest.raises(ValueError):
            store.get("old")

    def test_update_access_token(self, session_factory):
        store = CredentialStore(session_factory)
        store.save(TenantCredential("t1", "old", refresh_token="r1"))
        store.update_access_token("t1", "new", NOW + timedelta(hours=1))
        credential = store.get("t1")
        assert credential.access_token == "new"
        assert credential.refresh_token == "r1"
        assert credential.expires_at == NOW + timedelta(hours=1)

        store.update_access_token("t1", "newer", NOW, refresh_token="r2")
        assert store.get("t1").refresh_token == "r2"
