"""Per-tenant storage credentials.

Tokens are kept in the ``storage_credentials`` table, Fernet-encrypted when
a credential key is configured (generate with
``python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from storefront.config.logging import get_logger
from storefront.db.models import StorageCredential, utcnow

logger = get_logger("backup.credentials")


@dataclass
class TenantCredential:
    tenant_id: str
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    folder_id: str | None = None
    spreadsheet_id: str | None = None
    provider: str = "gdrive"

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return self.expires_at is not None and self.expires_at <= now

    def is_usable(self, now: datetime | None = None) -> bool:
        """Has an access token that is still valid or can be refreshed."""
        if not self.access_token:
            return False
        return not self.is_expired(now) or bool(self.refresh_token)


class CredentialCipher:
    """Encrypt/decrypt tokens at rest. A blank key means plaintext."""

    def __init__(self, key: str = "") -> None:
        self._fernet = Fernet(key.encode()) if key else None

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, plaintext: str | None) -> str | None:
        if not plaintext or self._fernet is None:
            return plaintext
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str | None) -> str | None:
        if not ciphertext or self._fernet is None:
            return ciphertext
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken as e:
            logger.error("Failed to decrypt credential - key may have changed")
            raise ValueError("Failed to decrypt credential") from e


class CredentialStore:
    """Read tenant credentials; persist refreshed access tokens."""

    def __init__(self, session_factory: Callable[[], Session], encryption_key: str = "") -> None:
        self._session_factory = session_factory
        self._cipher = CredentialCipher(encryption_key)

    def _to_credential(self, row: StorageCredential) -> TenantCredential:
        return TenantCredential(
            tenant_id=row.user_id,
            access_token=self._cipher.decrypt(row.access_token) or "",
            refresh_token=self._cipher.decrypt(row.refresh_token),
            expires_at=row.expires_at,
            folder_id=row.folder_id,
            spreadsheet_id=row.spreadsheet_id,
            provider=row.provider,
        )

    def get(self, tenant_id: str) -> TenantCredential | None:
        with self._session_factory() as session:
            row = session.query(StorageCredential).filter(StorageCredential.user_id == tenant_id).first()
            return self._to_credential(row) if row else None

    def get_usable(self, tenant_id: str, now: datetime | None = None) -> TenantCredential | None:
        """Credential for tenant, or None unless a decryptable and usable one is stored."""
        try:
            credential = self.get(tenant_id)
        except ValueError:
            logger.warning(f"Credential for tenant {tenant_id} could not be decrypted")
            return None
        if credential is None or not credential.is_usable(now):
            return None
        return credential

    def list_usable(self, now: datetime | None = None) -> list[TenantCredential]:
        with self._session_factory() as session:
            rows = session.query(StorageCredential).order_by(StorageCredential.user_id).all()
            credentials = []
            for row in rows:
                try:
                    credentials.append(self._to_credential(row))
                except ValueError:
                    logger.warning(f"Skipping tenant {row.user_id}: credential could not be decrypted")
        return [c for c in credentials if c.is_usable(now)]

    def save(self, credential: TenantCredential) -> None:
        """Insert or update a tenant's credential."""
        with self._session_factory() as session:
            row = session.query(StorageCredential).filter(StorageCredential.user_id == credential.tenant_id).first()
            if row is None:
                row = StorageCredential(user_id=credential.tenant_id)
                session.add(row)
            row.provider = credential.provider
            row.access_token = self._cipher.encrypt(credential.access_token)
            row.refresh_token = self._cipher.encrypt(credential.refresh_token)
            row.expires_at = credential.expires_at
            row.folder_id = credential.folder_id
            row.spreadsheet_id = credential.spreadsheet_id
            session.commit()

    def update_access_token(
        self,
        tenant_id: str,
        access_token: str,
        expires_at: datetime | None,
        refresh_token: str | None = None,
    ) -> None:
        """Persist a refreshed access token (and a rotated refresh token, if any)."""
        with self._session_factory() as session:
            row = session.query(StorageCredential).filter(StorageCredential.user_id == tenant_id).first()
            if row is None:
                logger.warning(f"No credential row to update for tenant {tenant_id}")
                return
            row.access_token = self._cipher.encrypt(access_token)
            row.expires_at = expires_at
            if refresh_token:
                row.refresh_token = self._cipher.encrypt(refresh_token)
            session.commit()
        logger.info("Stored refreshed access token", extra={"tenant_id": tenant_id})
