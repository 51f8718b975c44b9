"""Google Drive storage backend (Drive v3 REST over httpx).

Uploads are two-step: create the file metadata in the tenant's folder, then
PATCH the media content. A 401 triggers one OAuth refresh and a replay of
the request; a second failure propagates as StorageAuthError.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable

import httpx

from storefront.config.logging import get_logger
from storefront.db.models import utcnow
from storefront.services.backup.credentials import TenantCredential
from storefront.services.backup.errors import (
    StorageAuthError,
    StorageError,
    StorageNotFoundError,
    TransientStorageError,
)
from storefront.services.backup.storage import StoredObject

logger = get_logger("backup.storage")

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"

FILE_FIELDS = "id,name,size,createdTime,webViewLink"

# (tenant_id, access_token, expires_at, rotated_refresh_token)
TokenRefreshCallback = Callable[[str, str, datetime, "str | None"], None]


def _error_message(response: httpx.Response) -> str:
    try:
        error_data = response.json()
    except ValueError:
        return response.text
    error = error_data.get("error") if isinstance(error_data, dict) else None
    if isinstance(error, dict):
        return error.get("message", response.text)
    if isinstance(error, str):
        return error_data.get("error_description", error)
    return response.text


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class GoogleDriveStorage:
    """Store archives as files in the tenant's Google Drive folder."""

    def __init__(
        self,
        credential: TenantCredential,
        *,
        client_id: str = "",
        client_secret: str = "",
        token_url: str = GOOGLE_TOKEN_URL,
        api_url: str = DRIVE_API_URL,
        upload_url: str = DRIVE_UPLOAD_URL,
        timeout: float = 60.0,
        on_token_refresh: TokenRefreshCallback | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.tenant_id = credential.tenant_id
        self.folder_id = credential.folder_id
        self._access_token = credential.access_token
        self._refresh_token = credential.refresh_token
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._api_url = api_url.rstrip("/")
        self._upload_url = upload_url.rstrip("/")
        self._on_token_refresh = on_token_refresh
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout)

    # ── auth ────────────────────────────────────────────────────────────

    def refresh_access_token(self) -> bool:
        """Exchange the refresh token for a new access token.

        Returns False when no refresh is possible or Google rejects it.
        """
        if not self._refresh_token or not (self._client_id and self._client_secret):
            return False

        try:
            response = self._client.post(
                self._token_url,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "refresh_token": self._refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as e:
            logger.warning(f"Token refresh request failed: {e}", extra={"tenant_id": self.tenant_id})
            return False

        if response.status_code != 200:
            # Refresh failed - token might be revoked
            logger.warning(
                f"Token refresh rejected ({response.status_code}): {_error_message(response)}",
                extra={"tenant_id": self.tenant_id},
            )
            return False

        token_data = response.json()
        self._access_token = token_data["access_token"]
        expires_at = utcnow() + timedelta(seconds=token_data.get("expires_in", 3600))
        # Refresh tokens don't change unless Google sends a new one
        new_refresh = token_data.get("refresh_token")
        if new_refresh:
            self._refresh_token = new_refresh

        if self._on_token_refresh:
            self._on_token_refresh(self.tenant_id, self._access_token, expires_at, new_refresh)
        return True

    # ── transport ───────────────────────────────────────────────────────

    def _send(self, method: str, url: str, headers: dict[str, str] | None = None, **kwargs: Any) -> httpx.Response:
        merged = {"Authorization": f"Bearer {self._access_token}", **(headers or {})}
        try:
            return self._client.request(method, url, headers=merged, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientStorageError(f"Google Drive request timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientStorageError(f"Google Drive connection error: {e}") from e

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        response = self._send(method, url, **kwargs)
        if response.status_code == 401:
            logger.info("Access token rejected, attempting refresh", extra={"tenant_id": self.tenant_id})
            if not self.refresh_access_token():
                raise StorageAuthError(f"Google Drive authorization failed: {_error_message(response)}", 401)
            response = self._send(method, url, **kwargs)
        return self._check(response)

    @staticmethod
    def _check(response: httpx.Response) -> httpx.Response:
        status = response.status_code
        if status < 400:
            return response

        message = f"Google Drive error ({status}): {_error_message(response)}"
        if status == 404:
            raise StorageNotFoundError(message, status)
        if status == 429 or status >= 500:
            raise TransientStorageError(message, status)
        if status == 403 and "rate" in message.lower():
            raise TransientStorageError(message, status)
        if status in (401, 403):
            raise StorageAuthError(message, status)
        raise StorageError(message, status)

    # ── operations ──────────────────────────────────────────────────────

    def _to_object(self, data: dict[str, Any]) -> StoredObject:
        size = data.get("size")
        return StoredObject(
            id=data["id"],
            name=data.get("name", ""),
            size=int(size) if size is not None else None,
            created_at=_parse_time(data.get("createdTime")),
            web_link=data.get("webViewLink"),
        )

    def upload(self, name: str, data: bytes, content_type: str) -> StoredObject:
        metadata: dict[str, Any] = {"name": name, "mimeType": content_type}
        if self.folder_id:
            metadata["parents"] = [self.folder_id]

        created = self._request("POST", f"{self._api_url}/files", params={"fields": FILE_FIELDS}, json=metadata)
        file_id = created.json()["id"]

        try:
            uploaded = self._request(
                "PATCH",
                f"{self._upload_url}/files/{file_id}",
                params={"uploadType": "media", "fields": FILE_FIELDS},
                headers={"Content-Type": content_type},
                content=data,
            )
        except StorageError:
            # Don't leave an empty placeholder behind
            try:
                self.delete(file_id)
            except StorageError as cleanup_error:
                logger.warning(f"Failed to remove incomplete upload {file_id}: {cleanup_error}")
            raise

        stored = self._to_object(uploaded.json())
        if stored.size is None:
            stored.size = len(data)
        logger.info(f"Uploaded {name} to Google Drive ({len(data)} bytes)", extra={"tenant_id": self.tenant_id})
        return stored

    def find(self, name: str) -> list[StoredObject]:
        escaped = name.replace("\\", "\\\\").replace("'", "\\'")
        query = f"name = '{escaped}' and trashed = false"
        if self.folder_id:
            query += f" and '{self.folder_id}' in parents"

        response = self._request(
            "GET",
            f"{self._api_url}/files",
            params={"q": query, "fields": f"files({FILE_FIELDS})", "pageSize": 10},
        )
        return [self._to_object(f) for f in response.json().get("files", [])]

    def download(self, object_id: str) -> bytes:
        response = self._request("GET", f"{self._api_url}/files/{object_id}", params={"alt": "media"})
        return response.content

    def delete(self, object_id: str) -> None:
        self._request("DELETE", f"{self._api_url}/files/{object_id}")
        logger.info(f"Deleted Drive file {object_id}", extra={"tenant_id": self.tenant_id})

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
