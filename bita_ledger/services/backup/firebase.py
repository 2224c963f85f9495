"""
Firebase Realtime Database backup slot.

Talks to the Realtime Database REST API:

    GET/PUT/DELETE {database_url}/users/{account_id}/sqlite_backup.json?auth=<id token>

The record body is {"data": <base64>, "timestamp": <epoch ms>}. A GET of a
missing path returns JSON null.

Transport errors and 5xx answers are retried with exponential backoff;
anything still failing becomes RemoteUnavailableError.
"""

from typing import Any, Optional

import httpx
import structlog
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from bita_ledger.config import FirebaseSettings, SyncSettings, get_settings
from bita_ledger.services.backup.interface import (
    BackupRecord,
    RemoteBackupSlot,
    RemoteUnavailableError,
)
from bita_ledger.services.storage.interface import CorruptSnapshotError


logger = structlog.get_logger(__name__)


class _TransientRemoteError(RemoteUnavailableError):
    """Failure worth retrying (network trouble, 5xx, 429)."""
    pass


class FirebaseBackupSlot(RemoteBackupSlot):
    """
    Backup slot stored in Firebase Realtime Database.

    The identity collaborator supplies the ID token via set_credentials().
    """

    def __init__(
        self,
        settings: Optional[FirebaseSettings] = None,
        sync_settings: Optional[SyncSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        backoff_multiplier: float = 1.0,
    ):
        self._settings = settings or get_settings().firebase
        sync_settings = sync_settings or get_settings().sync
        self._attempts = sync_settings.retry_attempts
        self._timeout = sync_settings.request_timeout_seconds
        self._backoff_multiplier = backoff_multiplier
        self._client = client
        self._owns_client = client is None
        self._id_token: Optional[str] = None

    def set_credentials(self, id_token: Optional[str]) -> None:
        self._id_token = id_token

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=10.0),
            )
        return self._client

    def _url(self, account_id: str) -> str:
        path = self._settings.backup_path_template.format(account_id=account_id)
        return f"{self._settings.database_url}/{path}.json"

    def _params(self) -> dict[str, str]:
        return {"auth": self._id_token} if self._id_token else {}

    async def _request(self, method: str, account_id: str, **kwargs: Any) -> httpx.Response:
        url = self._url(account_id)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=self._backoff_multiplier, max=10),
            retry=retry_if_exception_type(_TransientRemoteError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                try:
                    response = await self._get_client().request(
                        method, url, params=self._params(), **kwargs
                    )
                except httpx.TimeoutException as e:
                    raise _TransientRemoteError(f"Firebase {method} timed out: {e}") from e
                except httpx.RequestError as e:
                    raise _TransientRemoteError(f"Firebase {method} failed: {e}") from e

                if response.status_code >= 500 or response.status_code == 429:
                    logger.warning(
                        "firebase_transient_error",
                        method=method,
                        status_code=response.status_code,
                        attempt=attempt.retry_state.attempt_number,
                    )
                    raise _TransientRemoteError(
                        f"Firebase {method} returned {response.status_code}"
                    )
                if response.status_code >= 400:
                    raise RemoteUnavailableError(
                        f"Firebase {method} rejected with {response.status_code}: "
                        f"{response.text[:200]}"
                    )
                return response
        raise RemoteUnavailableError(f"Firebase {method} gave up")  # pragma: no cover

    async def get(self, account_id: str) -> Optional[BackupRecord]:
        response = await self._request("GET", account_id)
        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteUnavailableError(f"Firebase returned non-JSON body: {e}") from e
        if payload is None:
            return None
        try:
            return BackupRecord.model_validate(payload)
        except ValidationError as e:
            raise CorruptSnapshotError(f"Malformed backup record: {e}") from e

    async def put(self, account_id: str, record: BackupRecord) -> None:
        await self._request("PUT", account_id, json=record.model_dump())

    async def delete(self, account_id: str) -> None:
        await self._request("DELETE", account_id)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
