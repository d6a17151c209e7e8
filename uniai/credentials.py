"""
Access-token caching for providers that issue short-lived credentials.

The cache reads the last issued credential from a store before every
authenticated call and only goes to the network when it has expired.
Concurrent refreshes are harmless: any unexpired token is usable, and the
store keeps whichever write lands last.
"""
import asyncio
import contextlib
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Optional, Union

import httpx

from .errors import CredentialError
from .types import Credential
from .utils import now_ms

if TYPE_CHECKING:
    from .providers.base import ChatProvider

logger = logging.getLogger(__name__)


class CredentialStore(ABC):
    """A durable slot per provider holding its last issued credential."""

    @abstractmethod
    def read(self, key: str) -> Optional[Credential]:
        pass

    @abstractmethod
    def write(self, key: str, credential: Credential) -> None:
        pass


class MemoryCredentialStore(CredentialStore):
    def __init__(self, initial: Optional[Dict[str, Credential]] = None):
        self._slots: Dict[str, Credential] = dict(initial or {})

    def read(self, key: str) -> Optional[Credential]:
        return self._slots.get(key)

    def write(self, key: str, credential: Credential) -> None:
        self._slots[key] = credential


class FileCredentialStore(CredentialStore):
    """
    One JSON file per provider, ``<key>_access_token.json``.

    Writes go to a temporary file in the same directory which then replaces
    the target, so readers see either the old or the new value, never a mix.
    """

    def __init__(self, directory: Union[str, Path, None] = None):
        self.directory = Path(directory or tempfile.gettempdir())

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}_access_token.json"

    def read(self, key: str) -> Optional[Credential]:
        path = self.path_for(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return Credential.from_json(json.load(f))
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable credential cache %s: %s", path, e)
            return None

    def write(self, key: str, credential: Credential) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{key}_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(credential.to_json(), f)
            os.replace(tmp_path, self.path_for(key))
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            raise


class CredentialCache:
    """
    Serves cached provider tokens and refreshes them once expired.

    Args:
        store (CredentialStore): Where credentials are persisted.
        http_client (httpx.AsyncClient): Client used for the token endpoint.
        clock (Callable[[], int]): Returns the current time in epoch millis.
    """

    def __init__(
        self,
        store: CredentialStore,
        http_client: httpx.AsyncClient,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.http_client = http_client
        self.clock = clock

    async def get_token(self, provider: "ChatProvider") -> str:
        """
        Return a valid access token for ``provider``.

        Raises:
            CredentialError: If the token endpoint is unreachable or refuses.
        """
        now = self.clock()
        # stores may touch the filesystem, keep that off the event loop
        cached = await asyncio.to_thread(self.store.read, provider.name)
        if cached is not None and cached.is_fresh(now):
            logger.debug("Using cached %s access token", provider.name)
            return cached.token

        credential = await self._issue(provider, now)
        await asyncio.to_thread(self.store.write, provider.name, credential)
        logger.info("Refreshed %s access token, valid until %d", provider.name, credential.expires_at_ms)
        return credential.token

    async def _issue(self, provider: "ChatProvider", now: int) -> Credential:
        request = provider.build_credential_request(self.http_client)
        try:
            response = await self.http_client.send(request)
        except httpx.HTTPError as e:
            raise CredentialError(
                f"Access token request failed: {e}", provider=provider.name
            ) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise CredentialError(
                f"Access token endpoint returned HTTP {response.status_code} without JSON",
                provider=provider.name,
            ) from e

        return provider.parse_credential(payload, now)
