"""Persistent storage for the refresh token obtained by an authorization session.

Stores the token in ``~/.local/share/syncauth/credentials/<name>.json``
(XDG) or the platform-equivalent directory. Files are written atomically
through :func:`~syncauth.config.atomic_write` with ``0o600`` permissions so
that the token is never world-readable, even momentarily.

:meth:`CredentialStore.save` is the default ``save`` collaborator of
:class:`~syncauth.auth.manager.Authorizer`.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from syncauth.config import atomic_write, get_data_dir
from syncauth.exceptions import CredentialStoreError
from syncauth.models import StoredCredential

logger = logging.getLogger(__name__)

DEFAULT_STORE_NAME = "gdrive"


def _credentials_dir() -> Path:
    """Return the credentials directory, creating it if needed."""
    path = get_data_dir() / "credentials"
    path.mkdir(parents=True, exist_ok=True)
    return path


class CredentialStore:
    """Read/write the refresh token for one storage provider.

    The credentials directory is resolved on first use, so building a store
    never touches the filesystem. A data directory that cannot be created
    surfaces as :class:`~syncauth.exceptions.CredentialStoreError` from
    :meth:`save`.

    Args:
        name: Identifier used to derive the file name.
        client_id: Recorded alongside the token so a later change of client
            registration can be detected.
        scope: Recorded alongside the token.

    Example::

        store = CredentialStore(client_id="1234.apps.googleusercontent.com")
        store.save("1//0gAbc")
        assert store.load().refresh_token == "1//0gAbc"
    """

    def __init__(
        self,
        name: str = DEFAULT_STORE_NAME,
        client_id: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> None:
        self._name = name
        self._client_id = client_id
        self._scope = scope
        self._path: Optional[Path] = None

    @property
    def path(self) -> Path:
        """The filesystem path to the credential file.

        Raises:
            OSError: If the credentials directory cannot be created.
        """
        if self._path is None:
            self._path = _credentials_dir() / f"{self._name}.json"
        return self._path

    def save(self, refresh_token: str) -> None:
        """Persist *refresh_token* atomically with ``0o600`` permissions.

        Raises:
            CredentialStoreError: If the directory or the file cannot be
                written.
        """
        entry = StoredCredential(
            refresh_token=refresh_token,
            client_id=self._client_id,
            scope=self._scope,
            obtained_at=datetime.now(timezone.utc),
        )
        text = json.dumps(entry.model_dump(mode="json"), indent=2) + "\n"
        try:
            path = self.path
            atomic_write(path, text, mode=0o600)
        except OSError as exc:
            raise CredentialStoreError(f"Cannot write credentials: {exc}") from exc
        logger.info("Refresh token stored at %s", path)

    def load(self) -> Optional[StoredCredential]:
        """Load the stored credential.

        Returns:
            The :class:`~syncauth.models.StoredCredential`, or ``None`` if
            the file does not exist or cannot be parsed.
        """
        try:
            path = self.path
        except OSError as exc:
            logger.warning("Credentials directory unavailable: %s", exc)
            return None
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return StoredCredential.model_validate(data)
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning("Ignoring unreadable credential file %s: %s", path, exc)
            return None

    def is_authorized(self) -> bool:
        """True if a refresh token is stored."""
        return self.load() is not None

    def clear(self) -> None:
        """Delete the stored credential file. No-op when it is already gone.

        Raises:
            CredentialStoreError: If the file exists but cannot be removed.
        """
        try:
            path = self.path
            if path.is_file():
                path.unlink()
        except OSError as exc:
            raise CredentialStoreError(f"Cannot remove credentials: {exc}") from exc
