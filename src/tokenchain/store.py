"""On-disk store for cached user OAuth tokens.

One JSON file per entry, named ``<key hash>_<quoted email>_<email digest>.json``,
so entries for a key can be found from the file name alone. The digest keeps
emails that differ only in case apart on case-insensitive file systems.
Writes go through a temporary file and an atomic rename; readers skip
anything they cannot read.
"""

import hashlib
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from urllib.parse import quote

from google.oauth2.credentials import Credentials as UserCredentials
from pydantic import BaseModel

from .consts import GOOGLE_TOKEN_URI
from .models import CacheEntry, CacheKey, ClientIdentity

logger = logging.getLogger("tokenchain.store")

_FILENAME_SAFE_CHARS = "@._+-"
EMAIL_DIGEST_LENGTH = 8


class StoredToken(BaseModel):
    """Serialized form of a CacheEntry."""

    key_hash: str
    scopes: list[str]
    client_id: str
    client_secret: str | None = None
    package: str
    email: str
    token: str | None = None
    refresh_token: str | None = None
    token_uri: str = GOOGLE_TOKEN_URI
    expiry: datetime | None = None
    granted_scopes: list[str] | None = None

    @classmethod
    def from_entry(cls, entry: CacheEntry) -> "StoredToken":
        credential = entry.credential
        if not isinstance(credential, UserCredentials):
            raise TypeError(
                f"Only user OAuth credentials can be cached, got {type(credential).__name__}"
            )
        return cls(
            key_hash=entry.content_hash,
            scopes=sorted(entry.key.scopes),
            client_id=entry.key.client.client_id,
            client_secret=entry.key.client.client_secret,
            package=entry.key.package,
            email=entry.email,
            token=credential.token,
            refresh_token=credential.refresh_token,
            token_uri=credential.token_uri or GOOGLE_TOKEN_URI,
            expiry=credential.expiry,
            granted_scopes=sorted(credential.scopes) if credential.scopes else None,
        )

    def to_entry(self) -> CacheEntry:
        client = ClientIdentity(
            client_id=self.client_id,
            client_secret=self.client_secret,
            token_uri=self.token_uri,
        )
        credential = UserCredentials(
            token=self.token,
            refresh_token=self.refresh_token,
            token_uri=self.token_uri,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=self.granted_scopes or self.scopes,
            expiry=self.expiry.replace(tzinfo=None) if self.expiry else None,
        )
        key = CacheKey(scopes=self.scopes, client=client, package=self.package)
        return CacheEntry(key=key, email=self.email, credential=credential)


class TokenStore:
    """User-scoped directory of cached tokens."""

    def __init__(self, directory: str | os.PathLike):
        self.directory = Path(directory).expanduser()

    def entry_path(self, entry: CacheEntry) -> Path:
        email = quote(entry.email, safe=_FILENAME_SAFE_CHARS)
        digest = hashlib.sha256(entry.email.encode("utf-8")).hexdigest()[:EMAIL_DIGEST_LENGTH]
        return self.directory / f"{entry.content_hash}_{email}_{digest}.json"

    def find(self, content_hash: str) -> list[Path]:
        """Files holding entries with this key hash, oldest first.

        Works from file names only; no credential is deserialized.
        """
        if not self.directory.is_dir():
            return []
        return sorted(
            self.directory.glob(f"{content_hash}_*.json"),
            key=lambda p: (_mtime(p), p.name),
        )

    def read_entries(self, key: CacheKey) -> list[CacheEntry]:
        """All readable entries whose key equals ``key``.

        Missing, locked or corrupt files count as "no match".
        """
        entries = []
        for path in self.find(key.hash):
            try:
                stored = StoredToken.model_validate_json(path.read_text(encoding="utf-8"))
                entry = stored.to_entry()
            except (OSError, ValueError) as e:
                logger.debug(f"Ignoring unreadable cache file {path.name}: {e}")
                continue
            if entry.key != key:
                logger.debug(f"Ignoring cache file {path.name}: key hash collision")
                continue
            entries.append(entry)
        return entries

    def write_entry(self, entry: CacheEntry) -> bool:
        """Atomically write ``entry``, replacing any file for the same key+email.

        Returns:
            True on success, False on failure (never raises for I/O errors).
        """
        path = self.entry_path(entry)
        content = StoredToken.from_entry(entry).model_dump_json(indent=2)

        tmp_path = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_fd, tmp_path = tempfile.mkstemp(
                dir=self.directory, prefix=".tmp_", suffix=".json", text=True
            )
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                f.write(content)
            try:
                os.chmod(tmp_path, 0o600)
            except OSError:
                # Windows may not support chmod
                pass
            os.replace(tmp_path, path)
            tmp_path = None
        except OSError as e:
            logger.warning(f"Failed to write token cache file {path}: {e}")
            return False
        finally:
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass

        logger.debug(f"Wrote token cache file {path.name}")
        return True


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0
