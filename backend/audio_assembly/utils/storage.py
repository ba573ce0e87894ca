"""Filesystem-backed object storage with signed, time-limited URLs.

Objects are addressed by bucket-relative POSIX paths such as
``{user_id}/cache/{text_hash}.mp3`` or ``{user_id}/assembly-results/{file}``;
those layouts are shared with other services and must not change.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
import time
import uuid
from pathlib import Path, PurePosixPath
from urllib.parse import quote, urlencode

from ..config import settings
from ..exceptions import ObjectExistsError, StorageError

logger = logging.getLogger(__name__)

# Determine base data directory:
# 1. Use DATA_ROOT env var if set.
# 2. Else, if /data exists, assume Docker environment and use /data.
# 3. Otherwise, use project_root/data (development environment).
_PROJECT_ROOT = Path(__file__).resolve().parents[3]
_ENV_DATA_ROOT = os.getenv("DATA_ROOT")
if _ENV_DATA_ROOT:
    DATA_ROOT = Path(_ENV_DATA_ROOT)
elif Path("/data").exists():
    DATA_ROOT = Path("/data")
else:
    DATA_ROOT = _PROJECT_ROOT / "data"

BUCKET_NAME = "audio-assembly"
BUCKET_DIR = DATA_ROOT / BUCKET_NAME


def ensure_dir_exists(path: Path) -> Path:
    """Ensure that the given directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def cache_path(user_id: str, text_hash: str) -> str:
    return f"{user_id}/cache/{text_hash}.mp3"


def voice_cache_path(user_id: str, voice_id: str, text_hash: str) -> str:
    return f"{user_id}/cache/{voice_id}/{text_hash}.mp3"


def segment_path(user_id: str, job_id: str, file_name: str) -> str:
    return f"{user_id}/assembly-segments/{job_id}/{file_name}"


def result_path(user_id: str, file_name: str) -> str:
    return f"{user_id}/assembly-results/{file_name}"


class LocalBlobStorage:
    """Minimal object store over a directory.

    Every method is blocking; async callers run them in a worker thread.
    """

    def __init__(self, root: Path = BUCKET_DIR, signing_key: str | None = None) -> None:
        self.root = Path(root)
        self._signing_key = (signing_key or settings.STORAGE_SIGNING_KEY).encode("utf-8")

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def resolve(self, object_path: str) -> Path:
        """Map an object path to a file below ``root``, rejecting traversal."""
        relative = PurePosixPath(object_path)
        if not object_path or relative.is_absolute() or ".." in relative.parts:
            raise StorageError(f"Invalid object path: {object_path!r}")
        full_path = (self.root / Path(*relative.parts)).resolve()
        root = self.root.resolve()
        if root != full_path and root not in full_path.parents:
            raise StorageError(f"Invalid object path: {object_path!r}")
        return full_path

    # ------------------------------------------------------------------
    # Object operations
    # ------------------------------------------------------------------

    def upload(self, object_path: str, data: bytes, upsert: bool = True) -> str:
        """Write ``data`` at ``object_path``.

        With ``upsert=False`` the object is only created if absent (hard link
        of the finished temp file), otherwise :class:`ObjectExistsError`.
        """
        target = self.resolve(object_path)
        if target.exists() and not upsert:
            raise ObjectExistsError(f"Object already exists: {object_path}")
        tmp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
        try:
            ensure_dir_exists(target.parent)
            tmp_path.write_bytes(data)
            if upsert:
                os.replace(tmp_path, target)
            else:
                os.link(tmp_path, target)
        except FileExistsError as exc:
            raise ObjectExistsError(f"Object already exists: {object_path}") from exc
        except OSError as exc:
            logger.error(f"Upload failed for '{object_path}': {exc}", exc_info=True)
            raise StorageError(f"Failed to upload {object_path}: {exc}") from exc
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
        logger.debug(f"Stored {len(data)} bytes at '{object_path}'")
        return object_path

    def download(self, object_path: str) -> bytes:
        source = self.resolve(object_path)
        try:
            return source.read_bytes()
        except FileNotFoundError as exc:
            raise StorageError(f"Object not found: {object_path}") from exc
        except OSError as exc:
            logger.error(f"Download failed for '{object_path}': {exc}", exc_info=True)
            raise StorageError(f"Failed to download {object_path}: {exc}") from exc

    def exists(self, object_path: str) -> bool:
        return self.resolve(object_path).is_file()

    def list(self, prefix: str) -> list[str]:
        """Names of the objects directly under ``prefix``."""
        directory = self.resolve(prefix)
        if not directory.is_dir():
            return []
        return sorted(entry.name for entry in directory.iterdir() if entry.is_file() and not entry.name.startswith("."))

    # ------------------------------------------------------------------
    # Signed URLs
    # ------------------------------------------------------------------

    def _signature(self, object_path: str, expires: int) -> str:
        message = f"{object_path}:{expires}".encode("utf-8")
        return hmac.new(self._signing_key, message, hashlib.sha256).hexdigest()

    def create_signed_url(self, object_path: str, expires_in: int | None = None, base_url: str | None = None) -> tuple[str, int]:
        """Return ``(url, expires_at)`` granting read access until ``expires_at`` (epoch seconds)."""
        if not self.exists(object_path):
            raise StorageError(f"Object not found: {object_path}")
        expires_at = int(time.time()) + int(expires_in or settings.SIGNED_URL_TTL_SECONDS)
        query = urlencode({"expires": expires_at, "signature": self._signature(object_path, expires_at)})
        base = (base_url or settings.PUBLIC_BASE_URL).rstrip("/")
        return f"{base}/api/storage/{quote(object_path)}?{query}", expires_at

    def verify_signature(self, object_path: str, expires: int, signature: str) -> bool:
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._signature(object_path, expires), signature)


_default_storage: LocalBlobStorage | None = None


def get_storage() -> LocalBlobStorage:
    """Process-wide storage instance (also used as a FastAPI dependency)."""
    global _default_storage
    if _default_storage is None:
        _default_storage = LocalBlobStorage()
    return _default_storage
