"""
Blob storage for task attachments.

Files live flat in a single upload directory under generated names of the
form ``<epoch-ms>-<random>.<ext>``. Callers only ever hold that name (the
storage key); absolute paths are derived from it here and nowhere else.
"""

import logging
import os
import re
import secrets
import time
from pathlib import Path
from typing import BinaryIO, Union

from backend.utils.errors import BlobNotFound

logger = logging.getLogger(__name__)

FILE_CHUNK_SIZE = 8192
MAX_EXTENSION_LENGTH = 10

_EXTENSION_RE = re.compile(r"^\.[a-z0-9]+$")


def safe_extension(filename: str) -> str:
    """Return the lowercased extension of an untrusted filename, or ''."""
    return _clean_extension(os.path.splitext(os.path.basename(filename or ""))[1])


def _clean_extension(ext: str) -> str:
    ext = (ext or "").lower()
    if len(ext) > MAX_EXTENSION_LENGTH or not _EXTENSION_RE.match(ext):
        return ""
    return ext


class BlobStore:
    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _ensure_root(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def _path_for(self, storage_key: str) -> Path:
        """Resolve a storage key to a path inside the upload directory.

        Keys are single path components; anything else is treated as absent.
        """
        if not storage_key or os.path.basename(storage_key) != storage_key or storage_key in (".", ".."):
            raise BlobNotFound()
        root = self.root.resolve()
        path = (root / storage_key).resolve()
        if path.parent != root:
            raise BlobNotFound()
        return path

    def _new_key(self, ext: str) -> str:
        return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"

    def store(self, stream: BinaryIO, suggested_ext: str = "") -> str:
        """Copy ``stream`` into a freshly named file and return its storage key."""
        root = self._ensure_root()
        ext = _clean_extension(suggested_ext)

        # "xb" refuses to overwrite, so a clash just means drawing another name.
        while True:
            key = self._new_key(ext)
            try:
                dest = open(root / key, "xb")
            except FileExistsError:
                continue
            break

        try:
            with dest:
                if hasattr(stream, "seek"):
                    stream.seek(0)
                while chunk := stream.read(FILE_CHUNK_SIZE):
                    dest.write(chunk)
        except Exception:
            (root / key).unlink(missing_ok=True)
            raise

        logger.debug("Stored blob %s", key)
        return key

    def exists(self, storage_key: str) -> bool:
        try:
            return self._path_for(storage_key).is_file()
        except BlobNotFound:
            return False

    def path(self, storage_key: str) -> Path:
        """Absolute path of an existing blob; raises BlobNotFound otherwise."""
        self._ensure_root()
        path = self._path_for(storage_key)
        if not path.is_file():
            raise BlobNotFound()
        return path

    def open_read_stream(self, storage_key: str) -> BinaryIO:
        path = self.path(storage_key)
        try:
            return open(path, "rb")
        except FileNotFoundError as exc:
            raise BlobNotFound() from exc

    def size(self, storage_key: str) -> int:
        return self.path(storage_key).stat().st_size

    def delete(self, storage_key: str) -> bool:
        """Remove a blob. Deleting something already gone is not an error."""
        try:
            path = self._path_for(storage_key)
        except BlobNotFound:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.debug("Deleted blob %s", storage_key)
        return True
