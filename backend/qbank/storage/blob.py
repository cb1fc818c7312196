"""
Key-value blob stores: string values under short string keys, with an optional byte quota.
FileBlobStore keeps one file per key in a directory; MemoryBlobStore is the test double.
Usage is counted as len(key) + len(value) per entry, in characters.
"""
import logging
import os
import re
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class QuotaExceeded(Exception):
    """Writing the value would push the store past its quota."""


class BlobStore:
    """Interface shared by the blob stores. quota_bytes=0 disables the quota."""

    def __init__(self, quota_bytes: int = 0):
        self.quota_bytes = quota_bytes

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> list[str]:
        raise NotImplementedError

    def used_bytes(self) -> int:
        total = 0
        for k in self.keys():
            v = self.get(k)
            total += len(k) + (len(v) if v is not None else 0)
        return total

    def _check_quota(self, key: str, value: str) -> None:
        if not self.quota_bytes:
            return
        old = self.get(key)
        old_size = len(key) + len(old) if old is not None else 0
        projected = self.used_bytes() - old_size + len(key) + len(value)
        if projected > self.quota_bytes:
            raise QuotaExceeded(
                f"Writing {key!r} needs {projected} bytes; quota is {self.quota_bytes}"
            )


class MemoryBlobStore(BlobStore):
    def __init__(self, quota_bytes: int = 0, initial: dict[str, str] | None = None):
        super().__init__(quota_bytes)
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._check_quota(key, value)
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class FileBlobStore(BlobStore):
    """One UTF-8 file per key under root. Writes go through a temp file and os.replace."""

    def __init__(self, root: Path, quota_bytes: int = 0):
        super().__init__(quota_bytes)
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise ValueError(f"Invalid blob key: {key!r}")
        return self.root / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self._check_quota(key, value)
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        return sorted(p.stem for p in self.root.glob("*.json") if not p.name.startswith(".tmp-"))
