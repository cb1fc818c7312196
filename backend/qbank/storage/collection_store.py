"""
Collection stores: whole-collection save/load of questions and exam books on a BlobStore.

Save: copy the current primary blob to the backup key, then write a versioned envelope
{version, timestamp, data}. On QuotaExceeded, purge the backup and any other keys under the
collection prefix once and retry exactly once. Failures are reported in StoreResult, never raised.

Load: accept a bare JSON array (legacy) or the envelope. If the primary blob is unusable, fall
back to the backup; if that is unusable too, return an empty collection with success=False.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Generic, Sequence, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from qbank.schemas.exam_book import ExamBook
from qbank.schemas.question import Question
from qbank.storage.blob import BlobStore, QuotaExceeded

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StoreResult(Generic[T]):
    success: bool
    data: list[T] = field(default_factory=list)
    error: str | None = None
    discarded: int = 0  # entries dropped by load validation
    source: str = "primary"  # primary | backup | empty


class _Unusable(Exception):
    pass


class CollectionStore(Generic[T]):
    FORMAT_VERSION = "1.0"

    model: type[T]
    prefix: str
    data_key: str
    backup_key: str
    version_key: str
    label: str = "items"

    def __init__(self, blobs: BlobStore):
        self.blobs = blobs

    # --- save ---

    def _envelope(self, items: Sequence[T]) -> str:
        return json.dumps(
            {
                "version": self.FORMAT_VERSION,
                "timestamp": _utcnow_iso(),
                "data": [item.model_dump(mode="json", by_alias=True) for item in items],
            },
            ensure_ascii=False,
        )

    def _write(self, payload: str, with_backup: bool) -> None:
        if with_backup:
            current = self.blobs.get(self.data_key)
            if current:
                self.blobs.set(self.backup_key, current)
        self.blobs.set(self.data_key, payload)
        self.blobs.set(self.version_key, self.FORMAT_VERSION)

    def save(self, items: Sequence[T]) -> StoreResult[T]:
        payload = self._envelope(items)
        try:
            self._write(payload, with_backup=True)
        except QuotaExceeded as e:
            logger.error("%s: storage quota exceeded (%s); purging auxiliary keys", self.label, e)
            self.cleanup()
            try:
                self._write(payload, with_backup=False)
            except (QuotaExceeded, OSError) as retry_error:
                logger.error("%s: save failed even after cleanup: %s", self.label, retry_error)
                return StoreResult(success=False, error="Storage quota exceeded even after cleanup")
        except OSError as e:
            logger.error("%s: failed to save: %s", self.label, e)
            return StoreResult(success=False, error=str(e))
        logger.info("%s: saved %s entries", self.label, len(items))
        return StoreResult(success=True, data=list(items))

    def cleanup(self) -> int:
        """Remove the backup and any other prefixed keys except primary data and version marker."""
        keep = {self.data_key, self.version_key}
        removed = 0
        for key in self.blobs.keys():
            if key.startswith(self.prefix) and key not in keep:
                self.blobs.remove(key)
                removed += 1
        logger.info("%s: cleaned up %s storage keys", self.label, removed)
        return removed

    # --- load ---

    def _entries_from(self, raw: str) -> list:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise _Unusable(f"invalid JSON: {e}") from e
        if isinstance(parsed, list):
            logger.info("%s: loading legacy (unversioned) format", self.label)
            return parsed
        if isinstance(parsed, dict) and parsed.get("version") and isinstance(parsed.get("data"), list):
            return parsed["data"]
        raise _Unusable("invalid data format")

    def _accept(self, entry) -> bool:
        return isinstance(entry, dict)

    def _validate(self, entries: list) -> tuple[list[T], int]:
        valid: list[T] = []
        for entry in entries:
            if not self._accept(entry):
                continue
            try:
                valid.append(self.model.model_validate(entry))
            except PydanticValidationError as e:
                logger.debug("%s: entry rejected: %s", self.label, e)
        discarded = len(entries) - len(valid)
        if discarded:
            logger.warning("%s: filtered out %s invalid entries", self.label, discarded)
        return valid, discarded

    def load(self) -> StoreResult[T]:
        try:
            raw = self.blobs.get(self.data_key)
        except OSError as e:
            logger.error("%s: failed to read primary blob: %s", self.label, e)
            return self._load_backup()
        if not raw:
            logger.info("%s: no saved data found", self.label)
            return StoreResult(success=True, source="empty")
        try:
            entries = self._entries_from(raw)
        except _Unusable as e:
            logger.error("%s: failed to load: %s", self.label, e)
            return self._load_backup()
        items, discarded = self._validate(entries)
        logger.info("%s: loaded %s entries", self.label, len(items))
        return StoreResult(success=True, data=items, discarded=discarded)

    def _load_backup(self) -> StoreResult[T]:
        try:
            raw = self.blobs.get(self.backup_key)
            if raw:
                items, discarded = self._validate(self._entries_from(raw))
                logger.warning("%s: loaded %s entries from backup", self.label, len(items))
                return StoreResult(success=True, data=items, discarded=discarded, source="backup")
        except (OSError, _Unusable) as e:
            logger.error("%s: failed to load from backup: %s", self.label, e)
        return StoreResult(success=False, error="No valid data or backup found", source="empty")

    # --- misc ---

    def export_json(self, items: Sequence[T]) -> str:
        """Pretty JSON backup file content for download."""
        return json.dumps(
            {
                "version": self.FORMAT_VERSION,
                "exportDate": _utcnow_iso(),
                self.label: [item.model_dump(mode="json", by_alias=True) for item in items],
            },
            indent=2,
            ensure_ascii=False,
        )

    def health(self) -> dict:
        used = self.blobs.used_bytes()
        quota = self.blobs.quota_bytes
        return {
            "used_bytes": used,
            "available_bytes": (quota - used) if quota else None,
            "is_healthy": not quota or used < quota,
        }


class QuestionStore(CollectionStore[Question]):
    model = Question
    prefix = "questionBank_"
    data_key = "questionBank_questions"
    backup_key = "questionBank_questions_backup"
    version_key = "questionBank_version"
    label = "questions"

    _REQUIRED = ("id", "clinicalVignette", "leadQuestion")

    def _accept(self, entry) -> bool:
        return isinstance(entry, dict) and all(entry.get(k) for k in self._REQUIRED)


class ExamBookStore(CollectionStore[ExamBook]):
    model = ExamBook
    prefix = "examBooks_"
    data_key = "examBooks_data"
    backup_key = "examBooks_backup"
    version_key = "examBooks_version"
    label = "examBooks"
