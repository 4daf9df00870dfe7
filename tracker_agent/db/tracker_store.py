"""Tracker registry and record storage

STORAGE LAYOUT (under DATA_PATH):
- trackers.json: {"trackers": [...]} tracker definitions in insertion order
- <tracker-name>/records.json: {"records": [...]} append-only record list

Every mutation is a whole-file read-modify-write. Writes go to a temp file
in the same directory and are renamed over the target, so a document is
either fully rewritten or left as it was. There is no locking: one writer.
"""
import json
import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from tracker_agent.config import DATA_PATH
from tracker_agent.exceptions import StorageError, wrap_external_exception
from tracker_agent.models.tracking import Record, StoreResult, Tracker, slugify_tracker_name
from tracker_agent.utils.datetime_helpers import format_day, now_local, to_local

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "trackers.json"
RECORDS_FILENAME = "records.json"

# Fields a configuration edit may change
EDITABLE_TRACKER_FIELDS = ("display_name", "description", "type", "config")


class TrackerStore:
    """Persist tracker definitions and their records as JSON documents"""

    def __init__(
        self,
        data_path: Path = DATA_PATH,
        tz_name: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.data_path = Path(data_path)
        self.tz_name = tz_name
        self._clock = clock or (lambda: now_local(tz_name))

    # ------------------------------------------------------------------
    # Paths and raw documents
    # ------------------------------------------------------------------

    @property
    def registry_path(self) -> Path:
        return self.data_path / REGISTRY_FILENAME

    def get_tracker_dir(self, tracker_name: str) -> Path:
        """Directory holding a tracker's records and media artifacts"""
        return self.data_path / slugify_tracker_name(tracker_name)

    def get_records_path(self, tracker_name: str) -> Path:
        return self.get_tracker_dir(tracker_name) / RECORDS_FILENAME

    def now(self) -> datetime:
        """Current time in the store's timezone (injectable clock for tests)"""
        return to_local(self._clock(), self.tz_name)

    def _read_document(self, path: Path, key: str) -> Dict[str, Any]:
        """Load a JSON document, or an empty one if the file does not exist yet"""
        if not path.exists():
            return {key: []}
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StorageError(
                message=f"Corrupt document {path.name}: {e}",
                path=str(path),
                operation="read_document",
                cause=e
            )
        except OSError as e:
            raise wrap_external_exception(e, operation="read_document")

        if not isinstance(document, dict) or not isinstance(document.get(key), list):
            raise StorageError(
                message=f"Document {path.name} has no '{key}' list",
                path=str(path),
                operation="read_document"
            )
        return document

    def _write_document(self, path: Path, document: Dict[str, Any]) -> None:
        """Atomically replace a JSON document"""
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=path.parent,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False
            ) as tmp:
                tmp_name = tmp.name
                json.dump(document, tmp, indent=2, ensure_ascii=False)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise wrap_external_exception(e, operation="write_document")

    def _load_registry(self) -> List[Tracker]:
        document = self._read_document(self.registry_path, "trackers")
        trackers = []
        for raw in document["trackers"]:
            try:
                trackers.append(Tracker.model_validate(raw))
            except PydanticValidationError as e:
                logger.warning(f"[STORE] Skipping malformed tracker definition: {e}")
        return trackers

    def _save_registry(self, trackers: List[Tracker]) -> None:
        self._write_document(
            self.registry_path,
            {"trackers": [t.model_dump(mode="json") for t in trackers]}
        )

    def _load_raw_records(self, tracker_name: str) -> List[Dict[str, Any]]:
        return self._read_document(self.get_records_path(tracker_name), "records")["records"]

    def _save_raw_records(self, tracker_name: str, records: List[Dict[str, Any]]) -> None:
        self._write_document(self.get_records_path(tracker_name), {"records": records})

    # ------------------------------------------------------------------
    # Trackers
    # ------------------------------------------------------------------

    def list_trackers(self) -> List[Tracker]:
        """All trackers in insertion order"""
        try:
            return self._load_registry()
        except StorageError:
            return []

    def get_tracker(self, name: str) -> Optional[Tracker]:
        key = slugify_tracker_name(name or "")
        return next((t for t in self.list_trackers() if t.name == key), None)

    def create_tracker(self, definition: Union[Tracker, Dict[str, Any]]) -> StoreResult:
        """
        Register a tracker and initialise its empty record collection

        Fails if a tracker with the same (normalised) name exists; the
        existing tracker and its records are left untouched.
        """
        try:
            tracker = definition if isinstance(definition, Tracker) else Tracker.model_validate(definition)
        except PydanticValidationError as e:
            return StoreResult(success=False, message=f"Invalid tracker definition: {e.errors()[0]['msg']}")

        try:
            trackers = self._load_registry()
            if any(t.name == tracker.name for t in trackers):
                return StoreResult(success=False, message=f"Tracker '{tracker.name}' already exists")

            tracker = tracker.model_copy(update={"created_at": self.now(), "updated_at": None})

            records_path = self.get_records_path(tracker.name)
            if not records_path.exists():
                self._save_raw_records(tracker.name, [])

            self._save_registry(trackers + [tracker])
        except StorageError as e:
            return StoreResult(success=False, message=e.message)

        logger.info(f"[STORE] Created tracker '{tracker.name}' ({tracker.type})")
        return StoreResult(success=True, tracker=tracker)

    def update_tracker(self, name: str, updates: Dict[str, Any]) -> StoreResult:
        """
        Explicit configuration edit

        display_name, description, type and config may change; config is
        merged key by key. The name is immutable.
        """
        key = slugify_tracker_name(name or "")
        if "name" in updates and slugify_tracker_name(updates["name"] or "") != key:
            return StoreResult(success=False, message="Tracker name cannot be changed")

        try:
            trackers = self._load_registry()
            index = next((i for i, t in enumerate(trackers) if t.name == key), None)
            if index is None:
                return StoreResult(success=False, message=f"Tracker not found: {name}")

            current = trackers[index].model_dump()
            for field in EDITABLE_TRACKER_FIELDS:
                if field not in updates:
                    continue
                if field == "config" and isinstance(updates["config"], dict):
                    current["config"] = {**current["config"], **updates["config"]}
                else:
                    current[field] = updates[field]
            current["updated_at"] = self.now()

            try:
                updated = Tracker.model_validate(current)
            except PydanticValidationError as e:
                return StoreResult(success=False, message=f"Invalid tracker update: {e.errors()[0]['msg']}")

            trackers[index] = updated
            self._save_registry(trackers)
        except StorageError as e:
            return StoreResult(success=False, message=e.message)

        logger.info(f"[STORE] Updated tracker '{key}'")
        return StoreResult(success=True, tracker=updated)

    def delete_tracker(self, name: str) -> StoreResult:
        """Remove a tracker and all of its records (irreversible)"""
        key = slugify_tracker_name(name or "")
        try:
            trackers = self._load_registry()
            remaining = [t for t in trackers if t.name != key]
            if len(remaining) == len(trackers):
                return StoreResult(success=False, message=f"Tracker not found: {name}")

            # Unlist first so a failed write never leaves a listed tracker without records
            self._save_registry(remaining)
            tracker_dir = self.get_tracker_dir(key)
            if tracker_dir.exists():
                shutil.rmtree(tracker_dir)
        except OSError as e:
            error = wrap_external_exception(e, operation="delete_tracker")
            return StoreResult(success=False, message=error.message)
        except StorageError as e:
            return StoreResult(success=False, message=e.message)

        logger.info(f"[STORE] Deleted tracker '{key}' and its records")
        deleted = next(t for t in trackers if t.name == key)
        return StoreResult(success=True, tracker=deleted)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def add_record(
        self,
        tracker_name: str,
        data: Optional[Dict[str, Any]],
        source: str = "natural-language",
        timestamp: Optional[datetime] = None
    ) -> StoreResult:
        """
        Append a record; id, timestamp and date are generated here

        The payload is stored as-is. Only I/O can make this fail.

        Args:
            tracker_name: Tracker to append to
            data: Metric name -> scalar value
            source: Provenance tag
            timestamp: When it happened, if not now
        """
        created = self.now()
        moment = to_local(timestamp, self.tz_name) if timestamp else created
        record = Record(
            id=f"{int(created.timestamp() * 1000)}-{uuid4().hex[:6]}",
            timestamp=moment,
            date=format_day(moment),
            data=dict(data or {}),
            source=source
        )

        try:
            records = self._load_raw_records(tracker_name)
            records.append(record.model_dump(mode="json"))
            self._save_raw_records(tracker_name, records)
        except StorageError as e:
            return StoreResult(success=False, message=e.message)

        logger.info(f"[STORE] Added record {record.id} to '{tracker_name}'")
        return StoreResult(success=True, record=record)

    def update_record(self, tracker_name: str, record_id: str, partial_data: Dict[str, Any]) -> StoreResult:
        """Shallow-merge partial_data into a record's data; new keys win"""
        try:
            records = self._load_raw_records(tracker_name)
            index = next((i for i, r in enumerate(records) if r.get("id") == record_id), None)
            if index is None:
                return StoreResult(success=False, message=f"Record not found: {record_id}")

            raw = records[index]
            raw["data"] = {**(raw.get("data") or {}), **(partial_data or {})}
            raw["updated_at"] = self.now().isoformat()
            record = Record.model_validate(raw)
            records[index] = record.model_dump(mode="json")
            self._save_raw_records(tracker_name, records)
        except StorageError as e:
            return StoreResult(success=False, message=e.message)
        except PydanticValidationError as e:
            return StoreResult(success=False, message=f"Stored record {record_id} is malformed: {e.errors()[0]['msg']}")

        logger.info(f"[STORE] Updated record {record_id} in '{tracker_name}': {sorted(partial_data or {})}")
        return StoreResult(success=True, record=record)

    def delete_record(self, tracker_name: str, record_id: str) -> StoreResult:
        try:
            records = self._load_raw_records(tracker_name)
            remaining = [r for r in records if r.get("id") != record_id]
            if len(remaining) == len(records):
                return StoreResult(success=False, message=f"Record not found: {record_id}")

            deleted = next(r for r in records if r.get("id") == record_id)
            self._save_raw_records(tracker_name, remaining)
        except StorageError as e:
            return StoreResult(success=False, message=e.message)

        logger.info(f"[STORE] Deleted record {record_id} from '{tracker_name}'")
        return StoreResult(success=True, record=Record.model_validate(deleted))

    def get_records(self, tracker_name: str) -> List[Record]:
        """All records of a tracker in write order"""
        try:
            raw_records = self._load_raw_records(tracker_name)
        except StorageError:
            return []

        records = []
        for raw in raw_records:
            try:
                records.append(Record.model_validate(raw))
            except PydanticValidationError as e:
                logger.warning(f"[STORE] Skipping malformed record in '{tracker_name}': {e}")
        return records

    def get_records_by_date_range(
        self,
        tracker_name: str,
        start_date: Optional[str],
        end_date: Optional[str]
    ) -> List[Record]:
        """
        Records whose date lies in [start_date, end_date]

        Both bounds are inclusive YYYY-MM-DD strings compared
        lexicographically; None leaves that side open.
        """
        return [
            r for r in self.get_records(tracker_name)
            if (start_date is None or r.date >= start_date)
            and (end_date is None or r.date <= end_date)
        ]

    def get_recent_records(self, tracker_name: str, limit: int = 10) -> List[Record]:
        """Up to limit records, newest timestamp first"""
        if limit <= 0:
            return []
        # Ties go to the later write
        records = list(reversed(self.get_records(tracker_name)))
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return records[:limit]

    def get_last_logged(self) -> Optional[Tuple[Tracker, Record]]:
        """
        The most recently written record across all trackers, with its tracker

        Backdated records keep their place: each tracker's candidate is its
        last-written record, and trackers are compared by the creation instant
        in the record id rather than by timestamp.
        """
        latest: Optional[Tuple[Tracker, Record]] = None
        for tracker in self.list_trackers():
            records = self.get_records(tracker.name)
            if not records:
                continue
            candidate = records[-1]
            if latest is None or candidate.created_ms > latest[1].created_ms:
                latest = (tracker, candidate)
        return latest
