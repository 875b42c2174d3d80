"""Checkpoint file for resuming interrupted multipart uploads.

The service keeps an unfinished upload for 24 hours of inactivity, but only
the client knows which local file it belongs to. The journal records each
upload id and every part the service has confirmed, so a restarted process
can pick up where it stopped.
"""

import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from threading import RLock

from .multipart import PartDescriptor

JOURNAL_FILE = ".glacier-upload-journal.json"


@dataclass
class JournalEntry:
    key: str
    vault: str
    file_path: str
    size: int
    upload_id: str
    part_size: int
    parts: dict[int, PartDescriptor] = field(default_factory=dict)
    started_at: str | None = None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "vault": self.vault,
            "file_path": self.file_path,
            "size": self.size,
            "upload_id": self.upload_id,
            "part_size": self.part_size,
            "parts": [p.to_dict() for p in sorted(self.parts.values(), key=lambda p: p.index)],
            "started_at": self.started_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "JournalEntry":
        parts = [PartDescriptor.from_dict(p) for p in d.get("parts", [])]
        return cls(
            key=d["key"],
            vault=d["vault"],
            file_path=d["file_path"],
            size=d["size"],
            upload_id=d["upload_id"],
            part_size=d["part_size"],
            parts={p.index: p for p in parts},
            started_at=d.get("started_at"),
        )


def journal_key(vault: str, file_path: str | Path) -> str:
    """Identify a (vault, file version) pair; edits to the file change the key."""
    resolved = Path(file_path).resolve()
    stat = os.stat(resolved)
    return f"{vault}:{resolved}:{stat.st_size}:{stat.st_mtime_ns}"


@dataclass
class UploadJournal:
    """Thread-safe JSON journal of in-progress multipart uploads."""

    directory: Path | str
    entries: dict[str, JournalEntry] = field(default_factory=dict)
    _loaded: bool = field(default=False, repr=False)
    _lock: RLock = field(default_factory=RLock, repr=False)

    def __post_init__(self) -> None:
        if isinstance(self.directory, str):
            self.directory = Path(self.directory)
        self._load()

    @property
    def journal_file(self) -> Path:
        assert isinstance(self.directory, Path)
        return self.directory / JOURNAL_FILE

    def _load(self) -> None:
        if self._loaded:
            return

        if self.journal_file.exists():
            with open(self.journal_file) as f:
                data = json.load(f)
                for entry_data in data.get("uploads", []):
                    entry = JournalEntry.from_dict(entry_data)
                    self.entries[entry.key] = entry

        self._loaded = True

    def save(self) -> None:
        with self._lock:
            assert isinstance(self.directory, Path)
            self.directory.mkdir(parents=True, exist_ok=True)

            data = {
                "version": 1,
                "updated_at": datetime.now().isoformat(),
                "uploads": [entry.to_dict() for entry in self.entries.values()],
            }

            tmp_file = self.journal_file.with_suffix(".tmp")
            with open(tmp_file, "w") as f:
                json.dump(data, f, indent=2)
            tmp_file.replace(self.journal_file)

    def start(
        self,
        key: str,
        vault: str,
        file_path: str | Path,
        size: int,
        upload_id: str,
        part_size: int,
    ) -> JournalEntry:
        with self._lock:
            entry = JournalEntry(
                key=key,
                vault=vault,
                file_path=str(Path(file_path).resolve()),
                size=size,
                upload_id=upload_id,
                part_size=part_size,
                started_at=datetime.now().isoformat(),
            )
            self.entries[key] = entry
            self.save()
            return entry

    def record_part(self, key: str, part: PartDescriptor) -> None:
        with self._lock:
            entry = self.entries[key]
            entry.parts[part.index] = part
            self.save()

    def get(self, key: str) -> JournalEntry | None:
        with self._lock:
            return self.entries.get(key)

    def finish(self, key: str) -> None:
        with self._lock:
            if self.entries.pop(key, None) is not None:
                self.save()

    def prune_stale(self, vault: str, file_path: str | Path, keep_key: str) -> list[JournalEntry]:
        """Drop entries for earlier versions of file_path in vault.

        Their keys no longer match once the file changes size or mtime, so
        they would otherwise linger forever. Returns the dropped entries so
        the caller can report the remote uploads they leave behind.
        """
        resolved = Path(file_path).resolve()
        with self._lock:
            stale = [
                entry
                for key, entry in self.entries.items()
                if key != keep_key
                and entry.vault == vault
                and Path(entry.file_path).resolve() == resolved
            ]
            for entry in stale:
                del self.entries[entry.key]
            if stale:
                self.save()
            return stale
