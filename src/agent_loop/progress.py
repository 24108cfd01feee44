"""Append-only progress ledger persisted between loop iterations."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from agent_loop.contracts import load_json, write_json_atomic

logger = logging.getLogger(__name__)


class EntryKind(str, Enum):
    """Outcome recorded by one ledger entry."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(slots=True)
class ProgressEntry:
    """One iteration outcome."""

    story_id: str
    summary: str
    files_changed: list[str] = field(default_factory=list)
    learnings: list[str] = field(default_factory=list)
    kind: EntryKind = EntryKind.COMPLETED
    iteration: int | None = None
    recorded_at: str = field(default_factory=lambda: datetime.now(tz=UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "storyId": self.story_id,
            "summary": self.summary,
            "filesChanged": list(self.files_changed),
            "learnings": list(self.learnings),
            "kind": self.kind.value,
            "iteration": self.iteration,
            "recordedAt": self.recorded_at,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> ProgressEntry:
        if not isinstance(raw, dict):
            raise TypeError("progress entry must be an object")
        story_id = raw.get("storyId")
        summary = raw.get("summary", "")
        files_changed = raw.get("filesChanged", [])
        learnings = raw.get("learnings", [])
        if not isinstance(story_id, str):
            raise TypeError("progress.storyId must be a string")
        if not isinstance(summary, str):
            raise TypeError("progress.summary must be a string")
        if not isinstance(files_changed, list) or not isinstance(learnings, list):
            raise TypeError("progress.filesChanged and progress.learnings must be arrays")
        return cls(
            story_id=story_id,
            summary=summary,
            files_changed=[str(item) for item in files_changed],
            learnings=[str(item) for item in learnings],
            kind=EntryKind(raw.get("kind", EntryKind.COMPLETED.value)),
            iteration=raw.get("iteration"),
            recorded_at=str(raw.get("recordedAt", "")),
        )


@dataclass(slots=True)
class ProgressLog:
    """Entries in append order plus learnings derived from them."""

    entries: list[ProgressEntry] = field(default_factory=list)

    @property
    def learnings(self) -> list[str]:
        seen: set[str] = set()
        merged: list[str] = []
        for entry in self.entries:
            for learning in entry.learnings:
                if learning in seen:
                    continue
                seen.add(learning)
                merged.append(learning)
        return merged

    def entries_for(self, story_id: str) -> list[ProgressEntry]:
        return [entry for entry in self.entries if entry.story_id == story_id]

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries": [entry.to_dict() for entry in self.entries],
            "learnings": self.learnings,
        }


class ProgressTracker:
    """File operations on the progress ledger."""

    @staticmethod
    def initialize(path: Path) -> None:
        """Create an empty ledger unless one already exists."""

        if path.exists():
            return
        write_json_atomic(path, ProgressLog().to_dict())
        logger.debug("Initialized progress ledger at %s", path)

    @staticmethod
    def append(path: Path, entry: ProgressEntry) -> None:
        """Add one entry; the previous file stays intact until the new one is renamed in."""

        log = ProgressTracker.read(path)
        log.entries.append(entry)
        write_json_atomic(path, log.to_dict())

    @staticmethod
    def read(path: Path) -> ProgressLog:
        if not path.exists():
            return ProgressLog()
        if not path.read_text("utf-8").strip():
            return ProgressLog()
        try:
            raw = load_json(path)
        except json.JSONDecodeError as error:
            raise ValueError(f"Progress ledger is not valid JSON: {path}") from error
        raw_entries = raw.get("entries", [])
        if not isinstance(raw_entries, list):
            raise TypeError("progress.entries must be an array")
        return ProgressLog(entries=[ProgressEntry.from_dict(item) for item in raw_entries])
