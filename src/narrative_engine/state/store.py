"""
Narrative state storage.

The engine only needs serialize/restore; this is the thin save-slot layer
the host game can plug in. Flags, cooldowns, active events and history
are written together as one blob per slot.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from .schema import NarrativeState

logger = logging.getLogger(__name__)


@runtime_checkable
class NarrativeStore(Protocol):
    """
    Storage interface for narrative state blobs.

    Implementations:
    - JsonNarrativeStore: File-based persistence (production)
    - MemoryNarrativeStore: In-memory storage (testing)
    """

    def save(self, slot_id: str, state: NarrativeState) -> None:
        """Persist a state blob under a save slot."""
        ...

    def load(self, slot_id: str) -> NarrativeState | None:
        """Load a slot. Returns None if not found or unreadable."""
        ...

    def delete(self, slot_id: str) -> bool:
        """Delete a slot. Returns True if deleted."""
        ...

    def list_all(self) -> list[dict]:
        """List slots with metadata."""
        ...

    def exists(self, slot_id: str) -> bool:
        ...


class JsonNarrativeStore:
    """
    File-based storage, one JSON file per slot.

    The previous file is kept as ``<slot>.json.bak`` on overwrite.
    """

    def __init__(self, saves_dir: Path | str = "saves"):
        self.saves_dir = Path(saves_dir)
        self.saves_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, slot_id: str) -> Path:
        return self.saves_dir / f"{slot_id}.json"

    def save(self, slot_id: str, state: NarrativeState) -> None:
        path = self._path(slot_id)

        if path.exists():
            backup = path.with_suffix(".json.bak")
            backup.write_text(path.read_text(encoding="utf-8"), encoding="utf-8")

        path.write_text(state.model_dump_json(indent=2), encoding="utf-8")

    def load(self, slot_id: str) -> NarrativeState | None:
        path = self._path(slot_id)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return NarrativeState.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error("Could not load narrative slot %s: %s", slot_id, e)
            return None

    def delete(self, slot_id: str) -> bool:
        path = self._path(slot_id)
        if path.exists():
            path.unlink()
            return True
        return False

    def list_all(self) -> list[dict]:
        """Slots sorted by modification time, newest first."""
        slots = []
        for f in sorted(
            self.saves_dir.glob("*.json"),
            key=lambda x: x.stat().st_mtime,
            reverse=True,
        ):
            try:
                data = json.loads(f.read_text(encoding="utf-8"))
            except json.JSONDecodeError:
                continue
            if not isinstance(data, dict):
                continue
            slots.append({
                "id": f.stem,
                "active_events": len(data.get("active_events", data.get("activeEvents", []))),
                "history": len(data.get("event_history", data.get("eventHistory", []))),
                "updated_at": datetime.fromtimestamp(f.stat().st_mtime),
            })
        return slots

    def exists(self, slot_id: str) -> bool:
        return self._path(slot_id).exists()


class MemoryNarrativeStore:
    """
    In-memory storage for testing.

    Stores serialized dicts so a loaded state never aliases a saved one.
    """

    def __init__(self):
        self.slots: dict[str, dict] = {}
        self._saved_at: dict[str, datetime] = {}

    def save(self, slot_id: str, state: NarrativeState) -> None:
        self.slots[slot_id] = state.model_dump(mode="json")
        self._saved_at[slot_id] = datetime.now()

    def load(self, slot_id: str) -> NarrativeState | None:
        data = self.slots.get(slot_id)
        if data is None:
            return None
        return NarrativeState.model_validate(data)

    def delete(self, slot_id: str) -> bool:
        if slot_id in self.slots:
            del self.slots[slot_id]
            del self._saved_at[slot_id]
            return True
        return False

    def list_all(self) -> list[dict]:
        slots = [
            {
                "id": slot_id,
                "active_events": len(data["active_events"]),
                "history": len(data["event_history"]),
                "updated_at": self._saved_at[slot_id],
            }
            for slot_id, data in self.slots.items()
        ]
        slots.sort(key=lambda x: x["updated_at"], reverse=True)
        return slots

    def exists(self, slot_id: str) -> bool:
        return slot_id in self.slots

    def clear(self) -> None:
        """Clear all slots (test utility)."""
        self.slots.clear()
        self._saved_at.clear()
