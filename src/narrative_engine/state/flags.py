"""
Flag store for time-scoped narrative markers.

Expiry is evaluated lazily on every read. Nothing sweeps stale entries,
so an expired flag may sit in storage until it is cleared or overwritten;
callers only ever ask ``is_active``.

Keys may be player- or team-scoped (``visa_delayed_p3``). Lookups accept
patterns with ``{playerId}`` / ``{teamId}`` placeholders, each matching a
single underscore-free segment. PlayerSnapshot and GameSnapshot reject
ids containing "_" for that reason.
"""

from __future__ import annotations

import logging
import re
from datetime import date, timedelta

from .schema import Flag, FlagLogEntry

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(playerId|teamId)\}")


def is_pattern(key: str) -> bool:
    return _PLACEHOLDER.search(key) is not None


def compile_pattern(pattern: str) -> re.Pattern:
    """Turn ``visa_delayed_{playerId}`` into an anchored regex."""
    parts = _PLACEHOLDER.split(pattern)
    seen: set[str] = set()
    regex = []
    for i, part in enumerate(parts):
        if i % 2 == 0:
            regex.append(re.escape(part))
        elif part in seen:
            regex.append(f"(?P={part})")
        else:
            seen.add(part)
            regex.append(f"(?P<{part}>[^_]+)")
    return re.compile("^" + "".join(regex) + "$")


def fill_pattern(pattern: str, player_id: str | None = None, team_id: str | None = None) -> str:
    """Substitute known ids into a flag pattern."""
    if player_id is not None:
        pattern = pattern.replace("{playerId}", player_id)
    if team_id is not None:
        pattern = pattern.replace("{teamId}", team_id)
    return pattern


class FlagStore:
    """
    Key -> Flag map with lazy expiry.

    Operates in place on the dict and log it is given, so wrapping a
    NarrativeState's ``flags`` and ``flag_log`` mutates that state.
    """

    def __init__(
        self,
        flags: dict[str, Flag] | None = None,
        log: list[FlagLogEntry] | None = None,
    ):
        self._flags = flags if flags is not None else {}
        self._log = log if log is not None else []

    def set(self, key: str, duration_days: int | None, today: date) -> Flag:
        """Set or overwrite a flag. Missing or zero duration means permanent."""
        expires = today + timedelta(days=duration_days) if duration_days else None
        flag = Flag(key=key, set_date=today, expires_date=expires)
        self._flags[key] = flag
        self._log.append(FlagLogEntry(date=today, key=key, action="set", expires_date=expires))
        logger.debug("Flag set: %s (expires %s)", key, expires or "never")
        return flag

    def clear(self, key: str, today: date | None = None) -> bool:
        """Remove a flag. Clearing an absent key is a no-op."""
        if key not in self._flags:
            return False
        del self._flags[key]
        if today is not None:
            self._log.append(FlagLogEntry(date=today, key=key, action="cleared"))
        logger.debug("Flag cleared: %s", key)
        return True

    def get(self, key: str) -> Flag | None:
        return self._flags.get(key)

    def is_active(self, key: str, today: date) -> bool:
        """True iff the key exists and has not reached its expiry date."""
        if is_pattern(key):
            return self.find_active(key, today) is not None
        flag = self._flags.get(key)
        return flag is not None and flag.is_active(today)

    def find_active(self, pattern: str, today: date) -> tuple[str, dict[str, str]] | None:
        """
        First active key matching a placeholder pattern.

        Returns (key, captured placeholders) or None. Keys are scanned in
        sorted order so the result does not depend on insertion history.
        """
        regex = compile_pattern(pattern)
        for key in sorted(self._flags):
            match = regex.match(key)
            if match and self._flags[key].is_active(today):
                return key, match.groupdict()
        return None

    def active_keys(self, today: date) -> list[str]:
        return sorted(k for k, f in self._flags.items() if f.is_active(today))

    def ever_set(self, key: str) -> bool:
        """Whether the key was set at any point, active or not."""
        if key in self._flags:
            return True
        return any(entry.key == key and entry.action == "set" for entry in self._log)

    def __contains__(self, key: str) -> bool:
        return key in self._flags

    def __len__(self) -> int:
        return len(self._flags)
