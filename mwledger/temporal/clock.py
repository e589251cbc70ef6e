"""
Logical Clock for Deterministic Arrival Stamping
================================================

Injectable clock used by the event log to stamp arrival timestamps.

GUARANTEES:
- The log never reads system time directly, only through a clock
- Same tick sequence = identical arrival timestamps = identical replays
- A live clock can record its ticks so a run can be replayed later
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional
from pathlib import Path
import json

from ..contracts.base import Timestamp


class ClockExhausted(Exception):
    """Raised when replay clock runs out of ticks."""
    pass


@dataclass
class LogicalClock:
    """
    Injectable clock for deterministic execution.

    MODES:
    ======
    1. LIVE mode: Uses real system time, optionally logs all ticks
    2. REPLAY mode: Uses pre-recorded tick sequence

    All returned instants are timezone-aware UTC datetimes.
    """
    _ticks: List[datetime] = field(default_factory=list)
    _current_index: int = 0
    _is_live: bool = True
    _record: bool = False

    def now(self) -> datetime:
        """
        Get current logical time.

        In LIVE mode: reads system time (and logs it when recording)
        In REPLAY mode: returns next tick from recorded sequence
        """
        if self._is_live:
            current = datetime.now(timezone.utc)
            if self._record:
                self._ticks.append(current)
                self._current_index = len(self._ticks)
            return current

        if self._current_index >= len(self._ticks):
            raise ClockExhausted(
                f"Replay clock exhausted at index {self._current_index}. "
                f"Recorded sequence had {len(self._ticks)} ticks."
            )
        tick = self._ticks[self._current_index]
        self._current_index += 1
        return tick

    def tick_count(self) -> int:
        """Number of ticks recorded/consumed."""
        return self._current_index

    def remaining(self) -> int:
        """Ticks left in REPLAY mode (0 in LIVE mode)."""
        if self._is_live:
            return 0
        return len(self._ticks) - self._current_index

    def is_live(self) -> bool:
        return self._is_live

    @classmethod
    def live(cls, record: bool = False) -> LogicalClock:
        """Create clock in LIVE mode (uses system time)."""
        return cls(_is_live=True, _record=record)

    @classmethod
    def from_ticks(cls, ticks: Iterable[object]) -> LogicalClock:
        """
        Create clock in REPLAY mode from an explicit tick sequence.

        Ticks may be datetimes or ISO-8601 strings; naive values are UTC.
        """
        normalized = [Timestamp.coerce(t).value for t in ticks]
        return cls(_ticks=normalized, _current_index=0, _is_live=False)

    @classmethod
    def from_log(cls, tick_log_path: Path) -> LogicalClock:
        """Create clock in REPLAY mode from a tick log written by save_log."""
        with open(tick_log_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return cls.from_ticks(data['ticks'])

    def save_log(self, tick_log_path: Path) -> None:
        """Save tick log for future replay."""
        tick_log_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            'version': '1.0',
            'mode': 'live' if self._is_live else 'replay',
            'tick_count': len(self._ticks),
            'ticks': [Timestamp(t).to_iso() for t in self._ticks]
        }

        with open(tick_log_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)

    def __repr__(self) -> str:
        mode = "LIVE" if self._is_live else "REPLAY"
        return f"LogicalClock({mode}, ticks={len(self._ticks)}, index={self._current_index})"


def ensure_clock(clock: Optional[LogicalClock]) -> LogicalClock:
    return clock if clock is not None else LogicalClock.live()
