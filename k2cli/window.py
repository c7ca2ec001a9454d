"""
Window resolution: five optional read parameters → one immutable Window.

Legal combinations (anything else is ConflictingParameters):

    start_abs + end_abs
    start_abs
    literal_offset
    start_relative
    start_relative + end_relative

Passing nothing at all is accepted too (start unset, end = now); the caller
decides whether a start is required via ``Window.require_start()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from k2cli.errors import ConflictingParameters, InvalidOffset, MissingStartCondition
from k2cli.timeparse import utc_now, parse_absolute, parse_relative, to_millis

_LEGAL: Tuple[Tuple[bool, bool, bool, bool, bool], ...] = (
    # start_abs, end_abs, offset, start_rel, end_rel
    (True, True, False, False, False),
    (True, False, False, False, False),
    (False, False, True, False, False),
    (False, False, False, True, False),
    (False, False, False, True, True),
    (False, False, False, False, False),
)


@dataclass(frozen=True)
class Window:
    """
    Resolved read window.

    At most one of ``start_time`` / ``tail_count`` is set. ``end_time`` is
    always concrete.
    """

    end_time: datetime
    start_time: Optional[datetime] = None
    tail_count: Optional[int] = None

    @property
    def has_time_start(self) -> bool:
        return self.start_time is not None

    @property
    def start_ms(self) -> Optional[int]:
        return to_millis(self.start_time) if self.start_time is not None else None

    @property
    def end_ms(self) -> int:
        return to_millis(self.end_time)

    def require_start(self) -> None:
        if self.start_time is None and self.tail_count is None:
            raise MissingStartCondition(
                "one of --start, --start-offset or --offset is required"
            )


def resolve(
    start_abs: Optional[str] = None,
    end_abs: Optional[str] = None,
    literal_offset: Optional[int] = None,
    start_relative: Optional[str] = None,
    end_relative: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Window:
    """
    Validate and normalize the read parameters.

    Values are parsed first (InvalidTimestamp / InvalidRelativeOffset /
    InvalidOffset), then the combination is checked.

    Args:
        start_abs, end_abs: RFC 3339 timestamps with offset.
        literal_offset: N records before the current tail; sign is ignored, 0 is rejected.
        start_relative, end_relative: natural-language expressions ("1 hour ago").
        now: anchor for relative expressions and the default end (defaults to the clock).
    """
    anchor: datetime = now or utc_now()

    start_dt = parse_absolute(start_abs) if start_abs is not None else None
    end_dt = parse_absolute(end_abs) if end_abs is not None else None
    start_rel = parse_relative(start_relative, anchor) if start_relative is not None else None
    end_rel = parse_relative(end_relative, anchor) if end_relative is not None else None
    if literal_offset is not None and literal_offset == 0:
        raise InvalidOffset("offset must be a non-zero number")

    given = (
        start_dt is not None,
        end_dt is not None,
        literal_offset is not None,
        start_rel is not None,
        end_rel is not None,
    )
    if given not in _LEGAL:
        if given[0] and given[3]:
            raise ConflictingParameters("Invalid set of params: only start-offset or start can be set")
        if given[1] and given[4]:
            raise ConflictingParameters("Invalid set of params: only end-offset or end can be set")
        raise ConflictingParameters("Invalid set of params")

    return Window(
        end_time=end_dt or end_rel or anchor,
        start_time=start_dt or start_rel,
        tail_count=abs(literal_offset) if literal_offset is not None else None,
    )
