from __future__ import annotations
from datetime import time
from typing import Iterable, List, Optional

from sigap.workflow.records import ZoomTicket
from sigap.workflow.types import ZoomStatus

# bookings in these states still hold their slot
OCCUPYING = frozenset({ZoomStatus.PENDING_REVIEW, ZoomStatus.APPROVED})


def parse_clock(value: Optional[str]) -> Optional[time]:
    """Parse 'HH:MM' or 'HH:MM:SS'; None for anything else."""
    if not value:
        return None
    parts = str(value).strip().split(':')
    try:
        hour, minute = int(parts[0]), int(parts[1])
        second = int(parts[2]) if len(parts) > 2 else 0
        return time(hour, minute, second)
    except (IndexError, ValueError):
        return None


def overlaps(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    # half-open ranges: a meeting ending at 10:00 does not clash with one starting at 10:00
    return start_a < end_b and start_b < end_a


def find_conflicts(candidate: ZoomTicket, bookings: Iterable[ZoomTicket], account_id: Optional[str] = None) -> List[ZoomTicket]:
    """Bookings that would share a zoom account slot with ``candidate``.

    ``account_id`` is the account the reviewer intends to assign; defaults to the one
    already on the candidate. Without an account every booking on the date counts.
    """
    account = account_id or candidate.zoom_account_id
    start, end = parse_clock(candidate.start_time), parse_clock(candidate.end_time)
    if start is None or end is None or not candidate.zoom_date:
        return []
    clashes = []
    for other in bookings:
        if other.id == candidate.id or other.status not in OCCUPYING:
            continue
        if other.zoom_date != candidate.zoom_date:
            continue
        if account and other.zoom_account_id and str(other.zoom_account_id) != str(account):
            continue
        o_start, o_end = parse_clock(other.start_time), parse_clock(other.end_time)
        if o_start is None or o_end is None:
            continue
        if overlaps(start, end, o_start, o_end):
            clashes.append(other)
    return clashes


__all__ = ['OCCUPYING', 'parse_clock', 'overlaps', 'find_conflicts']
