"""Day-count calculator.

One function per request kind. Submission pre-checks, approval debits and
cancellation credits all go through :func:`request_amount` so the three paths
can never disagree about how much a request is worth.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Union

from leaveflow.common.constants import LeaveSession, RequestKind

HALF_DAY = Decimal("0.5")
_HOURS_QUANTUM = Decimal("0.01")


def leave_days(start_date: date, end_date: date, session: LeaveSession) -> Decimal:
    """Return the number of leave days between two dates, both inclusive.

    FULL_DAY counts every calendar day.  A half-day session on a single day
    counts 0.5; on a multi-day range only one half day is knocked off.
    Weekends and holidays are not excluded.
    """
    inclusive = Decimal((end_date - start_date).days + 1)
    if session == LeaveSession.FULL_DAY:
        return inclusive
    if inclusive == 1:
        return HALF_DAY
    return inclusive - HALF_DAY


def overtime_hours(start_time: datetime, end_time: datetime) -> Decimal:
    """Hours between two instants, rounded to hundredths (the stored NUMERIC(6,2))."""
    seconds = Decimal(str((end_time - start_time).total_seconds()))
    return (seconds / Decimal(3600)).quantize(_HOURS_QUANTUM)


def request_amount(request) -> Union[Decimal, None]:
    """Ledger quantity for a stored request.

    Overtime never touches the ledger, so it yields ``None``.
    """
    if request.kind == RequestKind.leave:
        return leave_days(request.start_date, request.end_date, request.session)
    return None
