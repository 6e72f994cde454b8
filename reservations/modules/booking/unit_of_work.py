"""Transactional scope for reservation mutations.

Every write to bookings, port status, refunds and linked orders happens
inside one ``reservation_transaction``. Leaving the block normally commits;
any exception rolls the whole transaction back, so a booking is never
persisted without its port flip (or the reverse). Datastore failures are
translated into the domain error taxonomy on the way out.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reservations.core.database import SessionLocal
from reservations.core.metrics import BOOKING_CONFLICTS_TOTAL
from reservations.modules.audit.repository import AuditRepository
from reservations.modules.booking.repository import BookingRepository
from reservations.modules.orders.repository import OrderRepository
from reservations.modules.refunds.repository import RefundRepository
from reservations.modules.stations.repository import StationRepository
from reservations.shared.exceptions import ConflictException, TransientException

logger = logging.getLogger(__name__)

EXCLUSION_VIOLATION = "23P01"
UNIQUE_VIOLATION = "23505"
# statement timeout, serialization failure, deadlock
TRANSIENT_SQLSTATES = frozenset({"57014", "40001", "40P01"})


@dataclass(slots=True)
class ReservationUnitOfWork:
    session: AsyncSession
    bookings: BookingRepository
    stations: StationRepository
    refunds: RefundRepository
    orders: OrderRepository
    audit: AuditRepository


UnitOfWorkFactory = Callable[[], AbstractAsyncContextManager[ReservationUnitOfWork]]


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


@asynccontextmanager
async def reservation_transaction(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[ReservationUnitOfWork]:
    """Open a session and a transaction; commit on success, roll back on any error."""
    factory = session_factory or SessionLocal
    try:
        async with factory() as session:
            async with session.begin():
                yield ReservationUnitOfWork(
                    session=session,
                    bookings=BookingRepository(session),
                    stations=StationRepository(session),
                    refunds=RefundRepository(session),
                    orders=OrderRepository(session),
                    audit=AuditRepository(session),
                )
    except IntegrityError as exc:
        state = _sqlstate(exc)
        if state == EXCLUSION_VIOLATION:
            BOOKING_CONFLICTS_TOTAL.labels(operation="write", phase="constraint").inc()
            raise ConflictException(
                "Requested time overlaps an existing booking on this port",
                details={"reason": "exclusion_constraint"},
            ) from exc
        if state == UNIQUE_VIOLATION:
            raise ConflictException("Concurrent update of the same record", details={"reason": "unique"}) from exc
        raise
    except DBAPIError as exc:
        state = _sqlstate(exc)
        if isinstance(exc, (OperationalError, InterfaceError)) or state in TRANSIENT_SQLSTATES:
            logger.warning("Reservation transaction aborted by datastore (sqlstate=%s): %s", state, exc)
            raise TransientException(
                "Datastore is temporarily unavailable, retry the whole operation",
                details={"sqlstate": state},
            ) from exc
        raise
    except (TimeoutError, asyncio.TimeoutError, OSError) as exc:
        logger.warning("Reservation transaction could not reach datastore: %s", exc)
        raise TransientException("Datastore is temporarily unavailable, retry the whole operation") from exc
