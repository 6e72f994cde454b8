"""Station directory repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from reservations.core.enums import PortStatusEnum
from reservations.modules.stations.models import ChargingPort, ChargingStation


class StationRepository:
    """Read access to stations and port status writes."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_station_by_id(self, station_id: UUID) -> ChargingStation | None:
        stmt = (
            select(ChargingStation)
            .options(selectinload(ChargingStation.ports))
            .where(ChargingStation.id == station_id)
        )
        return await self.session.scalar(stmt)

    async def get_port(self, station_id: UUID, port_id: UUID, *, lock: bool = False) -> ChargingPort | None:
        """Fetch port; with lock=True the row is held FOR UPDATE until the transaction ends."""
        stmt = select(ChargingPort).where(
            ChargingPort.id == port_id,
            ChargingPort.station_id == station_id,
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self.session.scalar(stmt)

    async def set_port_status(self, port: ChargingPort, status: PortStatusEnum) -> ChargingPort:
        port.current_status = status
        await self.session.flush()
        return port
