"""Charging station directory ORM models."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reservations.core.database import Base, BaseModelMixin, enum_type
from reservations.core.enums import PortStatusEnum


class ChargingStation(BaseModelMixin, Base):
    """Station owned by a vendor; holds the weekday operating-hours table."""

    __tablename__ = "charging_stations"

    vendor_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # {"monday": {"open": "09:00", "close": "22:00", "is_24_hours": false}, ...}
    operating_hours: Mapped[dict] = mapped_column(JSONB, default=dict, nullable=False)
    peak_hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    off_peak_hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    ports: Mapped[list[ChargingPort]] = relationship(
        back_populates="station",
        cascade="all, delete-orphan",
        order_by="ChargingPort.port_number",
    )


class ChargingPort(BaseModelMixin, Base):
    """Individually bookable charging connector."""

    __tablename__ = "charging_ports"

    station_id: Mapped[UUID] = mapped_column(
        ForeignKey("charging_stations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    port_number: Mapped[str] = mapped_column(String(16), nullable=False)
    connector_type: Mapped[str] = mapped_column(String(32), nullable=False)
    power_output_kw: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    is_operational: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    current_status: Mapped[PortStatusEnum] = mapped_column(
        enum_type(PortStatusEnum, "port_status_enum"),
        default=PortStatusEnum.AVAILABLE,
        nullable=False,
    )

    station: Mapped[ChargingStation] = relationship(back_populates="ports")
