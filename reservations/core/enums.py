"""Core enums used across modules."""

from enum import StrEnum


class PortStatusEnum(StrEnum):
    """Physical charging port status."""

    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    OUT_OF_ORDER = "out_of_order"


class BookingStatusEnum(StrEnum):
    """Booking lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    FAILED = "failed"


# Bookings in these states hold their port interval.
OCCUPYING_BOOKING_STATUSES = (BookingStatusEnum.CONFIRMED, BookingStatusEnum.ACTIVE)
CANCELLABLE_BOOKING_STATUSES = (BookingStatusEnum.PENDING, BookingStatusEnum.CONFIRMED)


class PaymentStatusEnum(StrEnum):
    """Booking payment status."""

    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"


class CancelledByEnum(StrEnum):
    """Party that cancelled a booking or order."""

    USER = "user"
    VENDOR = "vendor"
    ADMIN = "admin"
    SYSTEM = "system"


class RefundStatusEnum(StrEnum):
    """Refund processing status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


class FoodOrderStatusEnum(StrEnum):
    """Food order status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    CANCELLED = "cancelled"


CANCELLABLE_ORDER_STATUSES = (
    FoodOrderStatusEnum.PENDING,
    FoodOrderStatusEnum.CONFIRMED,
    FoodOrderStatusEnum.PREPARING,
)


class OutboxStatusEnum(StrEnum):
    """Outbox event status for integration publishing."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"
