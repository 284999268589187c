"""
Shared Pydantic schemas used across the application.
"""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field

from shared.constants import Limits, TIME_PATTERN


# =============================================================================
# Common Types
# =============================================================================

ReservationStatusValue = Literal["pending", "confirmed", "rejected", "cancelled", "arrived"]
CapacityLevel = Literal["ok", "warning"]
TimeOfDay = str  # "HH:MM"


# =============================================================================
# Public Booking Schemas
# =============================================================================


class BookingRequest(BaseModel):
    """Public booking form submission."""

    customer_name: str = Field(min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    customer_email: EmailStr
    customer_phone: str = Field(min_length=5, max_length=Limits.MAX_PHONE_LENGTH)
    guests: int = Field(ge=Limits.MIN_GUESTS, le=Limits.MAX_GUESTS)
    high_chairs: int = Field(default=0, ge=0, le=Limits.MAX_HIGH_CHAIRS)
    date: date
    time: str = Field(pattern=TIME_PATTERN)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class BookingResponse(BaseModel):
    """Acknowledgement returned to the public booking form."""

    reservation_id: int
    status: ReservationStatusValue
    date: date
    time: str


class SlotsOutput(BaseModel):
    """Bookable slots for one date."""

    date: date
    is_open: bool
    slots: list[str]


# =============================================================================
# Reservation Schemas (staff dashboard)
# =============================================================================


class ReservationOutput(BaseModel):
    """A reservation as shown on the dashboard."""

    id: int
    customer_name: str
    customer_email: str
    customer_phone: str
    guests: int
    high_chairs: int
    date: date
    time: str
    notes: str | None = None
    status: ReservationStatusValue
    rejection_reason: str | None = None
    table_ids: list[int] = []
    created_at: datetime | None = None
    confirmed_at: datetime | None = None
    arrived_at: datetime | None = None


class DayOverviewOutput(BaseModel):
    """Reservations of a day, sorted by time, with dashboard counters."""

    date: date
    reservations: list[ReservationOutput]
    pending_count: int
    confirmed_count: int
    total_pending: int  # across every date


class AcceptRequest(BaseModel):
    """Tables chosen by staff to confirm a pending reservation."""

    table_ids: list[int] = Field(default_factory=list, max_length=20)


class RejectRequest(BaseModel):
    """Optional reason forwarded to the customer e-mail."""

    reason: str | None = Field(default=None, max_length=Limits.MAX_REJECTION_REASON_LENGTH)


class CapacityCheckOutput(BaseModel):
    """Soft validation of a table selection. Warnings never block."""

    level: CapacityLevel
    reasons: list[str] = []
    selected_seats: int
    missing_seats: int = 0
    high_chairs_missing: int = 0


class TransitionResponse(BaseModel):
    """Result of a staff action on a reservation."""

    reservation: ReservationOutput
    capacity_check: CapacityCheckOutput | None = None
    notification_sent: bool


# =============================================================================
# Table / Allocation Schemas
# =============================================================================


class TableOutput(BaseModel):
    id: int
    name: str
    seats: int
    is_active: bool
    display_order: int = 0

    class Config:
        from_attributes = True


class AvailabilityOutput(BaseModel):
    date: date
    time: str
    available: list[TableOutput]
    occupied_table_ids: list[int]


class PairSuggestionOutput(BaseModel):
    tables: list[TableOutput]
    total_seats: int


class SuggestionsOutput(BaseModel):
    """Best-fit single tables and smallest covering pairs for a reservation."""

    reservation_id: int
    guests: int
    high_chairs: int
    high_chairs_available: int
    available: list[TableOutput]
    single: list[TableOutput]
    pairs: list[PairSuggestionOutput]


class OccupancyDetailOutput(BaseModel):
    reservation_id: int
    time: str
    guests: int
    high_chairs: int
    customer_name: str
    notes: str | None = None
    status: ReservationStatusValue


class OccupancyOutput(BaseModel):
    """Room view for one date."""

    date: date
    occupied_table_ids: list[int]
    details: dict[int, OccupancyDetailOutput]
    occupancy_percent: int
    total_capacity: int
    occupied_seats: int
    free_seats: int
    high_chairs_used: int
    high_chairs_available: int


# =============================================================================
# Configuration Schemas
# =============================================================================


class TableInput(BaseModel):
    """Table from the room editor. id is None for new tables."""

    id: int | None = None
    name: str = Field(min_length=1, max_length=60)
    seats: int = Field(gt=0, le=Limits.MAX_TABLE_SEATS)
    is_active: bool = True


class ShiftInput(BaseModel):
    """Recurring booking window. days_of_week uses 0=Sunday ... 6=Saturday."""

    id: int | None = None
    name: str = Field(min_length=1, max_length=60)
    start_time: str = Field(pattern=TIME_PATTERN)
    end_time: str = Field(pattern=TIME_PATTERN)
    days_of_week: list[int] = Field(min_length=1, max_length=7)
    is_active: bool = True


class ShiftOutput(BaseModel):
    id: int
    name: str
    start_time: str
    end_time: str
    days_of_week: list[int]
    is_active: bool

    class Config:
        from_attributes = True


class ReservationConfigInput(BaseModel):
    """Whole configuration unit written by the configuration wizard."""

    is_active: bool = False
    total_seats: int = Field(default=0, ge=0)
    total_high_chairs: int = Field(default=0, ge=0)
    notification_email: EmailStr | None = None
    tables: list[TableInput] = []
    shifts: list[ShiftInput] = []


class ReservationConfigOutput(BaseModel):
    is_active: bool
    total_seats: int
    total_high_chairs: int
    notification_email: str | None = None
    tables: list[TableOutput]
    shifts: list[ShiftOutput]
