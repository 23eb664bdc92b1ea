from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class AppointmentQuery:
    """Named filters for appointment lookups. ``None`` means "no filter"."""

    organization_id: str
    doctor_id: str | None = None
    patient_id: str | None = None
    date: date | None = None
    start_date: date | None = None
    end_date: date | None = None
    status: str | None = None
    exclude_id: str | None = None
    limit: int | None = None
