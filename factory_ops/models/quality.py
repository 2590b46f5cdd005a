from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field


class TrackedProduct(SQLModel, table=True):
    lot_number: str = Field(primary_key=True)
    item_code: str
    origin_machine: Optional[str] = None
    current_station: Optional[str] = None
    status: str = "in_progress"  # in_progress -> completed

    inspection_status: Optional[str] = None  # e.g. "temporary_reject"
    inspection_timestamp: Optional[datetime] = None
    reminder_sent: bool = False

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ProductionStandard(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    item_code: str = Field(index=True)
    machine: str
    standard_minutes: float
    updated_at: Optional[datetime] = None
    auto_learning_json: Optional[str] = None  # last auto-learning adjustment
