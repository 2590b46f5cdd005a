from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field


class Order(SQLModel, table=True):
    order_id: str = Field(primary_key=True)
    item_code: Optional[str] = None
    status: str = "planned"  # planned, in_production, quality_check, ready_to_ship, shipped
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    planned_date: Optional[datetime] = None
    machine: Optional[str] = None
    operator_name: Optional[str] = None
    dependencies_json: str = "[]"  # JSON list of order_ids this order waits on
    version: int = 0  # bumped on every dependency write (conditional updates)


class MachineLoad(SQLModel, table=True):
    """Weekly occupancy of a machine: capacity, planned and booked hours."""
    machine_id: str = Field(primary_key=True)
    station: Optional[str] = None
    operator_name: Optional[str] = None
    hours_per_week: float = 0.0
    production_hours: float = 0.0
    actual_hours: float = 0.0
