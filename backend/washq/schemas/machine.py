"""
Pydantic schemas for machines: the domain view and request/response bodies.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class MachineStatus(str, Enum):
    AVAILABLE = "available"
    RUNNING = "running"
    WAITING = "waiting"
    OUT_OF_ORDER = "out-of-order"


class Machine(BaseModel):
    id: str
    name: str
    status: MachineStatus = MachineStatus.AVAILABLE
    queue_count: Optional[int] = Field(None, ge=0)
    time_remaining: Optional[int] = Field(None, ge=0)
    created_at: Optional[datetime] = None
    # Transient: a start_wash is in flight. Never persisted.
    starting: bool = False

    model_config = ConfigDict(use_enum_values=True, from_attributes=True)

    def to_record(self) -> dict:
        return self.model_dump(exclude={"starting"})


class MachineCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class MachineStatusUpdate(BaseModel):
    status: MachineStatus
    # Accepted for client compatibility; entering `running` always uses the
    # canonical wash duration.
    time_remaining: Optional[int] = Field(None, ge=0)


class MachineListResponse(BaseModel):
    machines: list[Machine]
    total: int
    available: int
    cached: bool = False


class ScanRequest(BaseModel):
    payload: str = Field(..., max_length=2048)


class MachineQRResponse(BaseModel):
    machine_id: str
    payload: str
