"""Pydantic schemas for machines."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class MachineCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=200)


class MachineUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=200)
    is_active: Optional[bool] = None


class MachineRead(BaseModel):
    id: uuid.UUID
    code: str
    name: str
    description: Optional[str]
    location: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
