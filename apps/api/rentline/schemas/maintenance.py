"""Schemas for maintenance requests."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ..models.maintenance import MaintenanceCategory, MaintenancePriority, MaintenanceStatus


class MaintenanceCreate(BaseModel):
    listing_id: str
    lease_id: str | None = None
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    category: MaintenanceCategory
    priority: MaintenancePriority = MaintenancePriority.MEDIUM


class MaintenanceTransition(BaseModel):
    target: MaintenanceStatus


class MaintenanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    listing_id: str
    lease_id: str | None = None
    raised_by_id: str
    tenant_id: str | None = None
    title: str
    description: str
    category: MaintenanceCategory
    priority: MaintenancePriority
    status: MaintenanceStatus
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
