"""Schemas for bulk mutations."""
from __future__ import annotations

import enum

from pydantic import BaseModel, Field


class BulkEntityType(str, enum.Enum):
    LISTING = "listing"
    APPLICATION = "application"
    LEASE = "lease"
    MAINTENANCE_REQUEST = "maintenance_request"
    INVOICE = "invoice"


class BulkAction(str, enum.Enum):
    DELETE = "delete"
    CANCEL = "cancel"


class BulkMutationRequest(BaseModel):
    entity_type: BulkEntityType
    ids: list[str] = Field(min_length=1, max_length=500)
    action: BulkAction


class BulkMutationResponse(BaseModel):
    mutated_count: int
