"""Caller identity and per-landlord ownership checks.

Every service operation receives a :class:`Caller` explicitly; nothing reads an
ambient "current user". The helpers here either pass silently or raise
:class:`OwnershipViolation`, which is also written to the audit log.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, false

from ..core.errors import OwnershipViolation
from ..models.user import UserRole

audit_logger = logging.getLogger("rentline.audit")


@dataclass(frozen=True, slots=True)
class Caller:
    """Authenticated identity supplied by the authentication layer."""

    user_id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN

    @property
    def is_tenant(self) -> bool:
        return self.role is UserRole.TENANT

    @property
    def manages_properties(self) -> bool:
        return self.role in (UserRole.LANDLORD, UserRole.ADMIN)


def deny(caller: Caller, reason: str, **context: Any) -> OwnershipViolation:
    """Log an audit record and build the violation to raise."""

    details = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
    audit_logger.warning(
        "ownership violation user=%s role=%s reason=%s %s",
        caller.user_id,
        caller.role.value,
        reason,
        details,
    )
    return OwnershipViolation(reason)


def require_role(caller: Caller, *roles: UserRole) -> None:
    """Reject callers whose role is not one of ``roles``."""

    if caller.role not in roles:
        raise deny(caller, "role_not_permitted", allowed=",".join(role.value for role in roles))


def is_landlord_of(caller: Caller, landlord_id: str) -> bool:
    """Admins manage every property; landlords only their own."""

    if caller.is_admin:
        return True
    return caller.role is UserRole.LANDLORD and caller.user_id == landlord_id


def ensure_landlord_scope(caller: Caller, landlord_id: str, **context: Any) -> None:
    """Require the caller to be the owning landlord or an admin."""

    if not is_landlord_of(caller, landlord_id):
        raise deny(caller, "not_owner", landlord_id=landlord_id, **context)


def ensure_party(
    caller: Caller,
    *,
    landlord_id: str,
    tenant_id: str | None,
    **context: Any,
) -> None:
    """Require the caller to be the landlord, an admin, or the tenant of record."""

    if is_landlord_of(caller, landlord_id):
        return
    if caller.is_tenant and tenant_id is not None and caller.user_id == tenant_id:
        return
    raise deny(caller, "not_a_party", landlord_id=landlord_id, **context)


def ensure_tenant_of_record(caller: Caller, tenant_id: str | None, **context: Any) -> None:
    """Require the caller to be the tenant the record belongs to."""

    if not (caller.is_tenant and tenant_id is not None and caller.user_id == tenant_id):
        raise deny(caller, "not_tenant_of_record", **context)


def scope_to_caller(stmt: Select, caller: Caller, *, landlord_col=None, tenant_col=None) -> Select:
    """Restrict a list query to rows the caller may see.

    Landlords are filtered on ``landlord_col`` and tenants on ``tenant_col``.
    When the relevant column is not supplied the query matches nothing.
    """

    if caller.is_admin:
        return stmt
    if caller.role is UserRole.LANDLORD:
        return stmt.where(landlord_col == caller.user_id) if landlord_col is not None else stmt.where(false())
    return stmt.where(tenant_col == caller.user_id) if tenant_col is not None else stmt.where(false())
