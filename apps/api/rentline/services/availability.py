"""Listing availability resolver."""
from __future__ import annotations

from collections.abc import Iterable

from ..models.application import Application
from ..models.lease import Lease, LeaseStatus
from ..models.listing import Listing


def is_available(listing: Listing, applications: Iterable[Application], leases: Iterable[Lease]) -> bool:
    """Return True when the listing is open for new applications.

    Any live application hides the listing, whatever its status: a REJECTED
    application keeps the slot closed until it is cleared explicitly (see
    ``listings.reopen_listing``). An ACTIVE lease also closes it.
    """

    if listing.deleted_at is not None:
        return False
    for application in applications:
        if application.listing_id == listing.id and application.deleted_at is None:
            return False
    for lease in leases:
        if lease.listing_id == listing.id and lease.status == LeaseStatus.ACTIVE:
            return False
    return True
