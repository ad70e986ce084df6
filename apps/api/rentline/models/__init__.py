"""Expose ORM models."""
from .application import Application, ApplicationStatus
from .billing import Invoice, InvoiceStatus, Payment, PaymentStatus
from .insurance import Insurance, InsuranceStatus
from .lease import Lease, LeaseStatus, TerminationReason
from .listing import Listing, PaymentFrequency, PropertyType
from .maintenance import MaintenanceCategory, MaintenancePriority, MaintenanceRequest, MaintenanceStatus
from .user import User, UserRole

__all__ = [
    "Application",
    "ApplicationStatus",
    "Insurance",
    "InsuranceStatus",
    "Invoice",
    "InvoiceStatus",
    "Lease",
    "LeaseStatus",
    "Listing",
    "MaintenanceCategory",
    "MaintenancePriority",
    "MaintenanceRequest",
    "MaintenanceStatus",
    "Payment",
    "PaymentFrequency",
    "PaymentStatus",
    "PropertyType",
    "TerminationReason",
    "User",
    "UserRole",
]
