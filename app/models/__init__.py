"""
Modelos SQLAlchemy: exportar todos para que Alembic los detecte.
"""

from app.models.user import User
from app.models.catalog import Complaint, Status
from app.models.formula import Formula
from app.models.appointment import Appointment
from app.models.audit_log import AuditLog

__all__ = [
    "User",
    "Complaint",
    "Status",
    "Formula",
    "Appointment",
    "AuditLog",
]
