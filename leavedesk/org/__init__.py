"""Organisational reference data: departments and staff (read-only to the leave engine)."""

from leavedesk.org.models import Department, Staff

__all__ = ["Department", "Staff"]
