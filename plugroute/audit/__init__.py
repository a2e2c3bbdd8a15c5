"""Audit logging for routing decisions."""

from .audit import AuditLog, AuditEntry, AuditAction

__all__ = ["AuditLog", "AuditEntry", "AuditAction"]
