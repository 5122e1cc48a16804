"""Audit logging for the catalogue console."""

from catalogue_console.audit.logger import AuditEvent, AuditLogger, get_audit_logger

__all__ = [
    "AuditEvent",
    "AuditLogger",
    "get_audit_logger",
]
