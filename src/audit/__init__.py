"""
Audit Module - Append-only record of every state-changing operation.
"""

from src.audit.audit_log import AuditAction, AuditBuffer, AuditEntry, AuditLog, query_audit_log

__all__ = [
    "AuditAction",
    "AuditBuffer",
    "AuditEntry",
    "AuditLog",
    "query_audit_log",
]
