"""
Audit trail for corrective actions.
"""

from .audit_log import AuditLog

__all__ = ["AuditLog"]
