"""Audit logging package."""

from accounting.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
