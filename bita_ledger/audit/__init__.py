"""Audit logging package."""

from bita_ledger.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
