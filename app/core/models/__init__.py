from app.core.models.settlement_audit_log import SettlementAuditLog

__all__ = ["SettlementAuditLog"]
