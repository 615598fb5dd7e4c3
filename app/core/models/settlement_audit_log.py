"""Settlement audit log: what was composed and submitted, kept so it can be re-derived later."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, Numeric, String, Uuid

from app.db.session import Base


class SettlementAuditLog(Base):
    """
    One row per successful submission. `inputs` holds the catalog snapshot, selections,
    other fee and remarks; `settlement` holds the request exactly as it was submitted.
    Rows are never updated.
    """

    __tablename__ = "settlement_audit_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    enrollment_id = Column(Integer, nullable=False, index=True)
    admission_no = Column(String(50), nullable=False, index=True)
    payment_method = Column(String(20), nullable=False)  # CASH, CARD, UPI, BANK_TRANSFER, CHEQUE
    inputs = Column(JSON, nullable=False)
    settlement = Column(JSON, nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    surcharge = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)
    receipt_ref = Column(Integer, nullable=False)  # income id on the fee backend
    receipt_no = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
