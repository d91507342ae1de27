"""Payment record: append-only ledger entry for a student."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, Text

from feeledger.db.session import Base


class PaymentRecordRow(Base):
    """Ledger entry. Rows are inserted once and never updated or deleted."""

    __tablename__ = "payment_records"
    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_payment_record_amount_positive"),
        CheckConstraint(
            "status IN ('paid','pending','overdue')",
            name="chk_payment_record_status",
        ),
    )

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id = Column(String(64), ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True)
    billing_type = Column(String(100), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(30), nullable=False)  # cash, momo, bank-transfer, ...
    status = Column(String(20), nullable=False, default="paid")
    reference = Column(String(100), nullable=False, unique=True)  # receipt number
    description = Column(Text, nullable=True)
    term = Column(String(30), nullable=True)
    year = Column(String(10), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
