"""Billing item: one priced fee category in a class catalog, per term and year."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, Numeric, String

from feeledger.db.session import Base


class BillingItemRow(Base):
    """Catalog row owned by the billing catalog service. Read-only for feeledger."""

    __tablename__ = "billing_items"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="chk_billing_item_amount_non_negative"),
        CheckConstraint(
            "residence_scope IN ('Day','Boarding','Both','Unspecified')",
            name="chk_billing_item_residence_scope",
        ),
        Index("ix_billing_items_class_period", "class_id", "year", "term"),
    )

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    frequency = Column(String(20), nullable=False, default="termly")  # termly, monthly, annual, one-time
    class_id = Column(String(64), nullable=False)
    term = Column(String(30), nullable=True)
    year = Column(String(10), nullable=True)
    residence_scope = Column(String(20), nullable=False, default="Unspecified")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
