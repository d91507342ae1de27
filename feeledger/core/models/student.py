"""Student directory row: only the fields fee computation depends on."""

from datetime import datetime

from sqlalchemy import Column, DateTime, String

from feeledger.db.session import Base


class StudentRow(Base):
    __tablename__ = "students"

    id = Column(String(64), primary_key=True)
    class_id = Column(String(64), nullable=False, index=True)
    residence_type = Column(String(20), nullable=True)  # Day, Boarding, or unset
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
