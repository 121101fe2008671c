"""Client model - one row per (consultant, email)"""
from sqlalchemy import Column, String, Boolean, Integer, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.models.base import Base, TimestampMixin, id_column


class Client(Base, TimestampMixin):
    """A consultant's client; email is unique per consultant, not globally"""
    __tablename__ = "clients"
    __table_args__ = (
        UniqueConstraint("email", "consultant_id", name="clients_email_consultant_id_key"),
    )

    id = id_column()
    consultant_id = Column(String(36), ForeignKey("consultants.id"), nullable=False, index=True)

    email = Column(String(255), nullable=False, index=True)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    name = Column(String(200), nullable=False)
    phone_number = Column(String(20), nullable=True)
    phone_country_code = Column(String(5), nullable=True, default="+91")
    is_active = Column(Boolean, nullable=False, default=True)

    # Counters - incremented by booking/payment events, never recomputed
    total_sessions = Column(Integer, nullable=False, default=0)
    total_amount_paid = Column(Numeric(10, 2), nullable=False, default=0)

    consultant = relationship("Consultant", back_populates="clients")
    sessions = relationship("ConsultationSession", back_populates="client")

    def __repr__(self):
        return f"<Client {self.email} ({self.consultant_id})>"
