"""Consultant model - identity, pricing and public visibility flags"""
from sqlalchemy import Column, String, Text, Boolean, Numeric, DateTime
from sqlalchemy.orm import relationship
from decimal import Decimal
from typing import Optional

from app.models.base import Base, TimestampMixin, id_column
from app.models.enums import SessionType


class Consultant(Base, TimestampMixin):
    """Consultant account"""
    __tablename__ = "consultants"

    id = id_column()
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    phone_country_code = Column(String(5), nullable=False, default="+91")
    phone_number = Column(String(20), nullable=True)
    slug = Column(String(120), unique=True, nullable=False, index=True)

    # Public profile
    consultancy_sector = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    personal_session_title = Column(String(255), nullable=True)
    webinar_session_title = Column(String(255), nullable=True)

    # Pricing
    personal_session_price = Column(Numeric(10, 2), nullable=True)
    webinar_session_price = Column(Numeric(10, 2), nullable=True)

    # Gating flags - all three must hold for public booking
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    is_email_verified = Column(Boolean, nullable=False, default=False)
    is_approved_by_admin = Column(Boolean, nullable=False, default=False, index=True)

    # Microsoft Teams integration (tokens are issued elsewhere)
    teams_access_token = Column(Text, nullable=True)
    teams_token_expires_at = Column(DateTime, nullable=True)

    clients = relationship("Client", back_populates="consultant")
    sessions = relationship("ConsultationSession", back_populates="consultant")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_publicly_bookable(self) -> bool:
        return bool(self.is_active and self.is_email_verified and self.is_approved_by_admin)

    def price_for(self, session_type: SessionType) -> Decimal:
        """Configured price for a session type; an unset price counts as zero"""
        price: Optional[Decimal]
        if session_type == SessionType.PERSONAL:
            price = self.personal_session_price
        else:
            price = self.webinar_session_price
        return Decimal(price) if price is not None else Decimal("0")

    def __repr__(self):
        return f"<Consultant {self.slug}>"
