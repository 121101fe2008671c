"""Payment transaction and quotation models"""
from sqlalchemy import Column, String, Text, Numeric, ForeignKey, DateTime, Enum as SQLEnum, JSON, Integer
from sqlalchemy.orm import relationship

from app.models.base import Base, TimestampMixin, id_column
from app.models.enums import PaymentTransactionStatus, QuotationStatus


class Quotation(Base, TimestampMixin):
    """Quotation a consultant sends to a prospective client"""
    __tablename__ = "quotations"

    id = id_column()
    consultant_id = Column(String(36), ForeignKey("consultants.id"), nullable=False, index=True)
    quotation_number = Column(String(50), unique=True, nullable=False)

    client_name = Column(String(200), nullable=False)
    client_email = Column(String(255), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    base_amount = Column(Numeric(10, 2), nullable=False)
    discount_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    final_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")

    status = Column(SQLEnum(QuotationStatus), nullable=False, default=QuotationStatus.DRAFT, index=True)
    valid_until = Column(DateTime, nullable=True)
    view_count = Column(Integer, nullable=False, default=0)
    responded_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<Quotation {self.quotation_number} - ₹{self.final_amount}>"


class PaymentTransaction(Base, TimestampMixin):
    """Gateway order/payment tied to exactly one session or quotation"""
    __tablename__ = "payment_transactions"

    id = id_column()
    session_id = Column(String(36), ForeignKey("sessions.id"), nullable=True, index=True)
    quotation_id = Column(String(36), ForeignKey("quotations.id"), nullable=True, index=True)
    consultant_id = Column(String(36), ForeignKey("consultants.id"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=True)
    client_email = Column(String(255), nullable=True)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    payment_method = Column(String(50), nullable=True)

    gateway_order_id = Column(String(100), unique=True, nullable=True)
    # Unique so a replayed payment can never produce a second completed row
    gateway_payment_id = Column(String(100), unique=True, nullable=True)
    gateway_response = Column(JSON, nullable=True)

    status = Column(
        SQLEnum(PaymentTransactionStatus),
        nullable=False,
        default=PaymentTransactionStatus.PENDING,
        index=True,
    )
    transaction_type = Column(String(20), nullable=False, default="payment")
    failure_reason = Column(String(500), nullable=True)
    processed_at = Column(DateTime, nullable=True)

    session = relationship("ConsultationSession", backref="payment_transactions")
    quotation = relationship("Quotation", backref="payment_transactions")

    def __repr__(self):
        return f"<PaymentTransaction {self.gateway_order_id} - {self.status}>"
