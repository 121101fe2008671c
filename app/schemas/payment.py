"""Payment schemas for request/response validation"""
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional, Dict
from decimal import Decimal


class CreatePaymentOrderRequest(BaseModel):
    """Request to create a payment order for a session or quotation"""
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(None, alias="sessionId", description="Session being paid for")
    quotation_id: Optional[str] = Field(None, alias="quotationId", description="Quotation being paid for")
    amount: Decimal = Field(..., ge=0, le=500000, description="Amount in INR")
    currency: str = Field("INR", description="Currency code")
    client_email: EmailStr = Field(..., alias="clientEmail")
    client_name: str = Field(..., alias="clientName", min_length=1)
    notes: Optional[Dict[str, str]] = Field(None, description="Additional notes")


class PaymentOrderData(BaseModel):
    orderId: str
    amount: float
    currency: str
    transactionId: str
    keyId: str
    receipt: Optional[str] = None
    createdAt: Optional[int] = None


class CreatePaymentOrderResponse(BaseModel):
    """Response after creating payment order"""
    success: bool = True
    message: str = "Payment order created successfully"
    data: PaymentOrderData


class VerifyPaymentRequest(BaseModel):
    """Checkout callback fields from Razorpay"""
    model_config = ConfigDict(populate_by_name=True)

    razorpay_order_id: str = Field(..., alias="razorpayOrderId", description="Razorpay order ID")
    razorpay_payment_id: str = Field(..., alias="razorpayPaymentId", description="Razorpay payment ID")
    razorpay_signature: str = Field(..., alias="razorpaySignature", description="Payment signature")


class VerifiedPaymentData(BaseModel):
    transactionId: str
    paymentId: str
    amount: float
    currency: str
    status: str


class VerifyPaymentResponse(BaseModel):
    """Response after verifying payment"""
    success: bool = True
    message: str = "Payment verified and processed successfully"
    data: VerifiedPaymentData


class FailedPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(..., alias="orderId")
    error_code: Optional[str] = Field(None, alias="errorCode")
    error_description: Optional[str] = Field(None, alias="errorDescription")


class RefundRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(..., alias="paymentId")
    amount: Optional[Decimal] = Field(None, gt=0, description="Partial refund amount; full refund when omitted")
    reason: Optional[str] = Field(None, max_length=500)


class WebhookAck(BaseModel):
    """Webhook responses are always 200 with this body"""
    success: bool
    message: str


class PaymentConfigResponse(BaseModel):
    keyId: str
    currency: str
    minAmount: float
    maxAmount: float
    isConfigured: bool
