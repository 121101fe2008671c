"""Payment API endpoints for Razorpay integration"""
from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from starlette.concurrency import run_in_threadpool
import logging

from app.config import settings
from app.dependencies.auth import get_current_consultant
from app.dependencies.services import get_payment_gateway, get_payment_service
from app.middleware.rate_limit import limiter
from app.models.consultant import Consultant
from app.schemas.payment import (
    CreatePaymentOrderRequest,
    CreatePaymentOrderResponse,
    FailedPaymentRequest,
    PaymentConfigResponse,
    RefundRequest,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookAck,
)
from app.services.payment_service import PaymentOrderService, RazorpayGateway
from app.utils.errors import ValidationError
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/public/create-order", response_model=CreatePaymentOrderResponse)
@limiter.limit("20/minute")
def create_public_payment_order(
    request: Request,
    response: Response,
    order: CreatePaymentOrderRequest,
    service: PaymentOrderService = Depends(get_payment_service)
):
    """
    Create a Razorpay order for a publicly booked session

    The session must still be awaiting payment and the amount must match it.
    """
    data = service.create_order(
        amount=order.amount,
        client_email=order.client_email,
        client_name=order.client_name,
        session_id=order.session_id,
        quotation_id=order.quotation_id,
        currency=order.currency,
        notes=order.notes,
    )
    logger.info(f"Public payment order created: {data['orderId']} for session {order.session_id}")
    return {"success": True, "message": "Payment order created successfully", "data": data}


@router.post("/create-order", response_model=CreatePaymentOrderResponse)
def create_payment_order(
    order: CreatePaymentOrderRequest,
    service: PaymentOrderService = Depends(get_payment_service),
    consultant: Consultant = Depends(get_current_consultant)
):
    """Create a Razorpay order for one of the consultant's sessions or quotations"""
    data = service.create_order(
        amount=order.amount,
        client_email=order.client_email,
        client_name=order.client_name,
        session_id=order.session_id,
        quotation_id=order.quotation_id,
        consultant_id=consultant.id,
        currency=order.currency,
        notes=order.notes,
    )
    return {"success": True, "message": "Payment order created successfully", "data": data}


@router.post("/public/verify", response_model=VerifyPaymentResponse)
@limiter.limit("30/minute")
def verify_public_payment(
    request: Request,
    response: Response,
    verification: VerifyPaymentRequest,
    service: PaymentOrderService = Depends(get_payment_service)
):
    """Verify the checkout signature and confirm the session"""
    data = service.verify_and_process(
        verification.razorpay_order_id,
        verification.razorpay_payment_id,
        verification.razorpay_signature,
    )
    logger.info(f"Public payment verified: {verification.razorpay_payment_id} -> {data['transactionId']}")
    return {"success": True, "message": "Payment verified and processed successfully", "data": data}


@router.post("/verify", response_model=VerifyPaymentResponse)
def verify_payment(
    verification: VerifyPaymentRequest,
    service: PaymentOrderService = Depends(get_payment_service)
):
    """Verify Razorpay payment signature and reconcile the payment"""
    data = service.verify_and_process(
        verification.razorpay_order_id,
        verification.razorpay_payment_id,
        verification.razorpay_signature,
    )
    return {"success": True, "message": "Payment verified and processed successfully", "data": data}


@router.post("/failed")
def payment_failed(
    failure: FailedPaymentRequest,
    service: PaymentOrderService = Depends(get_payment_service)
):
    """Checkout failure callback"""
    updated = service.handle_failure(failure.order_id, failure.error_code, failure.error_description)
    return {
        "success": True,
        "message": "Payment failure recorded",
        "data": {"orderId": failure.order_id, "transactionsUpdated": updated},
    }


@router.post("/refund")
def refund_payment(
    refund: RefundRequest,
    service: PaymentOrderService = Depends(get_payment_service),
    consultant: Consultant = Depends(get_current_consultant)
):
    """Refund a completed payment (within the refund window)"""
    data = service.process_refund(refund.payment_id, consultant.id, refund.amount, refund.reason)
    return {"success": True, "message": "Refund processed successfully", "data": data}


@router.get("/analytics")
def payment_analytics(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    service: PaymentOrderService = Depends(get_payment_service),
    consultant: Consultant = Depends(get_current_consultant)
):
    """Payment totals for the consultant; defaults to the last 30 days (UTC)"""
    end = datetime.combine(end_date, time.max) if end_date else utcnow()
    start = datetime.combine(start_date, time.min) if start_date else end - timedelta(days=30)
    if start > end:
        raise ValidationError("startDate must not be after endDate")
    data = service.payment_analytics(consultant.id, start, end)
    return {"success": True, "message": "Payment analytics retrieved successfully", "data": data}


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    service: PaymentOrderService = Depends(get_payment_service)
):
    """
    Handle Razorpay webhook events

    Always answers 200 so the gateway does not retry deliveries we have
    already judged; failures are reported in the body and logged.
    """
    signature = request.headers.get("x-razorpay-signature")
    if not signature:
        logger.warning("Webhook received without signature")
        return {"success": False, "message": "Missing webhook signature"}

    body = await request.body()
    try:
        event_type = await run_in_threadpool(service.process_webhook_event, body, signature)
    except Exception as e:
        logger.error(f"Webhook processing failed: {e}", exc_info=True)
        return {"success": False, "message": "Webhook processing failed"}

    return {"success": True, "message": f"Webhook processed: {event_type}"}


@router.get("/config", response_model=PaymentConfigResponse)
def payment_config(gateway: RazorpayGateway = Depends(get_payment_gateway)):
    """Public checkout configuration for the frontend"""
    return {
        "keyId": gateway.key_id,
        "currency": settings.PAYMENT_CURRENCY,
        "minAmount": settings.PAYMENT_MIN_AMOUNT,
        "maxAmount": settings.PAYMENT_MAX_AMOUNT,
        "isConfigured": gateway.is_configured(),
    }
