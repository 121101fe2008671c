"""Payment service for Razorpay integration"""
import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Union
import uuid

import razorpay
from razorpay.errors import BadRequestError, GatewayError, ServerError, SignatureVerificationError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.consultation import ConsultationSession
from app.models.enums import PaymentStatus, PaymentTransactionStatus, QuotationStatus
from app.models.payment import PaymentTransaction, Quotation
from app.services.cache_service import payment_invalidation_patterns
from app.services.client_service import ClientService
from app.services.notification_service import SideEffectDispatcher
from app.utils.errors import AppError, ExternalServiceError, ValidationError
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")


def to_paise(amount: Union[Decimal, float]) -> int:
    """Razorpay works in the smallest currency unit"""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))


class RazorpayGateway:
    """Thin wrapper over the Razorpay SDK client"""

    def __init__(
        self,
        client: Optional[razorpay.Client] = None,
        key_id: Optional[str] = None,
        webhook_secret: Optional[str] = None
    ):
        self.client = client
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.RAZORPAY_WEBHOOK_SECRET

    @classmethod
    def from_settings(cls) -> "RazorpayGateway":
        if settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET:
            client = razorpay.Client(auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET))
        else:
            logger.warning("Razorpay credentials not configured. Payments disabled.")
            client = None
        return cls(client)

    def is_configured(self) -> bool:
        """Check if Razorpay is configured"""
        return self.client is not None

    def _require_client(self) -> razorpay.Client:
        if not self.is_configured():
            raise AppError(
                "Payment service not initialized. Please configure Razorpay credentials.",
                503,
                "PAYMENT_SERVICE_UNAVAILABLE"
            )
        return self.client

    def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        order_data = {
            "amount": to_paise(amount),
            "currency": currency,
            "receipt": receipt,
            "payment_capture": 1,  # Auto-capture payment
            "notes": notes or {},
        }
        return self._require_client().order.create(data=order_data)

    def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        return self._require_client().payment.fetch(payment_id)

    def refund(self, payment_id: str, amount: Decimal, notes: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        refund_data = {"amount": to_paise(amount), "notes": notes or {}}
        return self._require_client().payment.refund(payment_id, refund_data)

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Checkout signature over ``order_id|payment_id`` with the key secret"""
        client = self._require_client()
        try:
            return bool(client.utility.verify_payment_signature({
                "razorpay_order_id": order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature,
            }))
        except SignatureVerificationError:
            return False

    def verify_webhook_signature(self, body: str, signature: str) -> bool:
        """Webhook signature over the raw body with the webhook secret"""
        client = self._require_client()
        if not self.webhook_secret:
            logger.error("RAZORPAY_WEBHOOK_SECRET not configured; rejecting webhook")
            return False
        try:
            return bool(client.utility.verify_webhook_signature(body, signature, self.webhook_secret))
        except SignatureVerificationError:
            return False


class PaymentOrderService:
    """
    Orders, verification and reconciliation of Razorpay payments

    Every public method commits its own work on ``db``.
    """

    def __init__(
        self,
        db: Session,
        gateway: RazorpayGateway,
        side_effects: Optional[SideEffectDispatcher] = None
    ):
        self.db = db
        self.gateway = gateway
        self.side_effects = side_effects

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order(
        self,
        amount: Decimal,
        client_email: str,
        client_name: str,
        session_id: Optional[str] = None,
        quotation_id: Optional[str] = None,
        consultant_id: Optional[str] = None,
        currency: Optional[str] = None,
        notes: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """
        Create a gateway order for a pending session or a sent quotation

        ``consultant_id`` is the authenticated consultant; when omitted the
        call is a public one and must reference a session.
        """
        amount = Decimal(str(amount))
        currency = currency or settings.PAYMENT_CURRENCY

        if consultant_id is None:
            if not session_id or not session_id.strip() or session_id == "undefined":
                raise ValidationError("sessionId is required for public payments")
            if quotation_id:
                raise ValidationError("Public payments can only be made for sessions")
        elif bool(session_id) == bool(quotation_id):
            raise ValidationError("Exactly one of sessionId or quotationId must be provided")

        if session_id:
            query = self.db.query(ConsultationSession).filter(
                ConsultationSession.id == session_id,
                ConsultationSession.payment_status == PaymentStatus.PENDING,
            )
            if consultant_id:
                query = query.filter(ConsultationSession.consultant_id == consultant_id)
            session = query.first()
            if not session:
                raise ValidationError("Session not found or payment already processed")
            if abs(Decimal(session.amount) - amount) > AMOUNT_TOLERANCE:
                raise ValidationError("Amount mismatch with session")
            owner_id, client_id = session.consultant_id, session.client_id

            # One open order per session; a second checkout reuses it
            pending = self.db.query(PaymentTransaction).filter(
                PaymentTransaction.session_id == session.id,
                PaymentTransaction.status == PaymentTransactionStatus.PENDING,
                PaymentTransaction.gateway_order_id.isnot(None),
            ).order_by(PaymentTransaction.created_at.desc()).first()
            if pending is not None and abs(Decimal(pending.amount) - amount) <= AMOUNT_TOLERANCE:
                logger.info(f"Reusing pending order {pending.gateway_order_id} for session {session.id}")
                return self._order_result(pending, pending.gateway_response or {}, currency)
        else:
            quotation = self.db.query(Quotation).filter(
                Quotation.id == quotation_id,
                Quotation.consultant_id == consultant_id,
                Quotation.status == QuotationStatus.SENT,
            ).first()
            if not quotation:
                raise ValidationError("Quotation not found or not in valid state")
            if abs(Decimal(quotation.final_amount) - amount) > AMOUNT_TOLERANCE:
                raise ValidationError("Amount mismatch with quotation")
            owner_id, client_id = quotation.consultant_id, None

        self._check_limits(owner_id, amount)

        receipt = f"rcpt_{uuid.uuid4().hex[:20]}"
        order_notes = {
            "consultantId": owner_id,
            "clientEmail": client_email,
            "clientName": client_name,
        }
        if session_id:
            order_notes["sessionId"] = session_id
        if quotation_id:
            order_notes["quotationId"] = quotation_id
        order_notes.update(notes or {})

        try:
            order = self.gateway.create_order(amount, currency, receipt, order_notes)
        except BadRequestError as e:
            raise AppError(f"Payment service error: {e}", 400, "PAYMENT_SERVICE_ERROR") from e
        except (GatewayError, ServerError) as e:
            raise ExternalServiceError("razorpay", str(e)) from e

        transaction = PaymentTransaction(
            consultant_id=owner_id,
            session_id=session_id,
            quotation_id=quotation_id,
            client_id=client_id,
            client_email=client_email,
            amount=amount,
            currency=currency,
            gateway_order_id=order["id"],
            gateway_response=order,
            status=PaymentTransactionStatus.PENDING,
            transaction_type="payment",
        )
        self.db.add(transaction)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Payment order created: {order['id']} for ₹{amount}")
        return self._order_result(transaction, order, currency, receipt)

    def _order_result(
        self,
        transaction: PaymentTransaction,
        order: Dict[str, Any],
        currency: str,
        receipt: Optional[str] = None
    ) -> Dict[str, Any]:
        return {
            "orderId": transaction.gateway_order_id,
            "amount": float(transaction.amount),
            "currency": order.get("currency", currency),
            "transactionId": transaction.id,
            "keyId": self.gateway.key_id,
            "receipt": order.get("receipt", receipt),
            "createdAt": order.get("created_at"),
        }

    def _check_limits(self, consultant_id: str, amount: Decimal) -> None:
        if amount < Decimal(str(settings.PAYMENT_MIN_AMOUNT)):
            raise ValidationError(f"Minimum payment amount is ₹{settings.PAYMENT_MIN_AMOUNT:g}")
        if amount > Decimal(str(settings.PAYMENT_MAX_AMOUNT)):
            raise ValidationError(f"Maximum payment amount is ₹{settings.PAYMENT_MAX_AMOUNT:g}")
        if self.daily_completed_amount(consultant_id) + amount > Decimal(str(settings.PAYMENT_DAILY_LIMIT)):
            raise ValidationError("Daily payment limit exceeded")

    def daily_completed_amount(self, consultant_id: str, now: Optional[datetime] = None) -> Decimal:
        """Sum of today's (UTC) completed payments for the consultant"""
        now = now or utcnow()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        total = self.db.query(func.coalesce(func.sum(PaymentTransaction.amount), 0)).filter(
            PaymentTransaction.consultant_id == consultant_id,
            PaymentTransaction.status == PaymentTransactionStatus.COMPLETED,
            PaymentTransaction.processed_at >= start_of_day,
        ).scalar()
        return Decimal(str(total))

    # ------------------------------------------------------------------
    # Success path
    # ------------------------------------------------------------------

    def verify_and_process(self, order_id: str, payment_id: str, signature: str) -> Dict[str, Any]:
        """Checkout callback: signature check, then reconcile the capture"""
        if not self.gateway.verify_payment_signature(order_id, payment_id, signature):
            raise ValidationError("Invalid payment signature")
        return self.reconcile_capture(order_id, payment_id)

    def reconcile_capture(
        self,
        order_id: str,
        payment_id: str,
        payment: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Apply a captured payment to its transaction, session and quotation

        Idempotent on (order id, payment id): replays return the stored
        result without touching the ledger again. ``payment`` is the gateway
        entity when the caller already has it (webhooks); otherwise it is
        fetched.
        """
        try:
            transaction = self._find_transaction(order_id)
            if transaction.status == PaymentTransactionStatus.COMPLETED:
                return self._replayed_result(transaction, payment_id)
            if transaction.status != PaymentTransactionStatus.PENDING:
                raise ValidationError("Payment transaction not found or already processed")

            if payment is None:
                payment = self.gateway.fetch_payment(payment_id)
            if payment.get("status") != "captured":
                raise ValidationError("Payment not captured")

            # Re-read under lock; a concurrent verify may have won meanwhile
            self.db.rollback()
            transaction = self._find_transaction(order_id, lock=True)
            if transaction.status == PaymentTransactionStatus.COMPLETED:
                self.db.rollback()
                return self._replayed_result(transaction, payment_id)
            if transaction.status != PaymentTransactionStatus.PENDING:
                raise ValidationError("Payment transaction not found or already processed")

            email_data = self._apply_capture(transaction, payment_id, payment)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                transaction = self._find_transaction(order_id)
                return self._replayed_result(transaction, payment_id)
        except AppError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Process payment error for {payment_id}: {e}", exc_info=True)
            raise AppError("Failed to process payment", 500, "PAYMENT_PROCESSING_ERROR") from e

        logger.info(f"Payment processed successfully: {payment_id}")
        self._after_capture(transaction, email_data)
        return self._result(transaction)

    def _find_transaction(self, order_id: str, lock: bool = False) -> PaymentTransaction:
        query = self.db.query(PaymentTransaction).filter(PaymentTransaction.gateway_order_id == order_id)
        if lock:
            query = query.with_for_update()
        transaction = query.first()
        if not transaction:
            raise ValidationError("Payment transaction not found or already processed")
        return transaction

    def _replayed_result(self, transaction: PaymentTransaction, payment_id: str) -> Dict[str, Any]:
        if transaction.status != PaymentTransactionStatus.COMPLETED or transaction.gateway_payment_id != payment_id:
            raise ValidationError("Payment transaction not found or already processed")
        logger.info(f"Payment {payment_id} already processed; returning stored result")
        return self._result(transaction)

    @staticmethod
    def _result(transaction: PaymentTransaction) -> Dict[str, Any]:
        return {
            "transactionId": transaction.id,
            "paymentId": transaction.gateway_payment_id,
            "amount": float(transaction.amount),
            "currency": transaction.currency,
            "status": transaction.status.value,
        }

    def _apply_capture(
        self,
        transaction: PaymentTransaction,
        payment_id: str,
        payment: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Mutate the ledger inside the open transaction; returns email data if any"""
        now = utcnow()
        method = payment.get("method")
        transaction.gateway_payment_id = payment_id
        transaction.status = PaymentTransactionStatus.COMPLETED
        transaction.payment_method = method
        transaction.gateway_response = payment
        transaction.processed_at = now

        email_data = None
        if transaction.session_id:
            session = self.db.query(ConsultationSession).filter(
                ConsultationSession.id == transaction.session_id
            ).first()
            if session.payment_status == PaymentStatus.PAID and session.payment_id != payment_id:
                # Money was taken twice; keep the capture on record for a refund
                transaction.failure_reason = f"Duplicate payment; session already paid by {session.payment_id}"
                logger.warning(
                    f"Duplicate payment {payment_id} for session {session.id} "
                    f"(paid by {session.payment_id}); refund required"
                )
                self.db.flush()
                return None
            try:
                session.mark_paid(payment_id, method)
            except ValueError as e:
                raise ValidationError(str(e))
            ClientService(self.db).add_amount_paid(session.client_id, Decimal(transaction.amount))
            email_data = {
                "client_name": session.client.name,
                "client_email": session.client.email,
                "consultant_name": session.consultant.full_name,
                "consultant_email": session.consultant.email,
                "amount": float(transaction.amount),
                "currency": transaction.currency,
                "transaction_id": transaction.id,
                "payment_method": method,
                "session_title": session.title,
                "session_date": f"{session.scheduled_date:%Y-%m-%d} {session.scheduled_time}",
                "meeting_link": session.meeting_link,
            }

        if transaction.quotation_id:
            quotation = self.db.query(Quotation).filter(Quotation.id == transaction.quotation_id).first()
            if quotation:
                quotation.status = QuotationStatus.ACCEPTED
                quotation.responded_at = now

        self.db.flush()
        return email_data

    def _after_capture(self, transaction: PaymentTransaction, email_data: Optional[Dict[str, Any]]) -> None:
        if self.side_effects is None:
            return
        try:
            if email_data:
                self.side_effects.send_payment_confirmation(email_data)
            self.side_effects.invalidate_cache(payment_invalidation_patterns(transaction.consultant_id))
        except RuntimeError as e:
            logger.error(f"Could not schedule payment side effects for {transaction.id}: {e}")

    # ------------------------------------------------------------------
    # Failures and refunds
    # ------------------------------------------------------------------

    def handle_failure(
        self,
        order_id: str,
        error_code: Optional[str] = None,
        error_description: Optional[str] = None
    ) -> int:
        """Fail the order's pending transactions; returns how many changed"""
        now = utcnow()
        transactions = self.db.query(PaymentTransaction).filter(
            PaymentTransaction.gateway_order_id == order_id,
            PaymentTransaction.status == PaymentTransactionStatus.PENDING,
        ).with_for_update().all()

        for transaction in transactions:
            transaction.status = PaymentTransactionStatus.FAILED
            transaction.failure_reason = (error_description or error_code or "Payment failed")[:500]
            transaction.gateway_response = {
                "error_code": error_code,
                "error_description": error_description,
                "failed_at": now.isoformat(),
            }
            transaction.processed_at = now
            if transaction.session is not None:
                transaction.session.mark_payment_failed()

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Payment failed: {order_id} - {error_description} ({len(transactions)} transactions)")
        return len(transactions)

    def mark_refunded_by_payment(self, payment_id: str) -> int:
        """Gateway-confirmed refund; only the transaction rows change"""
        transactions = self.db.query(PaymentTransaction).filter(
            PaymentTransaction.gateway_payment_id == payment_id,
        ).all()
        now = utcnow()
        for transaction in transactions:
            transaction.status = PaymentTransactionStatus.REFUNDED
            transaction.processed_at = now
        self.db.commit()
        return len(transactions)

    def process_refund(
        self,
        payment_id: str,
        consultant_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        transaction = self.db.query(PaymentTransaction).filter(
            PaymentTransaction.gateway_payment_id == payment_id,
            PaymentTransaction.consultant_id == consultant_id,
            PaymentTransaction.status == PaymentTransactionStatus.COMPLETED,
        ).first()
        if not transaction:
            raise ValidationError("Payment transaction not found or not eligible for refund")

        paid_at = transaction.processed_at or transaction.created_at
        if utcnow() - paid_at > timedelta(days=settings.REFUND_WINDOW_DAYS):
            raise ValidationError(f"Refund time limit exceeded ({settings.REFUND_WINDOW_DAYS} days)")

        refund_amount = Decimal(str(amount)) if amount is not None else Decimal(transaction.amount)
        if refund_amount <= 0 or refund_amount > Decimal(transaction.amount):
            raise ValidationError("Refund amount must be positive and not exceed the amount paid")

        try:
            refund = self.gateway.refund(
                payment_id,
                refund_amount,
                {"reason": reason or "Requested by consultant", "transactionId": transaction.id},
            )
        except BadRequestError as e:
            raise AppError(f"Payment service error: {e}", 400, "PAYMENT_SERVICE_ERROR") from e
        except (GatewayError, ServerError) as e:
            raise ExternalServiceError("razorpay", str(e)) from e

        email_data = None
        try:
            transaction.status = PaymentTransactionStatus.REFUNDED
            transaction.gateway_response = {**(transaction.gateway_response or {}), "refund": refund}
            transaction.processed_at = utcnow()
            session = transaction.session
            if session is not None:
                session.mark_refunded()
                ClientService(self.db).add_amount_paid(session.client_id, -refund_amount)
                email_data = {
                    "client_name": session.client.name,
                    "client_email": session.client.email,
                    "consultant_name": session.consultant.full_name,
                    "consultant_email": session.consultant.email,
                    "amount": float(refund_amount),
                    "currency": transaction.currency,
                    "session_title": session.title,
                    "refund_reason": reason or "Session cancelled",
                    "transaction_id": payment_id,
                }
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if self.side_effects is not None:
            try:
                if email_data:
                    self.side_effects.send_refund_notification(email_data)
                self.side_effects.invalidate_cache(payment_invalidation_patterns(consultant_id))
            except RuntimeError as e:
                logger.error(f"Could not schedule refund side effects for {transaction.id}: {e}")
        logger.info(f"Refund processed: {refund.get('id')} for ₹{refund_amount}")
        return {
            "refundId": refund.get("id"),
            "amount": float(refund_amount),
            "currency": transaction.currency,
            "status": refund.get("status"),
        }

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def payment_analytics(self, consultant_id: str, start: datetime, end: datetime) -> Dict[str, Any]:
        """Totals over the consultant's transactions created in [start, end]"""
        transactions = self.db.query(PaymentTransaction).filter(
            PaymentTransaction.consultant_id == consultant_id,
            PaymentTransaction.created_at >= start,
            PaymentTransaction.created_at <= end,
        ).all()

        completed = [t for t in transactions if t.status == PaymentTransactionStatus.COMPLETED]
        failed = [t for t in transactions if t.status == PaymentTransactionStatus.FAILED]
        refunded = [t for t in transactions if t.status == PaymentTransactionStatus.REFUNDED]

        total_amount = sum((Decimal(t.amount) for t in completed), Decimal("0"))
        refunded_amount = sum((Decimal(t.amount) for t in refunded), Decimal("0"))
        return {
            "totalAmount": float(total_amount),
            "totalTransactions": len(transactions),
            "successfulPayments": len(completed),
            "failedPayments": len(failed),
            "refundedAmount": float(refunded_amount),
            "averageTransactionValue": float(total_amount / len(completed)) if completed else 0.0,
            "successRate": len(completed) * 100.0 / len(transactions) if transactions else 0.0,
        }

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def process_webhook_event(self, raw_body: Union[bytes, str], signature: str) -> str:
        """Validate and dispatch one webhook delivery; returns the event name"""
        body = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        if not self.gateway.verify_webhook_signature(body, signature):
            raise ValidationError("Invalid webhook signature")

        event = json.loads(body)
        event_type = event.get("event")
        payload = event.get("payload", {})

        if event_type == "payment.captured":
            payment = payload["payment"]["entity"]
            self.reconcile_capture(payment["order_id"], payment["id"], payment=payment)
        elif event_type == "payment.failed":
            payment = payload["payment"]["entity"]
            self.handle_failure(payment.get("order_id"), payment.get("error_code"), payment.get("error_description"))
        elif event_type == "refund.processed":
            refund = payload["refund"]["entity"]
            self.mark_refunded_by_payment(refund["payment_id"])
            logger.info(f"Refund webhook processed: {refund.get('id')}")
        else:
            logger.info(f"Unhandled webhook event: {event_type}")
        return event_type
