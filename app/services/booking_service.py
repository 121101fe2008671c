"""
Public session booking

``BookingOrchestrator.book_session`` validates a booking request, then runs the
slot claim, client upsert and session insert as one transaction bounded by
``BOOKING_TRANSACTION_TIMEOUT_SECONDS``. Email and cache work is handed to the
side-effect dispatcher after commit and never awaited.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple
import logging
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.config import settings
from app.db.session import Database
from app.models.client import Client
from app.models.consultant import Consultant
from app.models.consultation import ConsultationSession
from app.models.enums import ACTIVE_SESSION_STATUSES, PaymentStatus, SessionStatus, SessionType
from app.schemas.booking import BookSessionRequest
from app.services.availability_service import AvailabilityService
from app.services.cache_service import booking_invalidation_patterns
from app.services.client_service import ClientService
from app.services.notification_service import SideEffectDispatcher
from app.utils.errors import DOMAIN_ERRORS, AppError, NotFoundError, TransactionTimeoutError, ValidationError
from app.utils.time_utils import local_to_utc, normalize_time, utcnow

logger = logging.getLogger(__name__)

NEXT_STEPS = [
    "You will receive payment instructions via email",
    "Complete payment to confirm your session",
    "Meeting details will be shared after payment confirmation",
]


def session_title(session_type: SessionType, consultant_first_name: str) -> str:
    kind = "1-on-1" if session_type == SessionType.PERSONAL else "Webinar"
    return f"{kind} Session with {consultant_first_name}"


class _Deadline:
    """Monotonic budget checked between transaction steps"""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.expires_at = time.monotonic() + seconds

    @property
    def remaining(self) -> float:
        return self.expires_at - time.monotonic()

    def check(self, step: str) -> None:
        if self.remaining <= 0:
            logger.warning(f"Booking transaction over budget at step '{step}'")
            raise TransactionTimeoutError(self.seconds)


class BookingOrchestrator:
    """Handles POST /book end to end"""

    def __init__(
        self,
        database: Database,
        side_effects: Optional[SideEffectDispatcher] = None,
        transaction_timeout: Optional[float] = None
    ):
        self.database = database
        self.side_effects = side_effects
        self.transaction_timeout = transaction_timeout

    def book_session(self, request: BookSessionRequest) -> Dict[str, Any]:
        started = time.monotonic()
        logger.info(
            f"Booking request: consultant={request.consultant_slug} type={request.session_type.value} "
            f"date={request.selected_date} time={request.selected_time}"
        )
        try:
            with self.database.session() as db:
                consultant, scheduled_at = self._validate(db, request)
                # Validation reads must not hold locks into the write transaction
                db.rollback()
                session, client = self._run_transaction(db, consultant, request, scheduled_at)
        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(f"Public session booking error: {e}", exc_info=True)
            raise AppError("Failed to book session", 500, "SESSION_BOOKING_ERROR") from e

        logger.info(f"Booking completed: {session.id} in {(time.monotonic() - started) * 1000:.0f}ms")
        self._dispatch_side_effects(consultant, client, session)
        return self._build_response(consultant, client, session)

    # ------------------------------------------------------------------
    # Validation (outside the transaction)
    # ------------------------------------------------------------------

    def _validate(self, db: Session, request: BookSessionRequest) -> Tuple[Consultant, Optional[datetime]]:
        consultant = db.query(Consultant).filter(
            Consultant.slug == request.consultant_slug,
            Consultant.is_active.is_(True),
            Consultant.is_email_verified.is_(True),
            Consultant.is_approved_by_admin.is_(True),
        ).first()
        if not consultant:
            raise NotFoundError("Consultant not found or not available for booking")

        expected = consultant.price_for(request.session_type)
        if abs(Decimal(str(request.amount)) - expected) > Decimal(str(settings.PRICE_TOLERANCE)):
            raise ValidationError(
                f"Price mismatch. Expected: ₹{expected}, Received: ₹{request.amount}",
                code="PRICE_MISMATCH",
            )

        if not request.is_scheduled:
            return consultant, None

        scheduled_at = local_to_utc(
            date.fromisoformat(request.selected_date),
            request.selected_time,
            settings.DEFAULT_TIMEZONE,
        )
        if scheduled_at <= utcnow():
            raise ValidationError("Cannot book sessions in the past")

        conflict = db.query(ConsultationSession.id).filter(
            ConsultationSession.consultant_id == consultant.id,
            ConsultationSession.scheduled_date == scheduled_at,
            ConsultationSession.status.in_(ACTIVE_SESSION_STATUSES),
        ).first()
        if conflict:
            raise ValidationError("This time slot is already booked. Please choose a different time.")

        return consultant, scheduled_at

    # ------------------------------------------------------------------
    # Transaction
    # ------------------------------------------------------------------

    def _run_transaction(
        self,
        db: Session,
        consultant: Consultant,
        request: BookSessionRequest,
        scheduled_at: Optional[datetime]
    ) -> Tuple[ConsultationSession, Client]:
        budget = self.transaction_timeout or settings.BOOKING_TRANSACTION_TIMEOUT_SECONDS
        deadline = _Deadline(budget)
        availability = AvailabilityService(db)
        clients = ClientService(db)
        try:
            if self.database.is_postgres:
                db.execute(text(f"SET LOCAL statement_timeout = {int(budget * 1000)}"))

            slot_id = None
            scheduled_time = "00:00"
            if scheduled_at is not None:
                scheduled_time = normalize_time(request.selected_time)
                slot_id = availability.find_open_slot(
                    consultant.id,
                    request.session_type,
                    date.fromisoformat(request.selected_date),
                    scheduled_time,
                )
                if slot_id is None:
                    raise ValidationError("Selected time slot is not available")
            deadline.check("slot lookup")

            client, created = clients.find_or_create(
                consultant.id, request.email, request.full_name, request.phone
            )
            deadline.check("client upsert")

            session = ConsultationSession(
                consultant_id=consultant.id,
                client_id=client.id,
                title=session_title(request.session_type, consultant.first_name),
                description=request.client_notes or "",
                session_type=request.session_type,
                status=SessionStatus.PENDING,
                scheduled_date=scheduled_at or utcnow(),
                scheduled_time=scheduled_time,
                duration=request.duration,
                amount=Decimal(str(request.amount)),
                currency=settings.PAYMENT_CURRENCY,
                payment_status=PaymentStatus.PENDING,
                platform=settings.DEFAULT_MEETING_PLATFORM,
                client_notes=request.client_notes or "",
                timezone=settings.DEFAULT_TIMEZONE,
                booking_source=settings.BOOKING_SOURCE,
            )
            db.add(session)
            db.flush()
            deadline.check("session insert")

            clients.increment_total_sessions(client.id)
            deadline.check("client counter")

            if slot_id is not None and not availability.mark_booked(slot_id, session.id):
                raise ValidationError("Selected time slot is not available")
            deadline.check("commit")

            db.commit()
        except OperationalError as e:
            db.rollback()
            if "statement timeout" in str(e).lower():
                raise TransactionTimeoutError(budget) from e
            raise
        except Exception:
            db.rollback()
            raise

        db.refresh(client)
        logger.info(
            f"Session {session.id} created for client {client.id} "
            f"({'new' if created else 'existing'}, slot={slot_id})"
        )
        return session, client

    # ------------------------------------------------------------------
    # After commit
    # ------------------------------------------------------------------

    def _dispatch_side_effects(self, consultant: Consultant, client: Client, session: ConsultationSession) -> None:
        if self.side_effects is None:
            return
        email_data = {
            "session_id": session.id,
            "session_title": session.title,
            "session_type": session.session_type.value,
            "client_name": client.name,
            "client_email": client.email,
            "consultant_name": consultant.full_name,
            "consultant_email": consultant.email,
            "session_date": session.scheduled_date.strftime("%Y-%m-%d"),
            "session_time": session.scheduled_time,
            "amount": float(session.amount),
            "currency": session.currency,
            "meeting_platform": session.platform,
        }
        try:
            self.side_effects.send_session_confirmation(email_data)
            self.side_effects.invalidate_cache(booking_invalidation_patterns(consultant.id, consultant.slug))
        except RuntimeError as e:
            # Executor already shut down; the booking itself is committed
            logger.error(f"Could not schedule booking side effects for {session.id}: {e}")

    @staticmethod
    def _build_response(consultant: Consultant, client: Client, session: ConsultationSession) -> Dict[str, Any]:
        return {
            "message": "Session booked successfully! A confirmation email is on its way.",
            "data": {
                "session": {
                    "id": session.id,
                    "title": session.title,
                    "sessionType": session.session_type,
                    "scheduledDate": session.scheduled_date.isoformat() + "Z",
                    "scheduledTime": session.scheduled_time,
                    "duration": session.duration,
                    "amount": float(session.amount),
                    "status": session.status.value,
                    "paymentStatus": session.payment_status.value,
                },
                "client": {
                    "id": client.id,
                    "name": client.name,
                    "email": client.email,
                },
                "consultant": {
                    "name": consultant.full_name,
                    "slug": consultant.slug,
                },
                "nextSteps": list(NEXT_STEPS),
            },
        }
