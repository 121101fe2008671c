"""
Service dependencies

Long-lived collaborators are built once in the application lifespan and kept
on ``app.state``; these helpers hand them to route functions.
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.db.session import Database, get_database, get_db
from app.services.booking_service import BookingOrchestrator
from app.services.cache_service import CacheService
from app.services.notification_service import SideEffectDispatcher
from app.services.payment_service import PaymentOrderService, RazorpayGateway


def get_cache(request: Request) -> CacheService:
    return request.app.state.cache


def get_side_effects(request: Request) -> SideEffectDispatcher:
    return request.app.state.side_effects


def get_payment_gateway(request: Request) -> RazorpayGateway:
    return request.app.state.payment_gateway


def get_booking_orchestrator(
    database: Database = Depends(get_database),
    side_effects: SideEffectDispatcher = Depends(get_side_effects)
) -> BookingOrchestrator:
    return BookingOrchestrator(database, side_effects)


def get_payment_service(
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    side_effects: SideEffectDispatcher = Depends(get_side_effects)
) -> PaymentOrderService:
    return PaymentOrderService(db, gateway, side_effects)
