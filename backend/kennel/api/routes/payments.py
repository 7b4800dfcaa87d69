"""
Payment endpoints: checkout creation, the processor webhook and the polling
verify call. Webhook and verify both feed the reconciliation adapter, which
is idempotent, so they may race or repeat freely.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from kennel.db.session import get_db
from kennel.schemas.booking import CheckoutRequest, CheckoutResponse, PaymentVerifyResponse, WebhookAck
from kennel.services import payment_service
from kennel.services.cache_service import invalidate_overview_cache
from kennel.services.gateway_factory import get_payment_gateway
from kennel.services.interfaces.payment_gateway import PaymentGateway

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    data: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    session = await payment_service.start_checkout(db, gateway, data.booking_id)
    return CheckoutResponse(session_id=session.session_id, url=session.url)


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Processor webhook. The signature is checked against the raw body;
    a bad signature is a 400. Everything else is acknowledged with 200 so
    the processor stops redelivering, including events we do not handle.
    """
    payload = await request.body()
    event = gateway.parse_webhook(payload, stripe_signature)

    result = await payment_service.handle_payment_event(db, event)
    if result.service_date:
        await invalidate_overview_cache(result.service_date)
    return WebhookAck(outcome=result.outcome)


@router.get("/verify", response_model=PaymentVerifyResponse)
async def verify_payment(
    session_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Called by the checkout success page; reconciles a paid session immediately."""
    result = await payment_service.verify_session(db, gateway, session_id)
    if result.service_date:
        await invalidate_overview_cache(result.service_date)
    return PaymentVerifyResponse(
        paid=result.paid,
        session_id=session_id,
        booking_id=result.booking_id,
        outcome=result.outcome,
    )
