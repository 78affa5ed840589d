"""
Course purchase routes: Stripe checkout, its webhook, and purchase reads.

Thin layer; all rules live in the application and domain services.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.dependencies import (
    get_current_admin,
    get_current_user,
    get_purchase_query_service,
    get_purchase_service,
)
from application.dto import CheckoutSessionDTO, CourseRequestDTO, PurchaseDTO, RefundCreateDTO
from application.services.purchase_query_service import PurchaseQueryService
from application.services.purchase_service import PurchaseApplicationService
from core.logging_config import get_logger
from core.response import success_response
from domain.catalog.entity import User


router = APIRouter(prefix="/purchase", tags=["Course purchase"])
logger = get_logger(__name__)


@router.post("/checkout/create-checkout-session", summary="Create Stripe checkout session")
async def create_checkout_session(
    payload: CourseRequestDTO,
    current_user: User = Depends(get_current_user),
    service: PurchaseApplicationService = Depends(get_purchase_service),
):
    checkout_url = await service.create_checkout(current_user.id, payload.course_id)
    return success_response(data=CheckoutSessionDTO(checkout_url=checkout_url), message="Checkout session created")


@router.post("/webhook", summary="Stripe webhook receiver")
async def stripe_webhook(
    request: Request,
    service: PurchaseApplicationService = Depends(get_purchase_service),
):
    """
    Acknowledge a Stripe event.

    The raw body is read untouched for signature verification; authenticated
    but unhandled event types are acknowledged without state changes.
    """
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    return await service.handle_checkout_webhook(headers, raw_body)


@router.get("/course/{course_id}/detail-with-status", summary="Course detail with purchase status")
async def course_detail_with_status(
    course_id: int,
    current_user: User = Depends(get_current_user),
    service: PurchaseQueryService = Depends(get_purchase_query_service),
):
    result = await service.get_status(current_user.id, course_id)
    return success_response(data=result)


@router.get("/", summary="Purchased courses")
async def purchased_courses(
    current_user: User = Depends(get_current_user),
    service: PurchaseQueryService = Depends(get_purchase_query_service),
):
    courses = await service.list_purchased(current_user.id)
    return success_response(data=courses)


@router.post("/refunds", summary="Refund a purchase")
async def refund_purchase(
    payload: RefundCreateDTO,
    admin: User = Depends(get_current_admin),
    service: PurchaseApplicationService = Depends(get_purchase_service),
):
    logger.info("refund_requested", admin_id=admin.id, provider_reference=payload.provider_reference)
    purchase = await service.refund_purchase(
        payload.provider_reference,
        amount=payload.amount,
        reason=payload.reason,
    )
    return success_response(data=PurchaseDTO.from_entity(purchase), message="Purchase refunded")
