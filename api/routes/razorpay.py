"""
Razorpay routes: order creation and client-relayed payment verification.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_current_user, get_purchase_service
from application.dto import CourseRequestDTO, VerifyPaymentDTO, VerifyPaymentResultDTO
from application.services.purchase_service import PurchaseApplicationService
from core.response import success_response
from domain.catalog.entity import User


router = APIRouter(prefix="/razorpay", tags=["Razorpay"])


@router.post("/create-order", summary="Create Razorpay order")
async def create_order(
    payload: CourseRequestDTO,
    current_user: User = Depends(get_current_user),
    service: PurchaseApplicationService = Depends(get_purchase_service),
):
    result = await service.create_order(current_user.id, payload.course_id)
    return success_response(data=result, message="Order created")


@router.post("/verify-payment", summary="Verify Razorpay payment")
async def verify_payment(
    payload: VerifyPaymentDTO,
    current_user: User = Depends(get_current_user),
    service: PurchaseApplicationService = Depends(get_purchase_service),
):
    course_id = await service.verify_confirmation(
        payload.razorpay_order_id,
        payload.razorpay_payment_id,
        payload.razorpay_signature,
    )
    return success_response(data=VerifyPaymentResultDTO(course_id=course_id), message="Payment verified successfully")
