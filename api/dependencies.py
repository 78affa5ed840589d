"""
API dependencies - authentication and service wiring.
"""
from typing import AsyncIterator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from application.services.purchase_query_service import PurchaseQueryService
from application.services.purchase_service import PurchaseApplicationService
from application.services.token_service import decode_user_id
from core.config import settings
from core.exceptions import ForbiddenException, UnauthorizedException
from domain.catalog.entity import User
from domain.common.exceptions import UserNotFoundException
from infrastructure.external.payments import get_checkout_gateway, get_order_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


async def get_token(
    request: Request,
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> str:
    """Bearer header first, then the auth cookie set by the web client"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    cookie = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if cookie:
        return cookie
    raise UnauthorizedException("Authentication credentials were not provided")


def get_uow_factory():
    return SQLAlchemyUnitOfWork


async def get_current_user(
    token: str = Depends(get_token),
    uow_factory=Depends(get_uow_factory),
) -> User:
    user_id = decode_user_id(token)
    async with uow_factory(readonly=True) as uow:
        user = await uow.user_repository.get_by_id(user_id)
    if user is None:
        raise UserNotFoundException(str(user_id))
    return user


async def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise ForbiddenException("Administrator role required")
    return current_user


async def get_purchase_service(uow_factory=Depends(get_uow_factory)) -> AsyncIterator[PurchaseApplicationService]:
    service = PurchaseApplicationService(
        uow_factory=uow_factory,
        checkout_gateway=get_checkout_gateway(),
        order_gateway=get_order_gateway(),
    )
    try:
        yield service
    finally:
        await service.aclose()


async def get_purchase_query_service(uow_factory=Depends(get_uow_factory)) -> PurchaseQueryService:
    return PurchaseQueryService(uow_factory=uow_factory)
