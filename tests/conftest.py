"""Pytest bootstrap configuration.

Environment variables must be set before any module that reads settings is
imported, so they come first.
"""
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")

import functools
from decimal import Decimal
from typing import Any, Optional

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from application.dtos.payments import (
    CheckoutSession,
    CheckoutSessionRequest,
    OrderRequest,
    ProviderOrder,
    ProviderPaymentStatus,
    RefundRequest,
    RefundResult,
    WebhookEvent,
)
from infrastructure.models import Base, CourseModel, LectureModel, UserModel
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from tests.helpers import RAZORPAY_KEY_SECRET


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'purchases.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def uow_factory(session_factory):
    return functools.partial(SQLAlchemyUnitOfWork, session_factory)


@pytest.fixture
async def seeded(session_factory):
    """One student, one admin, and a 499 INR course with three lectures"""
    async with session_factory() as session:
        session.add_all([
            UserModel(id=1, name="Asha", email="asha@example.com", role="student"),
            UserModel(id=2, name="Admin", email="admin@example.com", role="admin"),
            UserModel(id=3, name="Ravi", email="ravi@example.com", role="instructor"),
        ])
        session.add(CourseModel(
            id=10,
            title="Async Python",
            subtitle="From coroutines to services",
            description="A practical course",
            category="programming",
            thumbnail="https://cdn.example.com/c10.png",
            price=Decimal("499"),
            instructor_id=3,
            is_published=True,
        ))
        session.add(CourseModel(id=11, title="Empty course", price=Decimal("99"), is_published=True))
        session.add_all([
            LectureModel(id=100, course_id=10, title="Intro", order=1, is_preview_free=True),
            LectureModel(id=101, course_id=10, title="Event loop", order=2),
            LectureModel(id=102, course_id=10, title="Tasks", order=3),
        ])
        await session.commit()
    return {"student_id": 1, "admin_id": 2, "course_id": 10, "empty_course_id": 11}


class StubCheckoutGateway:
    """Checkout gateway that records calls and returns canned sessions"""
    provider = "stripe"

    def __init__(self, *, fail_create: bool = False, status: str = "open", settled: Optional[Decimal] = None):
        self.fail_create = fail_create
        self.status = status
        self.settled = settled
        self.created: list[CheckoutSessionRequest] = []
        self.refunds: list[RefundRequest] = []
        self.events: list[WebhookEvent] = []

    async def create_checkout_session(self, req: CheckoutSessionRequest) -> CheckoutSession:
        from infrastructure.external.payments.exceptions import PaymentProviderError
        self.created.append(req)
        if self.fail_create:
            raise PaymentProviderError("Checkout session has no usable URL", provider=self.provider)
        sid = f"cs_test_{req.purchase_id}"
        return CheckoutSession(session_id=sid, url=f"https://checkout.stripe.test/{sid}")

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:
        return self.events.pop(0)

    async def refund(self, req: RefundRequest) -> RefundResult:
        self.refunds.append(req)
        return RefundResult(refund_id=f"re_{len(self.refunds)}", status="succeeded", provider=self.provider, amount=req.amount)

    async def fetch_status(self, provider_reference: str) -> ProviderPaymentStatus:
        return ProviderPaymentStatus(
            provider=self.provider,
            provider_reference=provider_reference,
            status=self.status,
            settled_amount=self.settled,
            provider_payment_id="pi_reconciled" if self.status == "paid" else None,
        )

    async def aclose(self) -> None:
        return None


class StubOrderGateway:
    provider = "razorpay"

    def __init__(self):
        self.orders: list[OrderRequest] = []

    async def create_order(self, req: OrderRequest) -> ProviderOrder:
        self.orders.append(req)
        return ProviderOrder(
            id=f"order_{req.purchase_id}",
            amount=int(req.amount * 100),
            currency=req.currency,
            receipt=req.receipt,
            notes=req.notes,
        )

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> None:
        from infrastructure.external.payments.razorpay_client import RazorpayClient
        RazorpayClient(key_id="rzp_test_key", key_secret=RAZORPAY_KEY_SECRET).verify_payment_signature(
            order_id, payment_id, signature
        )

    async def refund(self, req: RefundRequest) -> RefundResult:
        return RefundResult(refund_id="rfnd_1", status="processed", provider=self.provider, amount=req.amount)

    async def fetch_status(self, provider_reference: str) -> ProviderPaymentStatus:
        return ProviderPaymentStatus(provider=self.provider, provider_reference=provider_reference, status="open")

    async def aclose(self) -> None:
        return None


@pytest.fixture
def checkout_gateway():
    return StubCheckoutGateway()


@pytest.fixture
def order_gateway():
    return StubOrderGateway()


@pytest.fixture
def purchase_service(uow_factory, checkout_gateway, order_gateway):
    from application.services.purchase_service import PurchaseApplicationService
    return PurchaseApplicationService(
        uow_factory=uow_factory,
        checkout_gateway=checkout_gateway,
        order_gateway=order_gateway,
        currency="INR",
        client_url="http://localhost:5173",
    )
