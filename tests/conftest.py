import os

# banco em memória antes de importar a aplicação (evita criar data/storefront.db)
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import timedelta
from decimal import Decimal
from typing import Any, Optional

import fakeredis
import httpx
import pytest
import pytest_asyncio
from fakeredis import aioredis as fake_aioredis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import storefront.db.models  # noqa: F401
from storefront.core import rate_limit
from storefront.core.config import settings
from storefront.core.dependencies import get_db, get_gateway
from storefront.core.security import create_access_token, hash_password
from storefront.db.base import Base, utcnow
from storefront.integrations.mercadopago_client import (
    CardChargeResult,
    MercadoPagoError,
    PixChargeResult,
    PreferenceResult,
)
from storefront.main import app
from storefront.modules.orders.models import (
    Order,
    OrderItem,
    OrderKind,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
)
from storefront.modules.products.models import Category, Product, ProductStatus
from storefront.modules.subscriptions.models import (
    BillingCycle,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)
from storefront.modules.users.models import Address, User, UserRole

PASSWORD = "senha-forte-123"


class FakeGateway:
    """Gateway em memória com a mesma interface do MercadoPagoClient."""

    def __init__(self):
        self.card_status = "approved"
        self.card_status_detail = "accredited"
        self.card_error: Optional[Exception] = None
        self.pix_error: Optional[Exception] = None
        self.get_error: Optional[Exception] = None
        self.preference_error: Optional[Exception] = None
        self.payments: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, Any]] = []
        self._seq = 9000

    def _next_id(self) -> str:
        self._seq += 1
        return str(self._seq)

    def set_status(self, payment_id: str, status: str, status_detail: Optional[str] = None) -> None:
        self.payments[payment_id]["status"] = status
        self.payments[payment_id]["status_detail"] = status_detail

    def register(self, payment_id: str, external_reference: Optional[str], status: str, status_detail=None) -> None:
        self.payments[payment_id] = {
            "id": payment_id,
            "status": status,
            "status_detail": status_detail,
            "external_reference": external_reference,
        }

    async def create_card_payment(self, **kwargs) -> CardChargeResult:
        self.calls.append(("card", kwargs))
        if self.card_error:
            raise self.card_error
        pid = self._next_id()
        self.register(pid, kwargs["external_reference"], self.card_status, self.card_status_detail)
        return CardChargeResult(
            id=pid,
            status=self.card_status,
            status_detail=self.card_status_detail,
            payload={"id": pid, "status": self.card_status},
        )

    async def create_pix_payment(self, **kwargs) -> PixChargeResult:
        self.calls.append(("pix", kwargs))
        if self.pix_error:
            raise self.pix_error
        pid = self._next_id()
        self.register(pid, kwargs["external_reference"], "pending", "pending_waiting_transfer")
        return PixChargeResult(
            payment_id=pid,
            qr_code=f"00020126pix{pid}",
            qr_code_base64="aW1hZ2VtLXFy",
            ticket_url=f"https://mp.test/ticket/{pid}",
            expiration_date=kwargs.get("expires_at"),
            payload={"id": pid, "status": "pending"},
        )

    async def create_preference(self, **kwargs) -> PreferenceResult:
        self.calls.append(("preference", kwargs))
        if self.preference_error:
            raise self.preference_error
        pref_id = f"pref-{self._next_id()}"
        return PreferenceResult(
            id=pref_id,
            init_point=f"https://mp.test/init/{pref_id}",
            sandbox_init_point=f"https://sandbox.mp.test/init/{pref_id}",
            payload={"id": pref_id},
        )

    async def get_payment(self, payment_id: str) -> dict[str, Any]:
        self.calls.append(("get", payment_id))
        if self.get_error:
            raise self.get_error
        if payment_id not in self.payments:
            raise MercadoPagoError("get_payment_failed", {"message": "payment not found"}, 404)
        return dict(self.payments[payment_id])


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch, redis_server):
    """Redis em memória (servidor próprio por teste) no lugar do cliente real."""
    client = fake_aioredis.FakeRedis(server=redis_server, decode_responses=True)
    monkeypatch.setattr(rate_limit, "redis_client", client)
    return client


@pytest.fixture(autouse=True)
def _no_webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "MP_WEBHOOK_SECRET", None)


@pytest_asyncio.fixture
async def client(session_factory, gateway):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# ─────────────────────────────────────────────────────────────────────────────
# Dados
# ─────────────────────────────────────────────────────────────────────────────

async def _add(session_factory, *objs):
    async with session_factory() as s:
        s.add_all(objs)
        await s.commit()
    return objs[0] if len(objs) == 1 else objs


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(
            {"sub": user.id, "role": user.role}, expires_minutes=30, secret_key=settings.SECRET_KEY
        )
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def make_user(session_factory):
    async def _make(email: str = "cliente@example.com", role: str = UserRole.CUSTOMER, **kw) -> User:
        user = User(
            full_name=kw.pop("full_name", "Cliente Teste"),
            email=email,
            password_hash=hash_password(PASSWORD),
            role=role,
            **kw,
        )
        return await _add(session_factory, user)
    return _make


@pytest_asyncio.fixture
async def customer(make_user):
    return await make_user()


@pytest_asyncio.fixture
async def admin(make_user):
    return await make_user("admin@example.com", role=UserRole.ADMIN, full_name="Admin")


@pytest_asyncio.fixture
async def address(session_factory, customer):
    addr = Address(
        user_id=customer.id,
        street="Av. Paulista",
        number="1000",
        neighborhood="Bela Vista",
        city="São Paulo",
        state="SP",
        zip_code="01310-100",
        is_default=True,
    )
    return await _add(session_factory, addr)


@pytest_asyncio.fixture
async def category(session_factory):
    return await _add(session_factory, Category(name="Sementes", slug="sementes"))


@pytest.fixture
def make_product(session_factory, category):
    async def _make(
        slug: str = "kit-cultivo",
        base_price: str = "19.99",
        stock: int = 10,
        status: str = ProductStatus.ACTIVE,
        **kw,
    ) -> Product:
        product = Product(
            name=kw.pop("name", slug.replace("-", " ").title()),
            slug=slug,
            base_price=Decimal(base_price),
            stock=stock,
            status=status,
            category_id=category.id,
            **kw,
        )
        return await _add(session_factory, product)
    return _make


@pytest_asyncio.fixture
async def product(make_product):
    return await make_product()


@pytest_asyncio.fixture
async def plan(session_factory):
    return await _add(
        session_factory,
        SubscriptionPlan(
            name="Clube",
            slug="clube",
            price=Decimal("49.90"),
            discount_percent=15,
            billing_cycle=BillingCycle.MONTHLY,
        ),
    )


@pytest.fixture
def subscribe(session_factory):
    async def _subscribe(user: User, plan: SubscriptionPlan, started_delta: timedelta = timedelta(0)) -> Subscription:
        sub = Subscription(
            user_id=user.id,
            plan_id=plan.id,
            status=SubscriptionStatus.ACTIVE,
            started_at=utcnow() - started_delta,
        )
        return await _add(session_factory, sub)
    return _subscribe


@pytest.fixture
def make_order(session_factory):
    """Pedido PENDING pronto para conciliação (estoque já baixado pelo checkout)."""

    async def _make(
        user: User,
        product: Optional[Product] = None,
        quantity: int = 1,
        method: str = PaymentMethod.PIX,
        transaction_id: Optional[str] = "mp-1",
        plan: Optional[SubscriptionPlan] = None,
        order_status: str = OrderStatus.PENDING,
        payment_status: str = PaymentStatus.PENDING,
        pix_expires_at=None,
    ) -> Order:
        items = []
        total = Decimal("0.00")
        if product is not None:
            total = product.base_price * quantity
            items.append(
                OrderItem(
                    product_id=product.id,
                    title=product.name,
                    quantity=quantity,
                    unit_base_price=product.base_price,
                    unit_price=product.base_price,
                    total_price=total,
                )
            )
        if plan is not None:
            total = plan.price
        payment = Payment(
            status=payment_status,
            provider=PaymentProvider.MERCADO_PAGO,
            method=method,
            amount=total,
            transaction_id=transaction_id,
            pix_qr_code="00020126pix" if method == PaymentMethod.PIX else None,
            pix_expires_at=pix_expires_at,
        )
        order = Order(
            user_id=user.id,
            kind=OrderKind.SUBSCRIPTION if plan else OrderKind.PRODUCT,
            plan_id=plan.id if plan else None,
            status=order_status,
            subtotal_amount=total,
            total_amount=total,
            items=items,
            payments=[payment],
        )
        return await _add(session_factory, order)
    return _make


@pytest.fixture
def fetch(session_factory):
    """Lê o estado atual do banco numa sessão nova."""

    async def _fetch(model, obj_id):
        async with session_factory() as s:
            return await s.get(model, obj_id)
    return _fetch


@pytest.fixture
def count(session_factory):
    async def _count(model, *where) -> int:
        async with session_factory() as s:
            res = await s.execute(select(model).where(*where))
            return len(res.scalars().all())
    return _count
