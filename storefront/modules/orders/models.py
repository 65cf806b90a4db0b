# storefront/modules/orders/models.py
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, ForeignKey, Numeric, Text, DateTime, JSON
from storefront.db.base import Base, TimestampMixin, new_id


class OrderKind:
    PRODUCT = "PRODUCT"
    SUBSCRIPTION = "SUBSCRIPTION"


class OrderStatus:
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELED = "CANCELED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"

    ALL = (PENDING, PAID, CANCELED, SHIPPED, DELIVERED)


class PaymentStatus:
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentProvider:
    MERCADO_PAGO = "MERCADO_PAGO"
    MANUAL = "MANUAL"


class PaymentMethod:
    PIX = "PIX"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    CHECKOUT_PRO = "CHECKOUT_PRO"  # meio escolhido na página do MP

    CARDS = (CREDIT_CARD, DEBIT_CARD)


class Order(Base, TimestampMixin):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), index=True, nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default=OrderKind.PRODUCT)
    plan_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("subscription_plans.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OrderStatus.PENDING, index=True)

    subtotal_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    shipping_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="BRL")
    discount_label: Mapped[str | None] = mapped_column(String(200), nullable=True)

    shipping_address: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)  # snapshot
    shipping_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", lazy="selectin", cascade="all, delete-orphan"
    )
    payments: Mapped[list["Payment"]] = relationship(
        back_populates="order", lazy="selectin", order_by="Payment.created_at"
    )

    def latest_payment(self) -> "Payment | None":
        return self.payments[-1] if self.payments else None

    def has_paid_payment(self) -> bool:
        return any(p.status == PaymentStatus.PAID for p in self.payments)


class OrderItem(Base, TimestampMixin):
    """Snapshot congelado da linha no momento do checkout."""

    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    variant_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("product_variants.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(80), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.PENDING, index=True)
    provider: Mapped[str] = mapped_column(String(30), nullable=False, default=PaymentProvider.MERCADO_PAGO)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    transaction_id: Mapped[str | None] = mapped_column(String(120), nullable=True, index=True)
    status_detail: Mapped[str | None] = mapped_column(String(120), nullable=True)

    pix_qr_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    pix_qr_code_base64: Mapped[str | None] = mapped_column(Text, nullable=True)
    pix_ticket_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    pix_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # resposta opaca do gateway; nunca contém dados de cartão
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    order: Mapped["Order"] = relationship(back_populates="payments")
