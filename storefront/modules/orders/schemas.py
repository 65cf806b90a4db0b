# storefront/modules/orders/schemas.py
from __future__ import annotations
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from storefront.core.responses import Money
from .models import OrderStatus


class OrderItemOut(BaseModel):
    id: str
    product_id: Optional[str] = None
    variant_id: Optional[str] = None
    title: str
    sku: Optional[str] = None
    quantity: int
    unit_base_price: Money
    unit_price: Money
    total_price: Money

    class Config:
        from_attributes = True


class PaymentOut(BaseModel):
    id: str
    status: str
    provider: str
    method: str
    amount: Money
    transaction_id: Optional[str] = None
    status_detail: Optional[str] = None
    pix_qr_code: Optional[str] = None
    pix_ticket_url: Optional[str] = None
    pix_expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: str
    kind: str
    plan_id: Optional[str] = None
    status: str
    subtotal_amount: Money
    discount_amount: Money
    shipping_amount: Money
    total_amount: Money
    currency: str
    discount_label: Optional[str] = None
    shipping_address: Optional[dict[str, Any]] = None
    shipping_data: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    created_at: datetime
    items: List[OrderItemOut] = Field(default_factory=list)
    payments: List[PaymentOut] = Field(default_factory=list)

    class Config:
        from_attributes = True


class AdminPaymentOut(PaymentOut):
    payload: Optional[dict[str, Any]] = None


class AdminOrderOut(OrderOut):
    user_id: str
    payments: List[AdminPaymentOut] = Field(default_factory=list)


class OrderStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def _status(cls, v: str) -> str:
        if v not in OrderStatus.ALL:
            raise ValueError(f"status deve ser um de {', '.join(OrderStatus.ALL)}")
        return v


class ApprovePaymentRequest(BaseModel):
    payment_id: str


class ReconcileOut(BaseModel):
    action: str
    order_id: str
    order_status: str
    payment_id: Optional[str] = None
    payment_status: Optional[str] = None
    subscription_created: bool = False
    subscription_id: Optional[str] = None

    class Config:
        from_attributes = True
