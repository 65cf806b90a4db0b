# storefront/modules/checkout/schemas.py
from datetime import datetime
from typing import Optional, Literal

from pydantic import AliasChoices, BaseModel, Field, EmailStr, model_validator

from storefront.core.responses import Money


class CardData(BaseModel):
    # somente o token gerado pelo SDK do gateway; nunca número/CVV
    token: str = Field(min_length=1)
    payment_method_id: str = Field(min_length=1)  # visa, master, ...
    installments: int = Field(1, ge=1, le=12)
    issuer_id: Optional[str] = None
    payer_email: Optional[EmailStr] = None
    identification_type: Optional[str] = None
    identification_number: Optional[str] = None


class _PaymentChoice(BaseModel):
    payment_method: Literal["PIX", "CREDIT_CARD", "DEBIT_CARD"]
    card: Optional[CardData] = None

    @model_validator(mode="after")
    def _card_required(self):
        if self.payment_method != "PIX" and self.card is None:
            raise ValueError("Dados do cartão são obrigatórios para pagamento com cartão")
        if self.payment_method == "DEBIT_CARD" and self.card and self.card.installments != 1:
            raise ValueError("Débito não permite parcelamento")
        return self


class CheckoutCartRequest(_PaymentChoice):
    address_id: str
    shipping_option_id: str
    notes: Optional[str] = Field(None, max_length=1000)


class CheckoutSubscriptionRequest(_PaymentChoice):
    plan_slug: str
    address_id: str
    shipping_option_id: str


class PixData(BaseModel):
    qr_code: Optional[str] = None
    qr_code_base64: Optional[str] = None
    ticket_url: Optional[str] = None
    expires_at: Optional[datetime] = None


class CheckoutOut(BaseModel):
    order_id: str
    payment_id: str
    order_status: str
    payment_status: str
    payment_method: str
    total_amount: Money
    status_detail: Optional[str] = None
    pix: Optional[PixData] = None
    subscription_id: Optional[str] = None

    class Config:
        from_attributes = True


class PendingPixOut(BaseModel):
    order_id: str
    payment_id: str
    transaction_id: Optional[str] = None
    amount: Money
    qr_code: Optional[str] = None
    qr_code_base64: Optional[str] = None
    ticket_url: Optional[str] = None
    expires_at: datetime
    remaining_seconds: int
    plan_id: Optional[str] = None
    plan_name: Optional[str] = None


class PaymentStatusOut(BaseModel):
    payment_id: str
    order_id: str
    payment_status: str
    order_status: str
    status_detail: Optional[str] = None
    is_paid: bool


class PaymentPreferenceRequest(BaseModel):
    type: Literal["product", "subscription"]
    order_id: Optional[str] = Field(None, validation_alias=AliasChoices("order_id", "orderId"))
    plan_slug: Optional[str] = Field(None, validation_alias=AliasChoices("plan_slug", "planSlug"))

    @model_validator(mode="after")
    def _target_required(self):
        if self.type == "product" and not self.order_id:
            raise ValueError("order_id é obrigatório para pagamento de produtos")
        if self.type == "subscription" and not self.plan_slug:
            raise ValueError("plan_slug é obrigatório para pagamento de assinatura")
        return self


class PaymentPreferenceOut(BaseModel):
    preference_id: str
    init_point: Optional[str] = None
    order_id: str
    is_test_mode: bool
