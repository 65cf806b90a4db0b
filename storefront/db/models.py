# storefront/db/models.py
# importa todos os models para registrá-los no Base.metadata (create_all / testes)
from storefront.modules.users.models import User, Address  # noqa: F401
from storefront.modules.auth.models import PasswordResetToken  # noqa: F401
from storefront.modules.shipping.models import ShippingProfile  # noqa: F401
from storefront.modules.products.models import Category, Product, ProductVariant  # noqa: F401
from storefront.modules.subscriptions.models import (  # noqa: F401
    SubscriptionPlan,
    Subscription,
    SubscriptionCycle,
)
from storefront.modules.benefits.models import Benefit, PlanBenefit  # noqa: F401
from storefront.modules.preferences.models import UserPreferences  # noqa: F401
from storefront.modules.cart.models import Cart, CartItem  # noqa: F401
from storefront.modules.orders.models import Order, OrderItem, Payment  # noqa: F401
