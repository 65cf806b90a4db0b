# storefront/api/v1/router.py
from fastapi import APIRouter
from storefront.modules.auth.router import router as auth_router
from storefront.modules.users.router import router as users_router
from storefront.modules.products.router import router as products_router, categories_router
from storefront.modules.subscriptions.router import router as subscriptions_router, user_router
from storefront.modules.cart.router import router as cart_router
from storefront.modules.checkout.router import router as checkout_router
from storefront.modules.orders.router import router as orders_router
from storefront.modules.shipping.router import router as shipping_router
from storefront.modules.benefits.router import router as benefits_router
from storefront.modules.preferences.router import router as preferences_router
from storefront.modules.webhooks.router import router as webhooks_router
from storefront.modules.admin.router import router as admin_router

api_router = APIRouter()

api_router.include_router(auth_router,          prefix="/auth",          tags=["auth"])
api_router.include_router(users_router,         prefix="/users",         tags=["users"])
api_router.include_router(user_router,          prefix="/user",          tags=["subscriptions"])
api_router.include_router(preferences_router,   prefix="/user",          tags=["preferences"])
api_router.include_router(products_router,      prefix="/products",      tags=["products"])
api_router.include_router(categories_router,    prefix="/categories",    tags=["products"])
api_router.include_router(subscriptions_router, prefix="/subscriptions", tags=["subscriptions"])
api_router.include_router(benefits_router,      prefix="/plans",         tags=["subscriptions"])
api_router.include_router(cart_router,          prefix="/cart",          tags=["cart"])
api_router.include_router(checkout_router,      prefix="/checkout",      tags=["checkout"])
api_router.include_router(orders_router,        prefix="/orders",        tags=["orders"])
api_router.include_router(shipping_router,      prefix="/shipping",      tags=["shipping"])
api_router.include_router(webhooks_router,      prefix="/webhooks",      tags=["webhooks"])
api_router.include_router(admin_router,         prefix="/admin",         tags=["admin"])
