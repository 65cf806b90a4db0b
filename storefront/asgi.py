# storefront/asgi.py
# ponto de entrada para servidores ASGI externos (ex.: uvicorn storefront.asgi:app)
import sys, asyncio

if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from storefront.main import app  # noqa: E402,F401
