# storefront/core/responses.py
from decimal import Decimal
from typing import Any, Generic, TypeVar, Annotated

from pydantic import BaseModel, PlainSerializer

T = TypeVar("T")

# valores monetários: Decimal internamente, número com 2 casas no JSON
Money = Annotated[Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")]


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T


def ok(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}
