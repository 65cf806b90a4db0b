from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, field_validator

from storefront.utils.br import is_valid_cep, format_cep


class UserOut(BaseModel):
    id: str
    full_name: str
    email: EmailStr
    whatsapp: Optional[str] = None
    role: str
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class AddressBase(BaseModel):
    street: str = Field(min_length=1, max_length=200)
    number: str = Field(min_length=1, max_length=20)
    complement: Optional[str] = Field(None, max_length=100)
    neighborhood: str = Field(min_length=1, max_length=100)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=2, max_length=2)   # UF
    zip_code: str
    country: str = "BR"
    is_default: bool = False

    @field_validator("zip_code")
    @classmethod
    def _cep(cls, v: str) -> str:
        if not is_valid_cep(v):
            raise ValueError("CEP inválido")
        return format_cep(v)

    @field_validator("state")
    @classmethod
    def _uf(cls, v: str) -> str:
        return v.upper()


class AddressCreate(AddressBase):
    pass


class AddressOut(AddressBase):
    id: str

    class Config:
        from_attributes = True
