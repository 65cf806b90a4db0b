from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Boolean, ForeignKey
from storefront.db.base import Base, TimestampMixin, new_id


class UserRole:
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


class UserStatus:
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    whatsapp: Mapped[str | None] = mapped_column(String(40), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.CUSTOMER)  # CUSTOMER | ADMIN
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=UserStatus.ACTIVE)  # ACTIVE | BLOCKED

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class Address(Base, TimestampMixin):
    __tablename__ = "addresses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)

    street: Mapped[str] = mapped_column(String(200), nullable=False)
    number: Mapped[str] = mapped_column(String(20), nullable=False)
    complement: Mapped[str | None] = mapped_column(String(100), nullable=True)
    neighborhood: Mapped[str] = mapped_column(String(100), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(2), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(9), nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False, default="BR")
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def snapshot(self, full_name: str, whatsapp: str | None) -> dict:
        return {
            "full_name": full_name,
            "whatsapp": whatsapp or "",
            "street": self.street,
            "number": self.number,
            "complement": self.complement,
            "neighborhood": self.neighborhood,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
        }
