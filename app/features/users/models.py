"""
User model with ULID primary keys.
"""
from sqlalchemy import String, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, SoftDeleteMixin, generate_id


class User(Base, TimestampMixin, SoftDeleteMixin):
    """
    User account.

    Credentials are stored as an opaque hash; verifying them is the job of the
    authentication service, not of this backend.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_id)

    username: Mapped[str] = mapped_column(String(150), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_2fa_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Audit back-references (self-referential, display only)
    created_by_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("users.id"), nullable=True
    )
    updated_by_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("users.id"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username!r})>"
