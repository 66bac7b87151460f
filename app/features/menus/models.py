"""
Navigation menu model.
"""
from sqlalchemy import String, ForeignKey, Boolean, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, AuditMixin, generate_id


class Menu(Base, TimestampMixin, AuditMixin):
    """
    Menu node in a forest.

    parent_only marks a non-navigable header shown only when one of its
    children is visible. permission_id/attribute_id gate visibility; when both
    are null the node is visible to any authenticated user.
    """
    __tablename__ = "menus"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(100), nullable=True)
    url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    parent_only: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    parent_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("menus.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    permission_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("permissions.id", ondelete="SET NULL"), nullable=True
    )
    attribute_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("permission_attributes.id", ondelete="SET NULL"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Menu(id={self.id}, name={self.name!r}, parent_id={self.parent_id})>"
