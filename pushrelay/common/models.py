"""Models shared by both services."""

from uuid import uuid4

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from pushrelay.common.db import Base


class DeviceToken(Base):
    """One app installation registered with the push gateway for a user."""

    __tablename__ = "profile_push_tokens"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(String, index=True)
    push_token: Mapped[str] = mapped_column("expo_push_token", String, index=True)
    device_name: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
