"""Identity schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from app.core.enums import RoleEnum


class Identity(BaseModel):
    """Authenticated caller as asserted by the identity provider."""

    model_config = ConfigDict(frozen=True)

    id: int
    role: RoleEnum
