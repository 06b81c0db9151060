"""Auth Pydantic schemas."""

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict

from expense_tracker.common.constants import UserRole


class Actor(BaseModel):
    """The authenticated caller, passed explicitly into every service call."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    role: UserRole = UserRole.USER
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class UserBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    first_name: str
    last_name: str = ""
    email: str
