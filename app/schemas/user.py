from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class UserLogin(BaseModel):
    email: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str


class UserOut(BaseModel):
    id: int
    email: str
    full_name: str
    role: str
    roll_no: Optional[str] = None
    is_blocked: bool
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BlockUpdate(BaseModel):
    is_blocked: bool = Field(alias="isBlocked")

    class Config:
        populate_by_name = True
