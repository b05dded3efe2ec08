"""
Session Models - The device-local sign-in token.
"""

from pydantic import BaseModel, EmailStr, Field


class SessionToken(BaseModel):
    """Token kept in the device's local store for automatic sign-in."""
    email: str
    name: str
    last_active: int = Field(alias="lastActive")  # epoch millis
    auto_login_enabled: bool = Field(default=True, alias="autoLoginEnabled")

    class Config:
        populate_by_name = True


class SessionUser(BaseModel):
    """The signed-in user as seen by the rest of the app."""
    email: str
    name: str


class SessionSignIn(BaseModel):
    """Request body for signing the device in."""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=100)
