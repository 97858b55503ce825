from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    current_password: Optional[str] = Field(None, alias="currentPassword")
    new_password: Optional[str] = Field(None, alias="newPassword")

    model_config = {"populate_by_name": True}


class AccountResponse(BaseModel):
    id: int
    email: str
    name: str
    isPremium: bool
    premiumUntil: Optional[datetime] = None
    demoTasksUsed: int


class AuthResponse(BaseModel):
    message: str
    token: str
    user: AccountResponse
