from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field


TransactionType = Literal["income", "expense"]


class UserRegister(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    username: str = Field(min_length=3, max_length=120)
    email: Optional[EmailStr] = None
    password: str = Field(min_length=8, max_length=128)
    phone_number: Optional[str] = Field(default=None, max_length=32)


class UserOut(BaseModel):
    id: int
    name: str
    username: str
    email: Optional[EmailStr] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProfileOut(UserOut):
    phone_number: Optional[str] = None
    whatsapp_enabled: bool = False


class LoginRequest(BaseModel):
    username: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class AuthResponse(Token):
    user: ProfileOut


class WhatsAppSettingsUpdate(BaseModel):
    phone_number: Optional[str] = Field(default=None, max_length=32)
    whatsapp_enabled: bool = True


class PhoneRegistrationOut(BaseModel):
    user_id: int
    username: str
    phone_number: Optional[str] = None
    whatsapp_enabled: bool

    class Config:
        from_attributes = True


class PhoneDirectoryOut(BaseModel):
    profiles: list[PhoneRegistrationOut]
    with_phone: list[PhoneRegistrationOut]
    without_phone: list[PhoneRegistrationOut]


class ExtractedTransactionOut(BaseModel):
    amount: float
    merchant: str
    category: str
    date: date
    type: TransactionType
    description: Optional[str] = None


class ExtractionResponse(BaseModel):
    status: Literal["success", "degraded", "failed"]
    data: Optional[ExtractedTransactionOut] = None
    message: str
