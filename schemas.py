from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

# ----------------------------
# Auth / Users
# ----------------------------

class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    role: str = "employee"

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: str
    created_at: Optional[datetime] = None

class AuthResponse(BaseModel):
    token: str
    user: UserResponse

class EmployeeCreate(BaseModel):
    name: str
    email: EmailStr
    password: str
    role: str = "employee"

class EmployeeUpdate(BaseModel):
    name: str
    email: EmailStr
    role: str = "employee"


# ----------------------------
# Sweets
# ----------------------------

class SweetCreate(BaseModel):
    name: str
    category: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=0)
    description: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator('name', 'category')
    def must_not_be_blank(cls, v):
        if not v.strip():
            raise ValueError("must not be blank")
        return v

class SweetUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None
    image_url: Optional[str] = None

class SweetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: str
    price: float
    quantity: int
    description: Optional[str] = None
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class StockChangeRequest(BaseModel):
    # no coercion: true, 2.0 and "2" are not quantities
    quantity: int = Field(..., strict=True)

class PurchaseRequest(StockChangeRequest):
    order_id: Optional[str] = None


# ----------------------------
# Orders
# ----------------------------

class OrderItemResponse(BaseModel):
    sweet_id: int
    sweet_name: Optional[str] = None
    quantity: int
    price: float

class OrderResponse(BaseModel):
    id: str
    user_id: int
    total: float
    status: str
    created_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []

class PurchaseResponse(BaseModel):
    message: str = "Purchase successful"
    order: OrderResponse

class MessageResponse(BaseModel):
    message: str
