"""Pydantic schemas for the orders API.

Request bodies use the camelCase field names the storefront sends
(``customerInfo``, ``cartItems``, ``totalAmount``); Python code uses the
snake_case attribute names.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CustomerInfoIn(_CamelModel):
    """Buyer details.

    Attributes:
        name: Full name, used for the invoice and the shipping label.
        email_address: Contact e-mail; also passed to the gateway as a hint.
    """

    name: str = Field(min_length=1, max_length=200)
    zip_code: str = Field(default="", max_length=20)
    country: str = Field(default="", max_length=100)
    city: str = Field(default="", max_length=100)
    street: str = Field(default="", max_length=200)
    phone_number: str = Field(default="", max_length=50)
    email_address: EmailStr

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("Name must not be blank")
        return v2


class CartItemIn(_CamelModel):
    product_id: int = Field(gt=0)
    quantity: int = Field(gt=0)


class InitializeOrderDTO(_CamelModel):
    """Schema for the initialize-order request.

    Attributes:
        customer_info: Buyer details.
        cart_items: At least one product/quantity pair.
        total_amount: Amount to charge, in whole currency units (> 0).
    """

    customer_info: CustomerInfoIn
    cart_items: List[CartItemIn] = Field(min_length=1, max_length=100)
    total_amount: int = Field(gt=0)


class OrderItemOut(_CamelModel):
    product_id: int
    amount: int
    ordered_price: int


class OrderOut(_CamelModel):
    id: str
    status: str
    order_date: datetime
    total: int
    currency: str
    items: List[OrderItemOut]


class PaymentReadDTO(_CamelModel):
    payment_id: str
    status: str
    created_at: datetime
    finalized_at: Optional[datetime] = None
    order: Optional[OrderOut] = None
