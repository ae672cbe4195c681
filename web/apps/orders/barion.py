"""Pydantic models for the Barion payment API wire format.

Only the fields the workflow reads or sends are modelled; unknown
response fields are ignored.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class BarionItem(_Wire):
    name: str = Field(alias="Name")
    description: str = Field(alias="Description")
    quantity: int = Field(alias="Quantity")
    unit: str = Field(alias="Unit")
    unit_price: int = Field(alias="UnitPrice")
    item_total: int = Field(alias="ItemTotal")
    sku: str = Field(alias="SKU")


class BarionTransaction(_Wire):
    pos_transaction_id: str = Field(alias="POSTransactionId")
    payee: str = Field(alias="Payee")
    total: int = Field(alias="Total")
    items: List[BarionItem] = Field(alias="Items")


class StartPaymentRequest(_Wire):
    pos_key: str = Field(alias="POSKey")
    payment_type: str = Field(default="Immediate", alias="PaymentType")
    payment_window: str = Field(alias="PaymentWindow")
    guest_checkout: bool = Field(default=True, alias="GuestCheckOut")
    funding_sources: List[str] = Field(default_factory=lambda: ["All"], alias="FundingSources")
    payment_request_id: str = Field(alias="PaymentRequestId")
    payer_hint: Optional[str] = Field(default=None, alias="PayerHint")
    locale: str = Field(alias="Locale")
    currency: str = Field(alias="Currency")
    redirect_url: str = Field(alias="RedirectUrl")
    callback_url: str = Field(alias="CallbackUrl")
    transactions: List[BarionTransaction] = Field(alias="Transactions")


class BarionError(_Wire):
    error_code: Optional[str] = Field(default=None, alias="ErrorCode")
    title: Optional[str] = Field(default=None, alias="Title")
    description: Optional[str] = Field(default=None, alias="Description")


class StartPaymentResponse(_Wire):
    payment_id: Optional[str] = Field(default=None, alias="PaymentId")
    payment_request_id: Optional[str] = Field(default=None, alias="PaymentRequestId")
    status: Optional[str] = Field(default=None, alias="Status")
    gateway_url: Optional[str] = Field(default=None, alias="GatewayUrl")
    errors: List[BarionError] = Field(default_factory=list, alias="Errors")


class PaymentStateResponse(_Wire):
    payment_id: Optional[str] = Field(default=None, alias="PaymentId")
    status: Optional[str] = Field(default=None, alias="Status")
    total: Optional[float] = Field(default=None, alias="Total")
    currency: Optional[str] = Field(default=None, alias="Currency")
    errors: List[BarionError] = Field(default_factory=list, alias="Errors")
