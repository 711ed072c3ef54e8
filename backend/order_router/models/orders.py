"""Order snapshots served by the record store."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class Customer(BaseModel):
    id: str | None = None
    name: str = ""

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class OrderStatus(BaseModel):
    master: str = ""
    stock: str = ""

    model_config = {"frozen": True, "extra": "ignore"}


class OrderDates(BaseModel):
    entered: date | None = None
    due: date | None = None
    due_factory: date | None = None
    days_to_due: int | None = None

    model_config = {"frozen": True, "extra": "ignore"}


class OrderTag(BaseModel):
    tag: str
    author: str | None = None
    created_at: datetime | None = None

    model_config = {"frozen": True, "extra": "ignore"}


class LineItem(BaseModel):
    description: str = ""
    quantity: float = 0.0
    unit_price: float = 0.0
    total_price: float = 0.0
    category: str | None = None
    materials: list[str] = Field(default_factory=list)
    processes: list[str] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "ignore"}


class Shipment(BaseModel):
    id: str | None = None
    method: str | None = None
    destination: str | None = None
    shipped: bool = False
    ship_date: date | None = None

    model_config = {"frozen": True, "extra": "ignore"}


class Order(BaseModel):
    """Immutable snapshot of one order as fetched from the record store."""

    job_number: str
    order_number: str | None = None
    customer: Customer = Field(default_factory=Customer)
    description: str = ""
    comments: str = ""
    status: OrderStatus = Field(default_factory=OrderStatus)
    dates: OrderDates = Field(default_factory=OrderDates)
    total: float = 0.0
    tags: list[OrderTag] = Field(default_factory=list)
    line_items: list[LineItem] = Field(default_factory=list)
    shipments: list[Shipment] = Field(default_factory=list)
    time_sensitive: bool = False

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("job_number", "order_number", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [{"tag": item} if isinstance(item, str) else item for item in value]

    @property
    def tag_texts(self) -> list[str]:
        return [item.tag for item in self.tags]

    @property
    def order_value(self) -> float:
        if self.total:
            return self.total
        return sum(item.total_price or item.unit_price * item.quantity for item in self.line_items)

    def is_overdue(self, today: date) -> bool:
        if self.dates.days_to_due is not None:
            return self.dates.days_to_due < 0
        return self.dates.due is not None and self.dates.due < today


__all__ = [
    "Customer",
    "OrderStatus",
    "OrderDates",
    "OrderTag",
    "LineItem",
    "Shipment",
    "Order",
]
