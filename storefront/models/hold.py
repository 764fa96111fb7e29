"""
Stock hold documents.

A hold is the provisional stock decrement taken for an online order while
the customer pays. It also keeps the checkout metadata (user, address,
lines, amount) that confirmations are built from.
"""
from enum import Enum
from typing import List, Dict, Optional, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from .order import AddressSnapshot, LineItem


class HoldStatus(str, Enum):
    HELD = "held"
    RELEASED = "released"
    COMMITTED = "committed"


class StockHold(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: Optional[str] = Field(None, alias="_id")
    gateway_order_ref: str
    user_id: str
    address_id: str
    address: AddressSnapshot
    line_items: List[LineItem] = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    amount_minor: int = Field(..., gt=0)
    currency: str
    receipt: str
    status: HoldStatus = HoldStatus.HELD
    created_at: datetime
    expires_at: datetime
    committed_at: Optional[datetime] = None
    released_at: Optional[datetime] = None

    def to_mongo(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id"}, exclude_none=True)

    @classmethod
    def from_mongo(cls, doc: Dict[str, Any]) -> "StockHold":
        data = dict(doc)
        if "_id" in data:
            data["_id"] = str(data["_id"])
        return cls.model_validate(data)
