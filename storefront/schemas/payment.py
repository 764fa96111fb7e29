"""
Payment gateway webhook payload schemas.

Only the parts of the gateway's event body the service acts on are
modelled; everything else is ignored.
"""
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class PaymentEntity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, description="Gateway payment ID")
    order_id: Optional[str] = Field(None, description="Gateway order ID")
    amount: int = Field(..., ge=0, description="Amount in minor units")
    currency: str = "INR"
    status: Optional[str] = None
    notes: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('notes', mode='before')
    @classmethod
    def empty_notes(cls, v):
        # The gateway sends an empty JSON array when there are no notes
        if v is None or v == []:
            return {}
        return v


class RefundEntity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, description="Gateway refund ID")
    payment_id: str = Field(..., min_length=1)
    amount: int = Field(..., ge=0)
    status: Optional[str] = None


class PaymentWrapper(BaseModel):
    entity: PaymentEntity


class RefundWrapper(BaseModel):
    entity: RefundEntity


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    payment: Optional[PaymentWrapper] = None
    refund: Optional[RefundWrapper] = None


class WebhookEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: str = Field(..., min_length=1)
    payload: WebhookPayload = Field(default_factory=WebhookPayload)
    created_at: Optional[int] = None
