"""
Pydantic schemas for the membership backend contract.

Field names follow the backend's camelCase wire format through aliases;
Python code uses the snake_case attribute names.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from entitlements.models import Principal, parse_timestamp


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class PrincipalPayload(WireModel):
    """Response body for GET /current-user."""

    email: str = Field(..., min_length=1)
    role: Optional[str] = Field(None, description="user or admin")
    badge: Optional[str] = Field(None, description="Missing on records created before badges")
    name: Optional[str] = None
    photo: Optional[str] = None
    principal_id: Optional[str] = Field(None, alias="_id")
    created_at: Optional[datetime] = Field(None, alias="created_At")
    last_log_in: Optional[datetime] = Field(None, alias="last_Log_In")

    @field_validator("created_at", "last_log_in", mode="before")
    @classmethod
    def lenient_timestamp(cls, value):
        return parse_timestamp(value)

    def to_principal(self) -> Principal:
        return Principal(
            email=self.email,
            role=self.role,
            badge=self.badge,
            name=self.name,
            photo=self.photo,
            principal_id=self.principal_id,
            created_at=self.created_at,
            last_log_in=self.last_log_in,
        )


class RegisterPrincipalRequest(WireModel):
    """Request body for POST /users. New principals start as user/Bronze."""

    email: str = Field(..., min_length=1)
    name: Optional[str] = None
    photo: Optional[str] = None
    role: str = "user"
    badge: str = "Bronze"


class RegisterPrincipalResponse(WireModel):
    created: bool = False
    principal: Optional[PrincipalPayload] = None


class CreatePaymentSessionRequest(WireModel):
    """Request body for POST /create-payment-intent."""

    package_name: str = Field(..., alias="packageName")
    price: int = Field(..., gt=0)


class PaymentSessionResponse(WireModel):
    client_secret: str = Field(..., alias="clientSecret", min_length=1)


class ConfirmPaymentRequest(WireModel):
    """Request body for POST /payments. Idempotent on transactionId."""

    email: str
    package_name: str = Field(..., alias="packageName")
    price: int = Field(..., gt=0)
    transaction_id: str = Field(..., alias="transactionId", min_length=1)
    session_token: Optional[str] = Field(None, alias="sessionToken")


class ConfirmPaymentResponse(WireModel):
    badge: str
    payment_history_id: Optional[str] = Field(None, alias="paymentHistoryId")
    replayed: bool = False


class PaymentHistoryEntry(WireModel):
    email: str
    package_name: str = Field(..., alias="packageName")
    price: int
    transaction_id: str = Field(..., alias="transactionId")
    paid_at: datetime = Field(..., alias="paidAt")
    entry_id: Optional[str] = Field(None, alias="_id")


class ToggleLikeResponse(WireModel):
    """Response body for PATCH /meals/like/{id} and /upcoming-meals/like/{id}."""

    liked: bool
    like_count: int = Field(..., alias="likeCount", ge=0)


class ChangeRoleRequest(WireModel):
    make_admin: bool = Field(..., alias="makeAdmin")
    requester_email: str = Field(..., alias="requesterEmail")


class ChangeRoleResponse(WireModel):
    success: bool
    message: Optional[str] = None
