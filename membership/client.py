"""
HTTP client for the membership backend.

Wraps the REST contract consumed by the entitlement engine: current
principal, registration, payment sessions and confirmations, payment history,
like toggles and role changes. Every call is a suspension point; nothing in
here makes entitlement decisions.
"""

import logging
import os
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from entitlements.models import Principal
from membership.schemas import (
    ChangeRoleRequest,
    ChangeRoleResponse,
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    CreatePaymentSessionRequest,
    PaymentHistoryEntry,
    PaymentSessionResponse,
    PrincipalPayload,
    RegisterPrincipalRequest,
    RegisterPrincipalResponse,
    ToggleLikeResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:5000"


class MembershipApiError(Exception):
    """Error from the membership backend (network, HTTP status or bad payload)."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401

    def to_dict(self) -> dict:
        return {
            "error": self.code or "MEMBERSHIP_API_ERROR",
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
        }


class MembershipApiClient:
    """
    Async client for the membership backend.

    Usage:
        async with MembershipApiClient(identity_token=token) as client:
            principal = await client.get_current_principal()
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        identity_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Backend root URL (MEMBERSHIP_API_URL if not provided)
            identity_token: Opaque identity token of the signed-in principal
            timeout: Request timeout in seconds (MEMBERSHIP_API_TIMEOUT, default 30)
            transport: Optional httpx transport, e.g. the local reference backend
        """
        self.base_url = (base_url or os.getenv("MEMBERSHIP_API_URL", DEFAULT_API_URL)).rstrip("/")
        if timeout is None:
            timeout = float(os.getenv("MEMBERSHIP_API_TIMEOUT", "30"))

        headers = {"Content-Type": "application/json"}
        if identity_token:
            headers["Authorization"] = f"Bearer {identity_token}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json, params=params)
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            code = str(status_code)
            message = f"Membership API error: {status_code}"
            details: Dict[str, Any] = {}
            try:
                body = e.response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                details = body
                code = body.get("code") or code
                message = body.get("message") or message
            logger.error("Membership API HTTP error", extra={
                "method": method,
                "path": path,
                "status_code": status_code,
                "response": e.response.text[:500],
            })
            raise MembershipApiError(message, code=code, status_code=status_code, details=details)
        except httpx.RequestError as e:
            logger.error("Membership API request error", extra={
                "method": method,
                "path": path,
                "error": str(e),
            })
            raise MembershipApiError(f"Request failed: {str(e)}", code="NETWORK_ERROR")
        except ValueError as e:
            raise MembershipApiError(
                f"Invalid JSON from {method} {path}",
                code="INVALID_RESPONSE",
                details={"error": str(e)},
            )

    @staticmethod
    def _parse(model, data: Any, path: str):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error("Membership API returned unexpected payload", extra={
                "path": path,
                "errors": e.errors(include_url=False),
            })
            raise MembershipApiError(
                f"Unexpected response from {path}",
                code="INVALID_RESPONSE",
                details={"errors": e.errors(include_url=False)},
            )

    async def get_current_principal(self) -> Principal:
        data = await self._request("GET", "/current-user")
        return self._parse(PrincipalPayload, data, "/current-user").to_principal()

    async def register_principal(
        self,
        email: str,
        name: Optional[str] = None,
        photo: Optional[str] = None,
    ) -> RegisterPrincipalResponse:
        """Create the principal record on first sign-in; the backend upserts."""
        body = RegisterPrincipalRequest(email=email, name=name, photo=photo).to_wire()
        data = await self._request("POST", "/users", json=body)
        return self._parse(RegisterPrincipalResponse, data, "/users")

    async def create_payment_session(self, package_name: str, price: int) -> PaymentSessionResponse:
        body = CreatePaymentSessionRequest(package_name=package_name, price=price).to_wire()
        data = await self._request("POST", "/create-payment-intent", json=body)
        return self._parse(PaymentSessionResponse, data, "/create-payment-intent")

    async def confirm_payment(self, request: ConfirmPaymentRequest) -> ConfirmPaymentResponse:
        data = await self._request("POST", "/payments", json=request.to_wire())
        return self._parse(ConfirmPaymentResponse, data, "/payments")

    async def list_payments(self, email: str) -> List[PaymentHistoryEntry]:
        data = await self._request("GET", "/my-payments", params={"email": email})
        if not isinstance(data, list):
            raise MembershipApiError("Unexpected response from /my-payments", code="INVALID_RESPONSE")
        return [self._parse(PaymentHistoryEntry, entry, "/my-payments") for entry in data]

    async def toggle_like(self, item_id: str, upcoming: bool = False) -> ToggleLikeResponse:
        collection = "upcoming-meals" if upcoming else "meals"
        path = f"/{collection}/like/{quote(str(item_id), safe='')}"
        data = await self._request("PATCH", path)
        return self._parse(ToggleLikeResponse, data, path)

    async def change_role(
        self,
        principal_id: str,
        make_admin: bool,
        requester_email: str,
    ) -> ChangeRoleResponse:
        path = f"/users/role/{quote(str(principal_id), safe='')}"
        body = ChangeRoleRequest(make_admin=make_admin, requester_email=requester_email).to_wire()
        data = await self._request("PATCH", path, json=body)
        return self._parse(ChangeRoleResponse, data, path)
