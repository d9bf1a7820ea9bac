"""
httpx transport that serves the membership REST contract from an
InMemoryMembershipStore.

    store = InMemoryMembershipStore()
    client = MembershipApiClient(
        base_url="http://membership.local",
        identity_token="student@example.com",
        transport=build_transport(store),
    )

Identity tokens are resolved to emails through `tokens`; without a mapping
the token itself is taken as the email.
"""

import json
import logging
import re
from typing import Callable, Dict, Optional

import httpx

from membership.store import InMemoryMembershipStore, StoreError

logger = logging.getLogger(__name__)

_LIKE_ROUTE = re.compile(r"^/(meals|upcoming-meals)/like/([^/]+)$")
_ROLE_ROUTE = re.compile(r"^/users/role/([^/]+)$")


def _json(status_code: int, payload) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


def _error(status_code: int, code: str, message: str) -> httpx.Response:
    return _json(status_code, {"code": code, "message": message})


def build_transport(
    store: InMemoryMembershipStore,
    tokens: Optional[Dict[str, str]] = None,
) -> httpx.MockTransport:
    return httpx.MockTransport(build_handler(store, tokens))


def build_handler(
    store: InMemoryMembershipStore,
    tokens: Optional[Dict[str, str]] = None,
) -> Callable[[httpx.Request], httpx.Response]:
    def authenticated_email(request: httpx.Request) -> Optional[str]:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return None
        token = header[len("Bearer "):].strip()
        if tokens is not None:
            return tokens.get(token)
        return token or None

    def handler(request: httpx.Request) -> httpx.Response:
        email = authenticated_email(request)
        if email is None:
            return _error(401, "UNAUTHENTICATED", "Authentication required")

        path = request.url.path
        method = request.method
        body = json.loads(request.content) if request.content else {}

        try:
            if method == "GET" and path == "/current-user":
                return _json(200, store.get_principal(email))

            if method == "POST" and path == "/users":
                if str(body.get("email", "")).strip().lower() != email.strip().lower():
                    return _error(403, "FORBIDDEN", "Cannot register another user")
                created, record = store.upsert_principal(
                    email, name=body.get("name"), photo=body.get("photo")
                )
                return _json(201 if created else 200, {"created": created, "principal": record})

            if method == "POST" and path == "/create-payment-intent":
                token = store.create_payment_session(email, body.get("packageName"), body.get("price"))
                return _json(200, {"clientSecret": token})

            if method == "POST" and path == "/payments":
                if str(body.get("email", "")).strip().lower() != email.strip().lower():
                    return _error(403, "FORBIDDEN", "Cannot pay for another user")
                result = store.confirm_payment(
                    email,
                    body.get("packageName"),
                    body.get("price"),
                    body.get("transactionId"),
                    session_token=body.get("sessionToken"),
                )
                return _json(200, result)

            if method == "GET" and path == "/my-payments":
                requested = request.url.params.get("email", email)
                requester = store.get_principal(email)
                if requested.strip().lower() != email.strip().lower() and requester.get("role") != "admin":
                    return _error(403, "FORBIDDEN", "Cannot read another user's payments")
                return _json(200, store.list_payments(requested))

            like_match = _LIKE_ROUTE.match(path)
            if method == "PATCH" and like_match:
                upcoming = like_match.group(1) == "upcoming-meals"
                return _json(200, store.toggle_like(like_match.group(2), email, upcoming=upcoming))

            role_match = _ROLE_ROUTE.match(path)
            if method == "PATCH" and role_match:
                if str(body.get("requesterEmail", "")).strip().lower() != email.strip().lower():
                    return _error(403, "FORBIDDEN", "Requester does not match identity")
                result = store.change_role(role_match.group(1), bool(body.get("makeAdmin")), email)
                return _json(200, result)

        except StoreError as e:
            return _json(e.status_code, e.to_dict())

        logger.debug("No local route", extra={"method": method, "path": path})
        return _error(404, "NOT_FOUND", f"No route for {method} {path}")

    return handler
