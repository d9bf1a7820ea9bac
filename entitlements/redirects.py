"""
Post-authentication redirect resolution.

After sign-in, registration or federated sign-in the client navigates to the
page the user was trying to reach, but only if their role may open it. The
stashed path is always re-checked against the route table; a user bounced to
login from an admin page is sent to their own home page instead.

Route table semantics: admin-only and user-only paths are closed lists, and
any path in neither list is permitted for both roles. New admin routes must
be added to admin_only or they default to permitted.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Optional, Union
from urllib.parse import urlsplit

from .loader import get_membership_config
from .models import MembershipConfig, RedirectTarget, Role, normalize_role

logger = logging.getLogger(__name__)

RoleLike = Union[Role, str, None]
_REPEATED_SLASHES = re.compile(r"/{2,}")


def normalize_path(path: str) -> str:
    """
    Reduce a path to the form the route table is matched in.

    Query string, fragment and trailing slash (except for root) are dropped,
    repeated slashes collapse to one and case is folded, matching how the
    router resolves paths.
    """
    parts = urlsplit(path.strip())
    normalized = _REPEATED_SLASHES.sub("/", parts.path or "/").lower()
    if not normalized.startswith("/"):
        normalized = "/" + normalized
    if len(normalized) > 1:
        normalized = normalized.rstrip("/") or "/"
    return normalized



def is_internal_path(path: str) -> bool:
    """True for same-origin absolute paths; rejects URLs and protocol-relative paths."""
    candidate = path.strip()
    if not candidate.startswith("/") or candidate.startswith("//"):
        return False
    parts = urlsplit(candidate)
    return not parts.scheme and not parts.netloc


def _matches_any(path: str, prefixes: Iterable[str]) -> bool:
    for prefix in prefixes:
        if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
            return True
    return False


def intended_path_from_state(state: Any) -> Optional[str]:
    """
    Extract the intended path from router navigation state.

    Private routes stash the bare pathname; the login -> register link wraps
    it as {"from": pathname}. Anything else means no prior intent.
    """
    if isinstance(state, str):
        return state or None
    if isinstance(state, dict):
        for key in ("from", "pathname"):
            value = state.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and isinstance(value.get("pathname"), str):
                return value["pathname"] or None
    return None


class RedirectResolver:
    """Computes the navigation target after an authentication event."""

    def __init__(self, config: Optional[MembershipConfig] = None) -> None:
        self._config = config

    @property
    def config(self) -> MembershipConfig:
        return self._config or get_membership_config()

    def default_path(self, role: RoleLike) -> str:
        return self.config.default_paths[normalize_role(role)]

    def is_path_permitted(self, path: str, role: RoleLike) -> bool:
        if not is_internal_path(path):
            return False

        normalized = normalize_path(path)
        routes = self.config.routes

        # Authentication pages are never a post-login destination.
        if _matches_any(normalized, routes.auth_paths):
            return False

        resolved_role = normalize_role(role)
        if _matches_any(normalized, routes.admin_only):
            return resolved_role == Role.ADMIN
        if _matches_any(normalized, routes.user_only):
            return resolved_role == Role.USER
        return True

    def resolve(self, role: RoleLike, intended_path: Optional[str] = None) -> RedirectTarget:
        default = self.default_path(role)
        if not intended_path:
            return RedirectTarget(path=default)

        if self.is_path_permitted(intended_path, role):
            return RedirectTarget(path=intended_path.strip())

        logger.info(
            "Intended path not permitted after authentication",
            extra={
                "role": normalize_role(role).value,
                "intended_path": intended_path,
                "redirect_to": default,
            },
        )
        return RedirectTarget(path=default)


def resolve_redirect(role: RoleLike, intended_path: Optional[str] = None) -> RedirectTarget:
    return RedirectResolver().resolve(role, intended_path)
