from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from threading import RLock
from typing import Dict, List, Optional

from .badges import Badge, parse_badge
from .errors import ConfigValidationError
from .models import MembershipConfig, MembershipPackage, Role, RoutePermissions

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "memberships.json"


def _config_path_from_env() -> Path:
    configured = os.getenv("MEMBERSHIP_CONFIG_PATH")
    return Path(configured) if configured else DEFAULT_CONFIG_PATH


class MembershipConfigLoader:
    """Loads packages, gated actions and the route table from memberships.json."""

    def __init__(self, config_path: Optional[str] = None) -> None:
        self._config_path = Path(config_path) if config_path else _config_path_from_env()
        self._lock = RLock()
        self._config: MembershipConfig
        self.reload()

    @property
    def config(self) -> MembershipConfig:
        with self._lock:
            return self._config

    def reload(self) -> None:
        raw = self._read_config_file()
        parsed = self.parse_config(raw)
        with self._lock:
            self._config = parsed
        logger.info(
            "Loaded membership config",
            extra={
                "config_path": str(self._config_path),
                "packages": [b.value for b in parsed.packages],
                "actions": sorted(parsed.action_requirements),
            },
        )

    def get_package(self, badge: Badge) -> MembershipPackage:
        with self._lock:
            package = self._config.packages.get(badge)
        if package is None:
            raise KeyError(f"no package for badge: {badge.value}")
        return package

    def _read_config_file(self) -> dict:
        try:
            with self._config_path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ConfigValidationError(f"{self._config_path} is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigValidationError("membership config must contain a top-level object")
        return raw

    @staticmethod
    def parse_config(raw: dict) -> MembershipConfig:
        packages_raw = raw.get("packages")
        if not isinstance(packages_raw, dict) or not packages_raw:
            raise ConfigValidationError(
                "membership config must include a non-empty object field named 'packages'",
                field="packages",
            )

        packages: Dict[Badge, MembershipPackage] = {}
        for name, package_data in packages_raw.items():
            badge = parse_badge(name)
            if badge is None:
                raise ConfigValidationError(f"unknown package badge: {name!r}", field="packages")
            if badge == Badge.BRONZE:
                raise ConfigValidationError("Bronze is the default tier and cannot be sold", field="packages")
            if not isinstance(package_data, dict):
                raise ConfigValidationError(f"package '{name}' must be an object", field="packages")

            try:
                price = int(package_data.get("price"))
            except (TypeError, ValueError):
                raise ConfigValidationError(f"package '{name}' has invalid price", field="packages")
            if price <= 0:
                raise ConfigValidationError(f"package '{name}' price must be positive", field="packages")

            features = package_data.get("features", [])
            if not isinstance(features, list):
                raise ConfigValidationError(f"package '{name}' features must be a list", field="packages")

            packages[badge] = MembershipPackage(
                badge=badge,
                price=price,
                features=tuple(str(f).strip() for f in features if str(f).strip()),
            )

        actions_raw = raw.get("actions", {})
        if not isinstance(actions_raw, dict):
            raise ConfigValidationError("'actions' must be an object", field="actions")

        action_requirements: Dict[str, Badge] = {}
        for action, badge_name in actions_raw.items():
            action_key = str(action).strip()
            badge = parse_badge(badge_name)
            if not action_key or badge is None:
                raise ConfigValidationError(
                    f"invalid action requirement: {action!r} -> {badge_name!r}",
                    field="actions",
                )
            action_requirements[action_key] = badge

        routes_raw = raw.get("routes", {})
        if not isinstance(routes_raw, dict):
            raise ConfigValidationError("'routes' must be an object", field="routes")

        defaults_raw = routes_raw.get("default_paths", {})
        default_paths: Dict[Role, str] = {}
        for role in Role:
            path = defaults_raw.get(role.value)
            if not isinstance(path, str) or not path.startswith("/"):
                raise ConfigValidationError(
                    f"routes.default_paths.{role.value} must be an absolute path",
                    field="routes.default_paths",
                )
            default_paths[role] = path

        routes = RoutePermissions(
            admin_only=frozenset(_path_list(routes_raw, "admin_only")),
            user_only=frozenset(_path_list(routes_raw, "user_only")),
            auth_paths=frozenset(_path_list(routes_raw, "auth_paths")),
        )
        overlap = routes.admin_only & routes.user_only
        if overlap:
            raise ConfigValidationError(
                f"paths cannot be both admin-only and user-only: {sorted(overlap)}",
                field="routes",
            )

        return MembershipConfig(
            packages=packages,
            action_requirements=action_requirements,
            routes=routes,
            default_paths=default_paths,
        )


def _path_list(routes_raw: dict, key: str) -> List[str]:
    from .redirects import normalize_path

    values = routes_raw.get(key, [])
    if not isinstance(values, list):
        raise ConfigValidationError(f"routes.{key} must be a list", field=f"routes.{key}")
    paths: List[str] = []
    for value in values:
        if not isinstance(value, str) or not value.startswith("/"):
            raise ConfigValidationError(f"routes.{key} has invalid path: {value!r}", field=f"routes.{key}")
        paths.append(normalize_path(value))
    return paths


_default_loader: Optional[MembershipConfigLoader] = None


def get_membership_config() -> MembershipConfig:
    """Process-wide config, loaded lazily on first use."""
    global _default_loader
    if _default_loader is None:
        _default_loader = MembershipConfigLoader()
    return _default_loader.config
