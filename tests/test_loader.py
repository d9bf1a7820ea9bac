import json

import pytest

from entitlements.badges import Badge
from entitlements.errors import ConfigValidationError
from entitlements.loader import MembershipConfigLoader
from entitlements.models import Role

VALID = {
    "packages": {"Silver": {"price": 199, "features": [" Like upcoming meals ", ""]}},
    "actions": {"request-meal": "silver"},
    "routes": {
        "default_paths": {"admin": "/dashboard/admin-profile", "user": "/dashboard/my-profile"},
        "admin_only": ["/dashboard/manage-users/"],
        "user_only": ["/dashboard/my-profile"],
        "auth_paths": ["/login"],
    },
}


def _write(tmp_path, payload):
    path = tmp_path / "memberships.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_bundled_config_loads(config):
    assert config.price_for(Badge.SILVER) == 199
    assert config.price_for(Badge.GOLD) == 399
    assert config.price_for(Badge.PLATINUM) == 599
    assert config.price_for(Badge.BRONZE) is None
    assert config.action_requirements["like-upcoming"] == Badge.SILVER
    assert config.action_requirements["request-meal"] == Badge.SILVER
    assert config.default_paths[Role.ADMIN] == "/dashboard/admin-profile"


def test_loader_normalizes_entries(tmp_path):
    loader = MembershipConfigLoader(str(_write(tmp_path, VALID)))
    config = loader.config
    assert loader.get_package(Badge.SILVER).features == ("Like upcoming meals",)
    assert dict(config.action_requirements) == {"request-meal": Badge.SILVER}
    assert config.routes.admin_only == frozenset({"/dashboard/manage-users"})


def test_loader_env_override(tmp_path, monkeypatch):
    monkeypatch.setenv("MEMBERSHIP_CONFIG_PATH", str(_write(tmp_path, VALID)))
    assert list(MembershipConfigLoader().config.packages) == [Badge.SILVER]


def test_config_is_immutable(tmp_path):
    config = MembershipConfigLoader(str(_write(tmp_path, VALID))).config
    with pytest.raises(TypeError):
        config.packages[Badge.GOLD] = None


def test_reload_picks_up_changes(tmp_path):
    path = _write(tmp_path, VALID)
    loader = MembershipConfigLoader(str(path))
    changed = json.loads(json.dumps(VALID))
    changed["packages"]["Silver"]["price"] = 249
    path.write_text(json.dumps(changed), encoding="utf-8")
    loader.reload()
    assert loader.config.price_for(Badge.SILVER) == 249


def test_get_package_unknown_badge(tmp_path):
    loader = MembershipConfigLoader(str(_write(tmp_path, VALID)))
    with pytest.raises(KeyError):
        loader.get_package(Badge.PLATINUM)


@pytest.mark.parametrize("mutate,field", [
    (lambda c: c.pop("packages"), "packages"),
    (lambda c: c["packages"].update({"Bronze": {"price": 1}}), "packages"),
    (lambda c: c["packages"].update({"Diamond": {"price": 1}}), "packages"),
    (lambda c: c["packages"]["Silver"].update({"price": 0}), "packages"),
    (lambda c: c["packages"]["Silver"].update({"price": "free"}), "packages"),
    (lambda c: c["actions"].update({"request-meal": "Diamond"}), "actions"),
    (lambda c: c["routes"]["default_paths"].pop("user"), "routes.default_paths"),
    (lambda c: c["routes"]["user_only"].append("/dashboard/manage-users"), "routes"),
    (lambda c: c["routes"].update({"auth_paths": ["login"]}), "routes.auth_paths"),
])
def test_invalid_config_is_rejected(tmp_path, mutate, field):
    payload = json.loads(json.dumps(VALID))
    mutate(payload)
    with pytest.raises(ConfigValidationError) as exc_info:
        MembershipConfigLoader(str(_write(tmp_path, payload)))
    assert exc_info.value.field == field
    assert exc_info.value.to_dict()["error"] == "MEMBERSHIP_CONFIG_INVALID"


def test_invalid_json_is_rejected(tmp_path):
    path = tmp_path / "memberships.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigValidationError):
        MembershipConfigLoader(str(path))
