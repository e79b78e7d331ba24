from __future__ import annotations

from promptreel.services import profiles, subscriptions

from conftest import client_error, make_user


def test_find_user_by_email_requires_exact_match(cognito_users):
    cognito_users.extend(
        [
            {"sub": "s1", "email": "ana.maria@example.com"},
            {"sub": "s2", "email": "Ana@Example.com"},
        ]
    )

    found = subscriptions.find_user_by_email(" ana@example.com ")

    assert found["id"] == "s2"
    assert found["email"] == "ana@example.com"


def test_set_subscription_without_email(tables):
    result = subscriptions.set_subscription_by_email("", True)
    assert result == {"success": False, "message": "No email on event"}


def test_set_subscription_when_profile_missing(tables, cognito_users):
    cognito_users.append({"sub": "s1", "email": "ana@example.com"})

    result = subscriptions.activate_subscription_by_email("ana@example.com")

    assert result["success"] is False
    assert result["user_id"] == "s1"
    assert "Profile not found" in result["message"]
    assert tables["profiles"].items == {}


def test_set_subscription_lookup_failure(tables, monkeypatch):
    def broken(email):
        raise client_error("TooManyRequestsException", "Rate exceeded", "ListUsers")

    monkeypatch.setattr(subscriptions, "cognito_list_users_by_email", broken)

    result = subscriptions.deactivate_subscription_by_email("ana@example.com")

    assert result["success"] is False
    assert "lookup failed" in result["message"]


def test_flag_is_idempotent(tables, cognito_users, names):
    cognito_users.append({"sub": "s1", "email": "ana@example.com"})
    tables["profiles"].items["s1"] = {"id": "s1", "name": "Ana", "is_subscriber": False}

    for _ in range(3):
        assert subscriptions.activate_subscription_by_email("ana@example.com", names=names)["success"]

    assert tables["profiles"].items["s1"]["is_subscriber"] is True
    assert subscriptions.check_subscription_status("s1") is True


def test_check_subscription_status_defaults_false(tables):
    assert subscriptions.check_subscription_status("nobody") is False
    tables["profiles"].fail_with = "InternalServerError"
    assert subscriptions.check_subscription_status("nobody") is False


def test_check_email_has_payments(tables):
    rows = tables["payments"].items
    assert subscriptions.check_email_has_payments("ana@example.com") is False

    rows["p1"] = {"id": "p1", "email": "ana@example.com", "event_kind": "pending", "created_at": "2026-01-01T00:00:00"}
    assert subscriptions.check_email_has_payments("ana@example.com") is False

    rows["p2"] = {"id": "p2", "email": "ana@example.com", "event_kind": "approved", "created_at": "2026-01-02T00:00:00"}
    assert subscriptions.check_email_has_payments("ANA@example.com") is True

    rows["p3"] = {"id": "p3", "email": "ana@example.com", "event_kind": "cancelled", "created_at": "2026-01-03T00:00:00"}
    assert subscriptions.check_email_has_payments("ana@example.com") is False

    tables["payments"].fail_with = "ResourceNotFoundException"
    assert subscriptions.check_email_has_payments("ana@example.com") is False


def test_create_profile_is_conditional(tables, names):
    names.set("u1", "Old")
    assert profiles.create_profile("u1", "Ana", names=names).ok
    assert "u1" not in names

    again = profiles.create_profile("u1", "Other")
    assert not again.ok
    assert again.error == "Profile already exists"
    assert tables["profiles"].items["u1"]["name"] == "Ana"


def test_update_profile_ignores_unknown_fields(tables):
    tables["profiles"].items["u1"] = {"id": "u1", "name": "Ana", "is_subscriber": False}

    result = profiles.update_profile("u1", {"name": "Ana B", "email": "x@y.z"})

    assert result.ok
    assert result.data["name"] == "Ana B"
    assert "email" not in tables["profiles"].items["u1"]
    assert tables["profiles"].items["u1"]["updated_at"]


def test_enrich_user_creates_missing_profile(tables, names):
    user = profiles.enrich_user(make_user("u5", email="zoe@example.com"), names=names)

    assert user.name == "zoe"
    assert user.is_subscriber is False
    assert tables["profiles"].items["u5"]["name"] == "zoe"


def test_ensure_profile_is_create_once(tables, names):
    first = profiles.ensure_profile("u6", "lia@example.com", names=names)
    second = profiles.ensure_profile("u6", "lia@example.com", "Other", names=names)

    assert first.data["name"] == "lia"
    assert second.data["name"] == "lia"
    assert len(tables["profiles"].items) == 1


def test_full_profile_provisions_missing_row(tables, names):
    result = profiles.get_full_user_profile(make_user("u7", email="ivo@example.com"), names=names)

    assert result.ok
    assert result.data.name == "ivo"
    assert result.data.is_subscriber is False
    assert tables["profiles"].items["u7"]["name"] == "ivo"


def test_full_profile_keeps_existing_row(tables, names):
    tables["profiles"].items["u8"] = {"id": "u8", "name": "Bea", "is_subscriber": True}

    result = profiles.get_full_user_profile(make_user("u8", name="Ignored"), names=names)

    assert result.data.name == "Bea"
    assert result.data.is_subscriber is True
    assert len(tables["profiles"].items) == 1
