import unittest
from types import SimpleNamespace
from unittest.mock import patch

from fastapi import HTTPException

from promptreel.models import ProfilePatchReq, User
from promptreel.routers import profile
from promptreel.services import profiles as profiles_service
from promptreel.services.names import NameCache
from promptreel.services.store import DbResult


def build_request():
    return SimpleNamespace(headers={"user-agent": "agent"}, client=None, state=SimpleNamespace())


def build_user(**kwargs):
    return User(id="user-0001", email="ada@example.com", **kwargs)


class TestProfileRoutes(unittest.TestCase):
    def test_get_profile(self):
        user = build_user()
        names = NameCache()
        stored = user.with_profile({"name": "Ada", "is_subscriber": True})
        with patch.object(profile, "get_full_user_profile", return_value=DbResult(stored)) as get_mock:
            resp = profile.get_profile(user=user, names=names)
        get_mock.assert_called_once_with(user, names=names)
        self.assertEqual(resp["profile"]["name"], "Ada")
        self.assertTrue(resp["profile"]["is_subscriber"])

    def test_get_profile_storage_error(self):
        with patch.object(profile, "get_full_user_profile", return_value=DbResult(None, "boom")):
            with self.assertRaises(HTTPException) as ctx:
                profile.get_profile(user=build_user(), names=NameCache())
        self.assertEqual(ctx.exception.status_code, 500)

    def test_patch_profile_updates_name(self):
        names = NameCache()
        names.set("user-0001", "Ada")
        updated = {"id": "user-0001", "name": "Ada L.", "is_subscriber": False}
        with patch.object(profile, "update_profile", return_value=DbResult(updated)) as update_mock, \
                patch.object(profiles_service, "get_profile", return_value=DbResult(updated)):
            with patch.object(profile, "audit_event") as audit_mock:
                resp = profile.patch_profile(build_request(), ProfilePatchReq(name="  Ada L. "), user=build_user(), names=names)
        update_mock.assert_called_once_with("user-0001", {"name": "Ada L."}, names=names)
        audit_mock.assert_called_once()
        self.assertEqual(resp["profile"]["name"], "Ada L.")
        self.assertEqual(resp["display_name"], "Ada L.")
        self.assertEqual(names.get("user-0001"), "Ada L.")

    def test_patch_profile_rejects_blank_name(self):
        with patch.object(profile, "update_profile") as update_mock:
            with self.assertRaises(HTTPException) as ctx:
                profile.patch_profile(build_request(), ProfilePatchReq(name="  "), user=build_user(), names=NameCache())
        self.assertEqual(ctx.exception.status_code, 400)
        update_mock.assert_not_called()

    def test_patch_missing_profile_is_404(self):
        with patch.object(profile, "update_profile", return_value=DbResult(None, "Profile not found")):
            with self.assertRaises(HTTPException) as ctx:
                profile.patch_profile(build_request(), ProfilePatchReq(name="Ada"), user=build_user(), names=NameCache())
        self.assertEqual(ctx.exception.status_code, 404)

    def test_subscription_status(self):
        with patch.object(profile, "check_subscription_status", return_value=True) as check_mock:
            resp = profile.get_subscription(identity=build_user())
        check_mock.assert_called_once_with("user-0001")
        self.assertEqual(resp, {"user_id": "user-0001", "is_subscriber": True})

    def test_user_name_lookup_uses_cache(self):
        names = NameCache()
        names.set("user-0002", "Grace")
        resp = profile.get_user_name("user-0002", user=build_user(), names=names)
        self.assertEqual(resp, {"user_id": "user-0002", "name": "Grace"})


if __name__ == "__main__":
    unittest.main()
