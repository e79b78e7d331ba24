import base64
import json
import unittest
from types import SimpleNamespace
from unittest.mock import patch

from fastapi import HTTPException

from promptreel.auth import deps
from promptreel.models import User
from promptreel.services.names import NameCache


def unsigned_jwt(claims):
    header = base64.urlsafe_b64encode(json.dumps({"alg": "none"}).encode()).decode().rstrip("=")
    payload = base64.urlsafe_b64encode(json.dumps(claims).encode()).decode().rstrip("=")
    return f"{header}.{payload}."


class TestAuthDeps(unittest.TestCase):
    def test_identity_requires_header(self):
        req = SimpleNamespace(headers={})
        with self.assertRaises(HTTPException) as ctx:
            deps.get_current_identity(req).id
        self.assertEqual(ctx.exception.status_code, 401)

    def test_identity_rejects_invalid_scheme(self):
        req = SimpleNamespace(headers={"authorization": "Token abc"})
        with self.assertRaises(HTTPException) as ctx:
            deps.get_current_identity(req).id
        self.assertEqual(ctx.exception.status_code, 401)

    def test_identity_accepts_bearer(self):
        req = SimpleNamespace(headers={"authorization": "Bearer user-1"})
        user_sub = deps.get_current_identity(req).id
        self.assertEqual(user_sub, "user-1")

    def test_identity_prefers_jwt_sub(self):
        token = unsigned_jwt({"sub": "jwt-user"})
        req = SimpleNamespace(headers={"authorization": f"Bearer {token}"})
        user_sub = deps.get_current_identity(req).id
        self.assertEqual(user_sub, "jwt-user")

    def test_identity_carries_email_and_name_claims(self):
        token = unsigned_jwt({"sub": "jwt-user", "email": "ana@example.com", "name": "Ana"})
        req = SimpleNamespace(headers={"authorization": f"Bearer {token}"})
        user = deps.get_current_identity(req)
        self.assertEqual(user, User(id="jwt-user", email="ana@example.com", name="Ana"))

    def test_dev_header_identity(self):
        req = SimpleNamespace(headers={"x-user-sub": "dev-1", "x-user-email": "dev@example.com"})
        user = deps.get_current_identity(req)
        self.assertEqual(user.id, "dev-1")
        self.assertEqual(user.email, "dev@example.com")
        self.assertIsNone(user.name)

    def test_optional_bearer_token(self):
        self.assertEqual(deps.optional_bearer_token(SimpleNamespace(headers={"authorization": "Bearer abc "})), "abc")
        self.assertIsNone(deps.optional_bearer_token(SimpleNamespace(headers={})))
        self.assertIsNone(deps.optional_bearer_token(SimpleNamespace(headers={"authorization": "Basic abc"})))

    def test_get_current_user_applies_profile(self):
        identity = User(id="u1", email="ana@example.com")
        names = NameCache()
        enriched = User(id="u1", email="ana@example.com", name="Ana", is_subscriber=True)
        with patch.object(deps, "enrich_user", return_value=enriched) as enrich_mock:
            user = deps.get_current_user(identity=identity, names=names)
        enrich_mock.assert_called_once_with(identity, names=names)
        self.assertTrue(user.is_subscriber)


if __name__ == "__main__":
    unittest.main()
