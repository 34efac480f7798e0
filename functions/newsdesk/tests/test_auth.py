import unittest
from datetime import datetime, timedelta, timezone

import jwt

from newsdesk.auth import PWD, AdminAccount, TokenAuthority, bearer_token
from newsdesk.errors import ConfigurationError, Unauthenticated


class TokenAuthorityTests(unittest.TestCase):
    def setUp(self):
        self.authority = TokenAuthority("unit-test-secret")

    def test_issue_then_verify_returns_identity(self):
        token = self.authority.issue("admin")
        self.assertEqual(self.authority.verify(token), "admin")

    def test_token_lives_seven_days(self):
        token = self.authority.issue("admin")
        claims = jwt.decode(token, options={"verify_signature": False})
        self.assertEqual(claims["exp"] - claims["iat"], 7 * 24 * 3600)
        self.assertEqual(claims["role"], "admin")

    def test_expired_token_is_rejected(self):
        issued = datetime.now(timezone.utc) - timedelta(days=8)
        token = self.authority.issue("admin", issued_at=issued)
        with self.assertRaises(Unauthenticated) as ctx:
            self.authority.verify(token)
        self.assertEqual(ctx.exception.message, "Token expired")

    def test_token_signed_with_other_secret_is_rejected(self):
        forged = TokenAuthority("some-other-secret").issue("admin")
        with self.assertRaises(Unauthenticated):
            self.authority.verify(forged)

    def test_tampered_payload_is_rejected(self):
        header, _, signature = self.authority.issue("admin").split(".")
        _, payload, _ = self.authority.issue("mallory").split(".")
        with self.assertRaises(Unauthenticated):
            self.authority.verify(f"{header}.{payload}.{signature}")

    def test_missing_or_malformed_token_is_rejected(self):
        for token in (None, "", "not-a-jwt", "a.b.c"):
            with self.assertRaises(Unauthenticated):
                self.authority.verify(token)

    def test_token_without_admin_role_is_rejected(self):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "admin", "iat": now, "exp": now + timedelta(hours=1)},
            "unit-test-secret",
            algorithm="HS256",
        )
        with self.assertRaises(Unauthenticated):
            self.authority.verify(token)

    def test_missing_secret_is_a_configuration_error(self):
        authority = TokenAuthority(None)
        with self.assertRaises(ConfigurationError):
            authority.issue("admin")
        with self.assertRaises(ConfigurationError):
            authority.verify("anything")


class BearerTokenTests(unittest.TestCase):
    def test_extracts_token(self):
        self.assertEqual(bearer_token("Bearer abc.def"), "abc.def")
        self.assertEqual(bearer_token("bearer   abc"), "abc")

    def test_rejects_other_schemes(self):
        for header in (None, "", "Basic abc", "Bearer", "Bearer   "):
            self.assertIsNone(bearer_token(header))


class AdminAccountTests(unittest.TestCase):
    def test_plaintext_password(self):
        account = AdminAccount(username="admin", password="correct")
        self.assertTrue(account.check("admin", "correct"))
        self.assertFalse(account.check("admin", "wrong"))
        self.assertFalse(account.check("root", "correct"))
        self.assertFalse(account.check(None, None))

    def test_argon2_hash(self):
        account = AdminAccount(username="admin", password_hash=PWD.hash("s3cret"))
        self.assertTrue(account.check("admin", "s3cret"))
        self.assertFalse(account.check("admin", "nope"))

    def test_bad_hash_is_a_configuration_error(self):
        account = AdminAccount(username="admin", password_hash="plain-not-a-hash")
        with self.assertRaises(ConfigurationError):
            account.check("admin", "whatever")

    def test_unconfigured_password_is_a_configuration_error(self):
        with self.assertRaises(ConfigurationError):
            AdminAccount(username="admin").check("admin", "anything")


if __name__ == "__main__":
    unittest.main()
