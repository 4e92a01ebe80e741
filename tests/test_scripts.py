"""Admin CLI scripts: create_user and set_user_active against an in-memory database."""

import unittest
from unittest.mock import patch

from app.core.security import verify_password
from app.scripts import create_user, set_user_active
from app.services.credential_store import CredentialStore
from support import fast_hashing, make_session_factory


class ScriptTestCase(unittest.TestCase):
    def setUp(self) -> None:
        patcher = fast_hashing()
        patcher.start()
        self.addCleanup(patcher.stop)
        self.session_factory = make_session_factory()

    def run_script(self, module, *argv: str) -> int:
        with patch.object(module, "SessionLocal", self.session_factory), patch(
            "sys.argv", [module.__name__, *argv]
        ):
            return module.main()

    def lookup(self, username: str):
        db = self.session_factory()
        self.addCleanup(db.close)
        return CredentialStore(db).get_by_username(username)


class TestCreateUser(ScriptTestCase):
    def test_creates_admin(self) -> None:
        code = self.run_script(create_user, "Root@X.io", "root", "secret123", "--role", "admin")
        self.assertEqual(code, 0)
        user = self.lookup("root")
        self.assertEqual(user.email, "root@x.io")
        self.assertEqual(user.role, "admin")
        self.assertTrue(verify_password("secret123", user.password_hash))

    def test_rejects_duplicate(self) -> None:
        self.assertEqual(self.run_script(create_user, "a@x.io", "alice", "secret123"), 0)
        self.assertEqual(self.run_script(create_user, "a@x.io", "alice2", "secret123"), 1)

    def test_rejects_short_password(self) -> None:
        self.assertEqual(self.run_script(create_user, "a@x.io", "alice", "123"), 1)
        self.assertIsNone(self.lookup("alice"))


class TestSetUserActive(ScriptTestCase):
    def test_disable_then_enable(self) -> None:
        self.run_script(create_user, "a@x.io", "alice", "secret123")

        self.assertEqual(self.run_script(set_user_active, "alice", "--disable"), 0)
        self.assertFalse(self.lookup("alice").is_active)

        self.assertEqual(self.run_script(set_user_active, "alice", "--enable"), 0)
        self.assertTrue(self.lookup("alice").is_active)

    def test_unknown_user(self) -> None:
        self.assertEqual(self.run_script(set_user_active, "ghost", "--disable"), 1)
