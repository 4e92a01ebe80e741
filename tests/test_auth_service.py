"""AuthService behaviour against a real (in-memory SQLite) credential store."""

import unittest
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

from app.core.security import TokenError, TokenErrorKind, fingerprint, verify_password
from app.models import RefreshToken, User
from app.services.auth_service import (
    AccountDisabledError,
    AlreadyExistsError,
    AuthService,
    InvalidCredentialsError,
    InvalidInputError,
    InvalidTokenError,
    NotFoundError,
)
from app.services.credential_store import CredentialStore, DuplicateRecordError
from support import fast_hashing, make_session_factory, make_settings, make_token_manager


class AuthServiceTestCase(unittest.TestCase):
    """Fresh database and service per test."""

    def setUp(self) -> None:
        patcher = fast_hashing()
        patcher.start()
        self.addCleanup(patcher.stop)

        self.session = make_session_factory()()
        self.addCleanup(self.session.close)
        self.store = CredentialStore(self.session)
        self.tokens = make_token_manager()
        self.settings = make_settings()
        self.svc = AuthService(self.store, self.tokens, self.settings)

    def register_alice(self) -> User:
        user, _ = self.svc.register("a@x.io", "alice", "secret123", "Alice", "A")
        return user

    def refresh_rows(self) -> list[RefreshToken]:
        return self.session.query(RefreshToken).all()


class TestRegister(AuthServiceTestCase):
    def test_creates_active_user_with_default_role(self) -> None:
        user, token = self.svc.register("a@x.io", "alice", "secret123", "Alice", "A")
        self.assertTrue(user.id)
        self.assertEqual(user.role, "user")
        self.assertTrue(user.is_active)
        self.assertEqual(user.first_name, "Alice")
        self.assertEqual(self.tokens.validate(token).user_id, user.id)

    def test_stores_only_password_hash(self) -> None:
        user = self.register_alice()
        self.assertNotEqual(user.password_hash, "secret123")
        self.assertTrue(verify_password("secret123", user.password_hash))

    def test_does_not_issue_refresh_token(self) -> None:
        self.register_alice()
        self.assertEqual(self.refresh_rows(), [])

    def test_email_is_normalised_to_lowercase(self) -> None:
        user, _ = self.svc.register("Alice@X.io", "alice", "secret123", "Alice", "A")
        self.assertEqual(user.email, "alice@x.io")

    def test_duplicate_email_is_rejected(self) -> None:
        self.register_alice()
        with self.assertRaises(AlreadyExistsError) as ctx:
            self.svc.register("A@x.io", "alice2", "secret123", "Alice", "A")
        self.assertEqual(ctx.exception.message, "User with email already exists.")
        self.assertEqual(self.session.query(User).count(), 1)

    def test_duplicate_username_is_rejected(self) -> None:
        self.register_alice()
        with self.assertRaises(AlreadyExistsError) as ctx:
            self.svc.register("b@x.io", "alice", "secret123", "Bob", "B")
        self.assertEqual(ctx.exception.message, "Username already taken.")

    def test_invalid_inputs_are_rejected(self) -> None:
        cases = [
            ("not-an-email", "alice", "secret123", "Alice", "A"),
            ("a@x.io", "al", "secret123", "Alice", "A"),
            ("a@x.io", "a" * 51, "secret123", "Alice", "A"),
            ("a@x.io", "alice", "12345", "Alice", "A"),
            ("a@x.io", "alice", "x" * 129, "Alice", "A"),
            ("a@x.io", "alice", "secret123", "", "A"),
            ("a@x.io", "alice", "secret123", "Alice", "  "),
        ]
        for args in cases:
            with self.subTest(args=args[:3]):
                with self.assertRaises(InvalidInputError):
                    self.svc.register(*args)
        self.assertEqual(self.session.query(User).count(), 0)

    def test_shortest_allowed_password_is_accepted(self) -> None:
        user, _ = self.svc.register("a@x.io", "alice", "secre1", "Alice", "A")
        self.assertTrue(verify_password("secre1", user.password_hash))

    def test_unique_violation_on_insert_is_reported_as_already_exists(self) -> None:
        store = MagicMock()
        store.get_by_email.return_value = None
        store.get_by_username.return_value = None
        store.create_user.side_effect = DuplicateRecordError("Failed to create user: duplicate record.")
        svc = AuthService(store, self.tokens, self.settings)
        with self.assertRaises(AlreadyExistsError):
            svc.register("a@x.io", "alice", "secret123", "Alice", "A")


class TestLogin(AuthServiceTestCase):
    def test_returns_tokens_and_stores_refresh_fingerprint(self) -> None:
        user = self.register_alice()
        session = self.svc.login("a@x.io", "secret123")
        self.assertEqual(session.user.id, user.id)
        self.assertEqual(self.tokens.validate(session.access_token).user_id, user.id)

        rows = self.refresh_rows()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].token_hash, fingerprint(session.refresh_token))
        self.assertNotEqual(rows[0].token_hash, session.refresh_token)
        self.assertEqual(rows[0].user_id, user.id)

    def test_expires_at_follows_access_token_ttl(self) -> None:
        self.register_alice()
        session = self.svc.login("a@x.io", "secret123")
        expected = datetime.now(UTC) + timedelta(hours=24)
        self.assertLess(abs((session.expires_at - expected).total_seconds()), 5)

    def test_email_lookup_is_case_insensitive(self) -> None:
        self.register_alice()
        self.assertTrue(self.svc.login("A@X.IO", "secret123").access_token)

    def test_each_login_adds_a_refresh_token(self) -> None:
        self.register_alice()
        self.svc.login("a@x.io", "secret123")
        self.svc.login("a@x.io", "secret123")
        self.assertEqual(len(self.refresh_rows()), 2)

    def test_wrong_password_and_unknown_email_look_the_same(self) -> None:
        self.register_alice()
        with self.assertRaises(InvalidCredentialsError) as wrong:
            self.svc.login("a@x.io", "wrong-pass")
        with self.assertRaises(InvalidCredentialsError) as unknown:
            self.svc.login("nobody@x.io", "secret123")
        self.assertEqual(wrong.exception.message, unknown.exception.message)
        self.assertEqual(self.refresh_rows(), [])

    def test_disabled_account_cannot_log_in(self) -> None:
        user = self.register_alice()
        self.store.set_active(user.id, False)
        with self.assertRaises(AccountDisabledError):
            self.svc.login("a@x.io", "secret123")
        self.assertEqual(self.refresh_rows(), [])


class TestValidateToken(AuthServiceTestCase):
    def test_returns_current_user(self) -> None:
        user, token = self.svc.register("a@x.io", "alice", "secret123", "Alice", "A")
        self.assertEqual(self.svc.validate_token(token).id, user.id)

    def test_expired_token(self) -> None:
        user = self.register_alice()
        token = self.tokens.issue(user.id, user.email, user.username, user.role, timedelta(seconds=-5))
        with self.assertRaises(TokenError) as ctx:
            self.svc.validate_token(token)
        self.assertEqual(ctx.exception.kind, TokenErrorKind.EXPIRED)

    def test_malformed_token(self) -> None:
        with self.assertRaises(TokenError) as ctx:
            self.svc.validate_token("not-a-token")
        self.assertEqual(ctx.exception.kind, TokenErrorKind.MALFORMED)

    def test_user_disabled_after_issue_is_rejected(self) -> None:
        user, token = self.svc.register("a@x.io", "alice", "secret123", "Alice", "A")
        self.store.set_active(user.id, False)
        with self.assertRaises(AccountDisabledError):
            self.svc.validate_token(token)

    def test_user_deleted_after_issue_is_rejected(self) -> None:
        user, token = self.svc.register("a@x.io", "alice", "secret123", "Alice", "A")
        self.store.delete_user(user.id)
        with self.assertRaises(NotFoundError):
            self.svc.validate_token(token)


class TestRefreshToken(AuthServiceTestCase):
    def test_rotation_replaces_stored_token(self) -> None:
        self.register_alice()
        session = self.svc.login("a@x.io", "secret123")

        rotated = self.svc.refresh_token(session.refresh_token)

        self.assertNotEqual(rotated.refresh_token, session.refresh_token)
        self.assertTrue(self.tokens.validate(rotated.access_token).user_id)
        hashes = [row.token_hash for row in self.refresh_rows()]
        self.assertEqual(hashes, [fingerprint(rotated.refresh_token)])

    def test_secret_is_single_use(self) -> None:
        self.register_alice()
        session = self.svc.login("a@x.io", "secret123")
        self.svc.refresh_token(session.refresh_token)
        with self.assertRaises(InvalidTokenError):
            self.svc.refresh_token(session.refresh_token)

    def test_rotated_secret_can_be_redeemed_once(self) -> None:
        self.register_alice()
        session = self.svc.login("a@x.io", "secret123")
        first = self.svc.refresh_token(session.refresh_token)
        second = self.svc.refresh_token(first.refresh_token)
        self.assertEqual([r.token_hash for r in self.refresh_rows()], [fingerprint(second.refresh_token)])

    def test_unknown_and_empty_secrets_are_invalid(self) -> None:
        for secret in ("", "never-issued"):
            with self.subTest(secret=secret):
                with self.assertRaises(InvalidTokenError):
                    self.svc.refresh_token(secret)

    def test_expired_secret_is_invalid(self) -> None:
        user = self.register_alice()
        self.store.save_refresh_token(
            user.id, fingerprint("old-secret"), datetime.now(UTC) - timedelta(minutes=1)
        )
        with self.assertRaises(InvalidTokenError):
            self.svc.refresh_token("old-secret")

    def test_disabled_user_cannot_refresh(self) -> None:
        user = self.register_alice()
        session = self.svc.login("a@x.io", "secret123")
        self.store.set_active(user.id, False)
        with self.assertRaises(AccountDisabledError):
            self.svc.refresh_token(session.refresh_token)

    def test_lost_rotation_race_is_invalid(self) -> None:
        user = self.register_alice()
        session = self.svc.login("a@x.io", "secret123")
        store = MagicMock(wraps=self.store)
        store.rotate_refresh_token.return_value = False
        svc = AuthService(store, self.tokens, self.settings)
        with self.assertRaises(InvalidTokenError):
            svc.refresh_token(session.refresh_token)
        store.get_by_id.assert_called_with(user.id)

    def test_deleting_user_removes_refresh_tokens(self) -> None:
        user = self.register_alice()
        self.svc.login("a@x.io", "secret123")
        self.assertTrue(self.store.delete_user(user.id))
        self.assertEqual(self.refresh_rows(), [])


class TestProfile(AuthServiceTestCase):
    def test_get_unknown_user(self) -> None:
        with self.assertRaises(NotFoundError):
            self.svc.get_user("missing")

    def test_partial_update_keeps_other_fields(self) -> None:
        user = self.register_alice()
        updated = self.svc.update_profile(user.id, first_name="Alicia")
        self.assertEqual(updated.first_name, "Alicia")
        self.assertEqual(updated.last_name, "A")
        self.assertEqual(updated.username, "alice")

    def test_blank_names_leave_stored_names_unchanged(self) -> None:
        user = self.register_alice()
        updated = self.svc.update_profile(user.id, first_name="   ", last_name="\t")
        self.assertEqual(updated.first_name, "Alice")
        self.assertEqual(updated.last_name, "A")

    def test_names_are_stored_stripped(self) -> None:
        user = self.register_alice()
        updated = self.svc.update_profile(user.id, first_name="  Alicia ")
        self.assertEqual(updated.first_name, "Alicia")

    def test_username_change(self) -> None:
        user = self.register_alice()
        updated = self.svc.update_profile(user.id, username="alice2")
        self.assertEqual(updated.username, "alice2")
        self.assertIsNotNone(self.store.get_by_username("alice2"))

    def test_same_username_is_not_a_conflict(self) -> None:
        user = self.register_alice()
        self.assertEqual(self.svc.update_profile(user.id, username="alice").username, "alice")

    def test_taken_username_is_rejected_without_changes(self) -> None:
        self.svc.register("b@x.io", "bob", "secret123", "Bob", "B")
        user = self.register_alice()
        with self.assertRaises(AlreadyExistsError):
            self.svc.update_profile(user.id, first_name="Alicia", username="bob")
        self.session.expire_all()
        reloaded = self.store.get_by_id(user.id)
        self.assertEqual(reloaded.username, "alice")
        self.assertEqual(reloaded.first_name, "Alice")

    def test_invalid_username_is_rejected(self) -> None:
        user = self.register_alice()
        with self.assertRaises(InvalidInputError):
            self.svc.update_profile(user.id, username="ab")


class TestChangePassword(AuthServiceTestCase):
    def test_new_password_replaces_old(self) -> None:
        user = self.register_alice()
        self.svc.change_password(user.id, "secret123", "newsecret")
        with self.assertRaises(InvalidCredentialsError):
            self.svc.login("a@x.io", "secret123")
        self.assertTrue(self.svc.login("a@x.io", "newsecret").access_token)

    def test_wrong_current_password(self) -> None:
        user = self.register_alice()
        with self.assertRaises(InvalidCredentialsError) as ctx:
            self.svc.change_password(user.id, "wrong-pass", "newsecret")
        self.assertEqual(ctx.exception.message, "Current password is incorrect.")

    def test_new_password_is_validated(self) -> None:
        user = self.register_alice()
        with self.assertRaises(InvalidInputError):
            self.svc.change_password(user.id, "secret123", "123")

    def test_existing_tokens_stay_valid(self) -> None:
        user = self.register_alice()
        session = self.svc.login("a@x.io", "secret123")
        self.svc.change_password(user.id, "secret123", "newsecret")
        self.assertEqual(self.svc.validate_token(session.access_token).id, user.id)
        self.assertTrue(self.svc.refresh_token(session.refresh_token).access_token)


class TestAliceScenario(AuthServiceTestCase):
    """Register, log in, fail a login, refresh, and replay the spent secret."""

    def test_full_flow(self) -> None:
        user, _ = self.svc.register("alice@example.com", "alice", "secret1", "Alice", "Smith")
        self.assertEqual(user.role, "user")
        session = self.svc.login("alice@example.com", "secret1")
        self.assertEqual(session.user.username, "alice")

        with self.assertRaises(InvalidCredentialsError):
            self.svc.login("alice@example.com", "wrong")

        rotated = self.svc.refresh_token(session.refresh_token)
        self.assertEqual(self.svc.validate_token(rotated.access_token).id, user.id)

        with self.assertRaises(InvalidTokenError):
            self.svc.refresh_token(session.refresh_token)
