"""
Unit tests for the in-memory session token store.
"""

import unittest

from messenger.session_service import SessionStore


class TestSessionStore(unittest.TestCase):
    """Issue / resolve / revoke behaviour of SessionStore."""

    def setUp(self):
        self.store = SessionStore("test-secret", "HS256")

    def test_issued_token_resolves_to_username(self):
        token = self.store.issue("alice")
        self.assertEqual(self.store.resolve(token), "alice")

    def test_tokens_are_unique_per_issue(self):
        tokens = {self.store.issue("alice") for _ in range(50)}
        self.assertEqual(len(tokens), 50)
        self.assertEqual(len(self.store), 50)

    def test_unknown_and_empty_tokens_do_not_resolve(self):
        self.assertIsNone(self.store.resolve("not-a-token"))
        self.assertIsNone(self.store.resolve(""))
        self.assertIsNone(self.store.resolve(None))

    def test_token_signed_with_other_key_is_rejected(self):
        other = SessionStore("other-secret", "HS256")
        token = other.issue("alice")
        self.assertIsNone(self.store.resolve(token))

    def test_revoke_is_idempotent(self):
        token = self.store.issue("bob")
        self.store.revoke(token)
        self.store.revoke(token)
        self.assertIsNone(self.store.resolve(token))

    def test_revoke_leaves_other_tokens_alone(self):
        first = self.store.issue("bob")
        second = self.store.issue("bob")
        self.store.revoke(first)
        self.assertEqual(self.store.resolve(second), "bob")

    def test_clear_drops_everything(self):
        token = self.store.issue("carol")
        self.store.clear()
        self.assertIsNone(self.store.resolve(token))
        self.assertEqual(len(self.store), 0)


if __name__ == "__main__":
    unittest.main()
