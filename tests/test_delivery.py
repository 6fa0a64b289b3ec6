"""
Tests for the delivery coordinator: push-now vs. leave-pending, backlog
replay on connect, read receipts and group fan-out.
"""

import unittest

from messenger import group_service, message_service
from messenger.delivery import (
    GROUP_ADDED, MESSAGE_STATUS, NEW_GROUP_MESSAGE, NEW_MESSAGE,
    DeliveryCoordinator
)
from messenger.models import MessageStatus
from messenger.presence import PresenceRegistry
from support import DatabaseTestCase, FakeConnection


class DeliveryTestCase(DatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.presence = PresenceRegistry()
        self.delivery = DeliveryCoordinator(self.presence)

    def connect(self, username):
        conn = FakeConnection()
        self.presence.register(username, conn)
        return conn

    async def stored_status(self, message_id):
        async with self.session_maker() as session:
            message = await message_service.get_message_by_id(
                session, message_id
            )
            return message.status


class TestSendDirect(DeliveryTestCase):

    async def test_offline_receiver_leaves_message_sent(self):
        alice = self.connect("alice")
        message = await self.delivery.send_direct(
            self.session, "alice", "bob", "hi"
        )
        self.assertEqual(await self.stored_status(message.id), MessageStatus.SENT)
        self.assertEqual(
            alice.named(MESSAGE_STATUS), [{"id": message.id, "status": "SENT"}]
        )

    async def test_online_receiver_gets_push_and_delivered_status(self):
        alice, bob = self.connect("alice"), self.connect("bob")
        message = await self.delivery.send_direct(
            self.session, "alice", "bob", "hi"
        )
        self.assertEqual(
            await self.stored_status(message.id), MessageStatus.DELIVERED
        )
        pushed = bob.named(NEW_MESSAGE)
        self.assertEqual(len(pushed), 1)
        self.assertEqual(pushed[0]["id"], message.id)
        self.assertEqual(pushed[0]["kind"], "direct")
        self.assertEqual(pushed[0]["content"], "hi")
        self.assertEqual(pushed[0]["status"], "DELIVERED")
        self.assertEqual(
            alice.named(MESSAGE_STATUS),
            [{"id": message.id, "status": "DELIVERED"}],
        )

    async def test_dead_connection_counts_as_offline(self):
        self.presence.register("bob", FakeConnection(live=False))
        message = await self.delivery.send_direct(
            self.session, "alice", "bob", "hi"
        )
        self.assertEqual(await self.stored_status(message.id), MessageStatus.SENT)


class TestReplayBacklog(DeliveryTestCase):

    async def test_replays_backlog_in_timestamp_order(self):
        alice = self.connect("alice")
        sent = []
        for text in ("first", "second", "third"):
            sent.append(await self.delivery.send_direct(
                self.session, "alice", "bob", text
            ))
        alice.events.clear()

        bob = self.connect("bob")
        delivered = await self.delivery.replay_backlog(self.session, "bob")

        self.assertEqual(delivered, 3)
        self.assertEqual(
            [p["content"] for p in bob.named(NEW_MESSAGE)],
            ["first", "second", "third"],
        )
        for message in sent:
            self.assertEqual(
                await self.stored_status(message.id), MessageStatus.DELIVERED
            )
        self.assertEqual(
            alice.named(MESSAGE_STATUS),
            [{"id": m.id, "status": "DELIVERED"} for m in sent],
        )

    async def test_second_replay_delivers_nothing(self):
        await self.delivery.send_direct(self.session, "alice", "bob", "hi")
        bob = self.connect("bob")
        self.assertEqual(await self.delivery.replay_backlog(self.session, "bob"), 1)
        self.assertEqual(await self.delivery.replay_backlog(self.session, "bob"), 0)
        self.assertEqual(len(bob.named(NEW_MESSAGE)), 1)

    async def test_replay_skips_messages_already_delivered_elsewhere(self):
        first = await self.delivery.send_direct(self.session, "alice", "bob", "a")
        await self.delivery.send_direct(self.session, "alice", "bob", "b")
        async with self.session_maker() as other:
            await message_service.mark_delivered(other, first.id)
            await other.commit()

        bob = self.connect("bob")
        self.assertEqual(await self.delivery.replay_backlog(self.session, "bob"), 1)
        self.assertEqual([p["content"] for p in bob.named(NEW_MESSAGE)], ["b"])


class TestMarkRead(DeliveryTestCase):

    async def test_senders_are_notified_once_per_id(self):
        alice, carol = self.connect("alice"), self.connect("carol")
        from_alice = await self.delivery.send_direct(
            self.session, "alice", "bob", "one"
        )
        from_carol = await self.delivery.send_direct(
            self.session, "carol", "bob", "two"
        )
        alice.events.clear()
        carol.events.clear()

        read = await self.delivery.mark_read(
            self.session, "bob", [from_alice.id, from_carol.id, from_alice.id]
        )

        self.assertEqual(len(read), 2)
        self.assertEqual(
            alice.named(MESSAGE_STATUS), [{"id": from_alice.id, "status": "READ"}]
        )
        self.assertEqual(
            carol.named(MESSAGE_STATUS), [{"id": from_carol.id, "status": "READ"}]
        )
        self.assertEqual(
            await self.stored_status(from_alice.id), MessageStatus.READ
        )

    async def test_ids_outside_callers_conversations_are_still_updated(self):
        message = await self.delivery.send_direct(
            self.session, "alice", "bob", "private"
        )
        await self.delivery.mark_read(self.session, "mallory", [message.id])
        self.assertEqual(await self.stored_status(message.id), MessageStatus.READ)


class TestGroupDelivery(DeliveryTestCase):

    async def test_group_message_fans_out_to_online_members(self):
        group = await group_service.create_group(
            self.session, "team", "alice", ["bob", "carol"]
        )
        await self.session.commit()
        alice, bob = self.connect("alice"), self.connect("bob")
        outsider = self.connect("dave")

        message = await self.delivery.send_group(
            self.session, group, "alice", "standup"
        )

        for conn in (alice, bob):
            pushed = conn.named(NEW_GROUP_MESSAGE)
            self.assertEqual(len(pushed), 1)
            self.assertEqual(pushed[0]["id"], message.id)
            self.assertEqual(pushed[0]["groupId"], group.id)
            self.assertEqual(pushed[0]["groupName"], "team")
            self.assertEqual(pushed[0]["kind"], "group")
        self.assertEqual(outsider.events, [])
        self.assertEqual(await self.stored_status(message.id), MessageStatus.SENT)

    async def test_group_added_notification(self):
        group = await group_service.create_group(self.session, "team", "alice")
        await self.session.commit()
        bob = self.connect("bob")
        await self.delivery.notify_group_added(group, "bob")
        self.assertEqual(
            bob.named(GROUP_ADDED), [{"groupId": group.id, "name": "team"}]
        )


if __name__ == "__main__":
    unittest.main()
