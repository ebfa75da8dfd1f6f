import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, Mock
from channels.layers import InMemoryChannelLayer
from django.test import SimpleTestCase
from pytz import utc
from teamboard import events
from teamboard.events import Event
from teamboard.websocket_router import (
    BROADCAST_GROUP,
    SubscriptionRegistry,
    get_channel_key,
    get_group_name,
)

PROJECT = '5f0c8e6b9d1e4a2b3c4d5e6f'


class SubscriptionRegistryTestCase(SimpleTestCase):

    def setUp(self):
        self.layer = InMemoryChannelLayer()
        self.registry = SubscriptionRegistry(channel_layer=self.layer)
        self.channel_key = get_channel_key(PROJECT)

    async def receive(self, channel_name):
        return await asyncio.wait_for(self.layer.receive(channel_name), 1)

    async def assertNothingReceived(self, channel_name):
        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(self.layer.receive(channel_name), 0.1)

    def test_group_names(self):
        self.assertEqual(self.channel_key, f'project:{PROJECT}')
        self.assertEqual(get_group_name(self.channel_key), f'project.{PROJECT}')

    async def test_join_is_idempotent(self):
        name = await self.layer.new_channel()
        self.assertTrue(await self.registry.join(self.channel_key, name))
        self.assertFalse(await self.registry.join(self.channel_key, name))
        self.assertEqual(self.registry.subscribers(self.channel_key), {name})
        self.assertEqual(self.registry.channels_of(name), {self.channel_key})

    async def test_leave_is_idempotent(self):
        name = await self.layer.new_channel()
        await self.registry.join(self.channel_key, name)
        self.assertTrue(await self.registry.leave(self.channel_key, name))
        self.assertFalse(await self.registry.leave(self.channel_key, name))
        self.assertEqual(self.registry.subscribers(self.channel_key), frozenset())
        self.assertEqual(self.registry.channels_of(name), frozenset())

    async def test_leave_without_join(self):
        name = await self.layer.new_channel()
        self.assertFalse(await self.registry.leave(self.channel_key, name))

    async def test_dispatch_reaches_subscribers_only(self):
        joined = await self.layer.new_channel()
        outsider = await self.layer.new_channel()
        await self.registry.join(self.channel_key, joined)

        event = Event.for_project(events.TASK_CREATED, PROJECT, {'id': 'task'})
        await self.registry.dispatch(event)

        message = await self.receive(joined)
        self.assertEqual(message, {
            'type': 'relay',
            'payload': {'event': 'task:created', 'data': {'id': 'task'}},
            'exclude': None,
        })
        await self.assertNothingReceived(outsider)

    async def test_dispatch_after_leave(self):
        name = await self.layer.new_channel()
        await self.registry.join(self.channel_key, name)
        await self.registry.leave(self.channel_key, name)

        event = Event.for_project(events.TASK_DELETED, PROJECT, {'id': 'task'})
        await self.registry.dispatch(event)

        await self.assertNothingReceived(name)

    async def test_dispatch_carries_exclude(self):
        sender = await self.layer.new_channel()
        await self.registry.join(self.channel_key, sender)

        event = Event.for_project(events.USER_TYPING, PROJECT, {'taskId': 'task'})
        await self.registry.dispatch(event, exclude=sender)

        message = await self.receive(sender)
        self.assertEqual(message['exclude'], sender)

    async def test_broadcast_reaches_connected_channels(self):
        name = await self.layer.new_channel()
        await self.registry.connect(name)

        event = Event.broadcast(events.PROJECT_CREATED, {'id': PROJECT})
        await self.registry.dispatch(event)

        message = await self.receive(name)
        self.assertEqual(message['payload']['event'], 'project:created')

    async def test_disconnect_leaves_every_channel(self):
        other_key = get_channel_key('000000000000000000000000')
        name = await self.layer.new_channel()
        await self.registry.connect(name)
        await self.registry.join(self.channel_key, name)
        await self.registry.join(other_key, name)

        await self.registry.disconnect(name)

        self.assertEqual(self.registry.channels_of(name), frozenset())
        self.assertEqual(self.registry.subscribers(self.channel_key), frozenset())
        self.assertEqual(self.registry.subscribers(other_key), frozenset())

        await self.registry.dispatch(
            Event.for_project(events.TASK_UPDATED, PROJECT, {'id': 'task'}))
        await self.registry.dispatch(
            Event.broadcast(events.PROJECT_CREATED, {'id': PROJECT}))
        await self.assertNothingReceived(name)

    async def test_disconnect_unknown_channel(self):
        await self.registry.disconnect('never-joined')
        self.assertEqual(self.registry.channels_of('never-joined'), frozenset())

    async def test_payload_is_plain_json(self):
        name = await self.layer.new_channel()
        await self.registry.join(self.channel_key, name)

        created = datetime(2024, 5, 1, 12, 30, tzinfo=utc)
        event = Event.for_project(events.COMMENT_CREATED, PROJECT, {
            'id': 'comment',
            'createdAt': created,
        })
        await self.registry.dispatch(event)

        message = await self.receive(name)
        self.assertEqual(message['payload']['data']['createdAt'],
                         '2024-05-01T12:30:00Z')

    async def test_dispatch_failure_is_logged(self):
        layer = Mock()
        layer.group_send = AsyncMock(side_effect=RuntimeError('layer down'))
        registry = SubscriptionRegistry(channel_layer=layer)

        event = Event.for_project(events.TASK_CREATED, PROJECT, {'id': 'task'})
        with self.assertLogs('teamboard.websocket_router', level='ERROR'):
            await registry.dispatch(event)

    def test_sync_dispatch(self):
        layer = Mock()
        layer.group_send = AsyncMock()
        registry = SubscriptionRegistry(channel_layer=layer)

        registry.sync_dispatch(Event.broadcast(events.PROJECT_CREATED, {'id': PROJECT}))

        layer.group_send.assert_awaited_once()
        self.assertEqual(layer.group_send.await_args[0][0], BROADCAST_GROUP)
