from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.test import TransactionTestCase
from rest_framework.authtoken.models import Token
from teamboard import events, handlers
from teamboard.consumers import ProjectConsumer
from teamboard.events import Event
from teamboard.websocket_router import SubscriptionRegistry, get_channel_key
from .utils import MISSING_ID, create_user


class ProjectConsumerTestCase(TransactionTestCase):

    def setUp(self):
        self.alice = create_user('Alice')
        self.bob = create_user('Bob')
        self.carol = create_user('Carol')
        self.tokens = {
            user.pk: Token.objects.create(user=user).key
            for user in (self.alice, self.bob, self.carol)
        }

        self.project_id = handlers.create_project(self.alice, {
            'name': 'Apollo',
            'description': 'Moon landing',
        }).result['id']
        handlers.add_member(self.alice, self.project_id, {'email': self.bob.email})
        self.channel_key = get_channel_key(self.project_id)

        self.registry = SubscriptionRegistry()
        self.application = ProjectConsumer.as_asgi(registry=self.registry)

    def tearDown(self):
        async_to_sync(get_channel_layer().flush)()

    async def open(self, user=None):
        communicator = WebsocketCommunicator(self.application, '/ws/')
        connected, _ = await communicator.connect()
        self.assertTrue(connected)
        if user is not None:
            await communicator.send_json_to({'token': self.tokens[user.pk]})
            response = await communicator.receive_json_from()
            self.assertEqual(response, {'status_code': 200})
        return communicator

    async def join(self, communicator, project_id=None):
        project_id = project_id or self.project_id
        await communicator.send_json_to({
            'type': 'join:project',
            'projectId': project_id,
        })
        return await communicator.receive_json_from()

    async def test_bad_token_closes(self):
        communicator = await self.open()
        await communicator.send_json_to({'token': 'nope'})
        response = await communicator.receive_json_from()
        self.assertEqual(response, {
            'status_code': 401,
            'error': 'error/unauthorized',
        })
        output = await communicator.receive_output()
        self.assertEqual(output['type'], 'websocket.close')

    async def test_invalid_json_closes(self):
        communicator = await self.open()
        await communicator.send_to(text_data='{not json')
        output = await communicator.receive_output()
        self.assertEqual(output['type'], 'websocket.close')

    async def test_non_object_before_authentication_closes(self):
        communicator = await self.open()
        await communicator.send_json_to(['token'])
        output = await communicator.receive_output()
        self.assertEqual(output['type'], 'websocket.close')

    async def test_non_object_after_authentication(self):
        communicator = await self.open(self.bob)
        await communicator.send_json_to(['join:project'])
        response = await communicator.receive_json_from()
        self.assertEqual(response, {
            'type': 'error', 'status': 400, 'message': 'Invalid message',
        })

        # The connection is still usable
        response = await self.join(communicator)
        self.assertEqual(response['type'], 'joined')
        await communicator.disconnect()

    async def test_join_and_receive_project_events(self):
        communicator = await self.open(self.bob)
        response = await self.join(communicator)
        self.assertEqual(response, {'type': 'joined', 'projectId': self.project_id})

        await self.registry.dispatch(Event.for_project(
            events.TASK_DELETED, self.project_id, {'id': MISSING_ID}))

        message = await communicator.receive_json_from()
        self.assertEqual(message, {
            'event': 'task:deleted',
            'data': {'id': MISSING_ID},
        })
        await communicator.disconnect()

    async def test_join_twice_is_harmless(self):
        communicator = await self.open(self.bob)
        await self.join(communicator)
        await self.join(communicator)

        await self.registry.dispatch(Event.for_project(
            events.TASK_DELETED, self.project_id, {'id': MISSING_ID}))

        await communicator.receive_json_from()
        self.assertTrue(await communicator.receive_nothing())
        await communicator.disconnect()

    async def test_join_errors(self):
        communicator = await self.open(self.carol)

        response = await self.join(communicator, 'not-an-id')
        self.assertEqual(response, {
            'type': 'error', 'status': 400, 'message': 'Invalid ID format',
        })

        response = await self.join(communicator, MISSING_ID)
        self.assertEqual(response['status'], 404)

        response = await self.join(communicator)
        self.assertEqual(response['status'], 403)
        self.assertEqual(self.registry.subscribers(self.channel_key), frozenset())
        await communicator.disconnect()

    async def test_unknown_message_type(self):
        communicator = await self.open(self.alice)
        await communicator.send_json_to({'type': 'dance'})
        response = await communicator.receive_json_from()
        self.assertEqual(response['status'], 400)
        await communicator.disconnect()

    async def test_leave_stops_events(self):
        communicator = await self.open(self.bob)
        await self.join(communicator)

        await communicator.send_json_to({
            'type': 'leave:project',
            'projectId': self.project_id,
        })
        response = await communicator.receive_json_from()
        self.assertEqual(response, {'type': 'left', 'projectId': self.project_id})

        await self.registry.dispatch(Event.for_project(
            events.TASK_DELETED, self.project_id, {'id': MISSING_ID}))
        self.assertTrue(await communicator.receive_nothing())
        await communicator.disconnect()

    async def test_project_created_reaches_everyone(self):
        joined = await self.open(self.alice)
        await self.join(joined)
        idle = await self.open(self.carol)

        await self.registry.dispatch(Event.broadcast(
            events.PROJECT_CREATED, {'id': MISSING_ID}))

        for communicator in (joined, idle):
            message = await communicator.receive_json_from()
            self.assertEqual(message['event'], 'project:created')
            await communicator.disconnect()

    async def test_unauthenticated_connection_gets_nothing(self):
        communicator = await self.open()
        await self.registry.dispatch(Event.broadcast(
            events.PROJECT_CREATED, {'id': MISSING_ID}))
        self.assertTrue(await communicator.receive_nothing())
        await communicator.disconnect()

    async def test_typing_skips_sender(self):
        alice = await self.open(self.alice)
        bob = await self.open(self.bob)
        await self.join(alice)
        await self.join(bob)

        await alice.send_json_to({
            'type': 'typing:start',
            'projectId': self.project_id,
            'taskId': MISSING_ID,
        })
        message = await bob.receive_json_from()
        self.assertEqual(message, {
            'event': 'user:typing',
            'data': {'user': 'Alice', 'taskId': MISSING_ID},
        })
        self.assertTrue(await alice.receive_nothing())

        await alice.send_json_to({
            'type': 'typing:stop',
            'projectId': self.project_id,
            'taskId': MISSING_ID,
        })
        message = await bob.receive_json_from()
        self.assertEqual(message['event'], 'user:stopped-typing')

        await alice.disconnect()
        await bob.disconnect()

    async def test_typing_requires_join(self):
        communicator = await self.open(self.bob)
        await communicator.send_json_to({
            'type': 'typing:start',
            'projectId': self.project_id,
            'taskId': MISSING_ID,
        })
        response = await communicator.receive_json_from()
        self.assertEqual(response['status'], 403)
        await communicator.disconnect()

    async def test_disconnect_leaves_every_channel(self):
        other_id = await self.create_project(self.bob)
        communicator = await self.open(self.bob)
        await self.join(communicator)
        await self.join(communicator, other_id)
        self.assertEqual(len(self.registry.subscribers(self.channel_key)), 1)

        await communicator.disconnect()

        self.assertEqual(self.registry.subscribers(self.channel_key), frozenset())
        self.assertEqual(self.registry.subscribers(get_channel_key(other_id)),
                         frozenset())

    @database_sync_to_async
    def create_project(self, user):
        return handlers.create_project(user, {
            'name': 'Gemini',
            'description': 'Orbit',
        }).result['id']
