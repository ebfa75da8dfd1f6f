import json
import logging
from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from rest_framework.authtoken.models import Token
from . import events, policy
from .events import Event, get_registry
from .exceptions import UnauthorizedError
from .models import Project, is_object_id
from .serialize import json_dumps
from .websocket_router import get_channel_key

logger = logging.getLogger(__name__)


class ProjectConsumer(AsyncWebsocketConsumer):
    """
    WebSocket consumer relaying project events to clients.

    The client authenticates by sending {"token": <key>} as its first
    message. After that it may join and leave project channels and send
    typing signals:

        {"type": "join:project", "projectId": ...}
        {"type": "leave:project", "projectId": ...}
        {"type": "typing:start", "projectId": ..., "taskId": ...}
        {"type": "typing:stop", "projectId": ..., "taskId": ...}

    Events published on joined channels (and unscoped events) are sent as
    {"event": <kind>, "data": <payload>}.
    """

    ACTIONS = {
        'join:project': 'join_project',
        'leave:project': 'leave_project',
        'typing:start': 'typing_start',
        'typing:stop': 'typing_stop',
    }

    def __init__(self, *args, registry=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.registry = registry or get_registry()
        self.user = None

    async def connect(self):
        """Accept any connection and just wait for a token."""
        await self.accept()

    async def receive(self, text_data=None, bytes_data=None):
        try:
            data = json.loads(text_data)
        except (TypeError, json.JSONDecodeError):
            logger.warning(f'Invalid message on {self.channel_name}, closing')
            await self.close()
            return

        if not isinstance(data, dict):
            if self.user:
                await self.send_error(400, 'Invalid message')
            else:
                logger.warning(f'Invalid message on {self.channel_name}, closing')
                await self.close()
            return

        if self.user:
            await self.receive_action(data)
        else:
            await self.receive_authentication(data)

    async def receive_authentication(self, data):
        try:
            self.user = await self.authenticate(data.get('token'))
        except UnauthorizedError:
            await self.send_connection_status(401, 'error/unauthorized')
            return

        await self.registry.connect(self.channel_name)
        await self.send_connection_status(200)
        logger.info(f'User connected: {self.user} ({self.channel_name})')

    @database_sync_to_async
    def authenticate(self, token):
        if not isinstance(token, str):
            raise UnauthorizedError('error/unauthorized')
        try:
            token = Token.objects.select_related('user').get(key=token)
        except Token.DoesNotExist:
            raise UnauthorizedError('error/unauthorized')
        if not token.user.is_active:
            raise UnauthorizedError('error/unauthorized')
        return token.user

    async def receive_action(self, data):
        method_name = self.ACTIONS.get(data.get('type'))
        if method_name is None:
            await self.send_error(400, 'Unknown message type')
            return
        await getattr(self, method_name)(data)

    async def join_project(self, data):
        project_id = data.get('projectId')
        if not is_object_id(project_id):
            await self.send_error(400, 'Invalid ID format')
            return

        project = await self.load_project(project_id)
        if project is None:
            await self.send_error(404, 'Project not found')
            return
        if not policy.can_read_project(self.user, project):
            await self.send_error(403, 'Not authorized to access this project')
            return

        await self.registry.join(get_channel_key(project_id), self.channel_name)
        await self.send_json({'type': 'joined', 'projectId': project_id})
        logger.info(f'User {self.user} joined project {project_id}')

    async def leave_project(self, data):
        project_id = data.get('projectId')
        await self.registry.leave(get_channel_key(project_id), self.channel_name)
        await self.send_json({'type': 'left', 'projectId': project_id})
        logger.info(f'User {self.user} left project {project_id}')

    @database_sync_to_async
    def load_project(self, project_id):
        project = Project.objects.prefetch_related('members') \
                                 .filter(pk=project_id).first()
        if project is not None:
            # Evaluate the membership snapshot while still in sync context
            project.roles
        return project

    async def typing_start(self, data):
        await self._typing(events.USER_TYPING, data)

    async def typing_stop(self, data):
        await self._typing(events.USER_STOPPED_TYPING, data)

    async def _typing(self, kind, data):
        channel_key = get_channel_key(data.get('projectId'))
        if channel_key not in self.registry.channels_of(self.channel_name):
            await self.send_error(403, 'Join the project before sending typing signals')
            return

        event = Event(kind, channel_key, {
            'user': str(self.user),
            'taskId': data.get('taskId'),
        })
        await self.registry.dispatch(event, exclude=self.channel_name)

    # Called by channel layers
    async def relay(self, event):
        if event.get('exclude') == self.channel_name:
            return
        await self.send(text_data=json_dumps(event['payload']))

    async def send_json(self, content):
        await self.send(text_data=json_dumps(content))

    async def send_error(self, status_code, message):
        await self.send_json({
            'type': 'error',
            'status': status_code,
            'message': message,
        })

    async def send_connection_status(self, status_code, error=None):
        data = {}
        data['status_code'] = status_code
        if error:
            data['error'] = error
        close = error is not None
        await self.send(text_data=json_dumps(data), close=close)

    async def disconnect(self, close_code=None):
        if not self.user:
            return

        await self.registry.disconnect(self.channel_name)
        logger.info(f'User disconnected: {self.user} ({self.channel_name})')
