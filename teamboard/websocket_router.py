import logging
import threading
from collections import defaultdict
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from channels import DEFAULT_CHANNEL_LAYER
from .serialize import normalize

logger = logging.getLogger(__name__)

# Every authenticated connection is in this group, for unscoped events
BROADCAST_GROUP = 'projects'


def get_channel_key(project_id):
    return f'project:{project_id}'


def get_group_name(channel_key):
    # Channel layer group names do not accept ":"
    return channel_key.replace(':', '.')


class SubscriptionRegistry:
    """
    Process-wide mapping from project channel key to the connections
    subscribed to it.

    The registry is created once by the app config and handed to the
    websocket consumers. Group membership on the channel layer is what
    actually routes messages; the registry mirrors it locally so that a
    connection can be removed from every channel it joined when it goes
    away, and so that joins and leaves are idempotent.

    Attributes
    ----------
    alias : str
        Channel layer alias, see settings.CHANNEL_LAYERS
    """

    def __init__(self, alias=DEFAULT_CHANNEL_LAYER, channel_layer=None):
        self.alias = alias
        self._channel_layer = channel_layer
        self._lock = threading.Lock()
        self._subscribers = defaultdict(set)
        self._joined = defaultdict(set)

    @property
    def channel_layer(self):
        if self._channel_layer is None:
            return get_channel_layer(self.alias)
        return self._channel_layer

    async def connect(self, channel_name):
        """Subscribe a freshly authenticated connection to unscoped events"""
        await self.channel_layer.group_add(BROADCAST_GROUP, channel_name)

    async def join(self, channel_key, channel_name):
        with self._lock:
            added = channel_name not in self._subscribers[channel_key]
            self._subscribers[channel_key].add(channel_name)
            self._joined[channel_name].add(channel_key)

        if added:
            await self.channel_layer.group_add(
                get_group_name(channel_key),
                channel_name,
            )
        return added

    async def leave(self, channel_key, channel_name):
        with self._lock:
            removed = self._discard(channel_key, channel_name)

        if removed:
            await self.channel_layer.group_discard(
                get_group_name(channel_key),
                channel_name,
            )
        return removed

    async def disconnect(self, channel_name):
        """Remove a connection from every channel it joined"""
        with self._lock:
            channel_keys = list(self._joined.get(channel_name, ()))
            for channel_key in channel_keys:
                self._discard(channel_key, channel_name)

        for channel_key in channel_keys:
            await self.channel_layer.group_discard(
                get_group_name(channel_key),
                channel_name,
            )
        await self.channel_layer.group_discard(BROADCAST_GROUP, channel_name)

    def _discard(self, channel_key, channel_name):
        subscribers = self._subscribers.get(channel_key)
        if not subscribers or channel_name not in subscribers:
            return False
        subscribers.discard(channel_name)
        if not subscribers:
            del self._subscribers[channel_key]
        joined = self._joined[channel_name]
        joined.discard(channel_key)
        if not joined:
            del self._joined[channel_name]
        return True

    def subscribers(self, channel_key):
        with self._lock:
            return frozenset(self._subscribers.get(channel_key, ()))

    def channels_of(self, channel_name):
        with self._lock:
            return frozenset(self._joined.get(channel_name, ()))

    def clear(self):
        with self._lock:
            self._subscribers.clear()
            self._joined.clear()

    async def dispatch(self, event, exclude=None):
        """Deliver event to the current subscribers of its channel.

        Fire and forget: a failure is logged and never reaches the caller.
        exclude is a connection that must not receive it (the sender of a
        presence signal).
        """
        if event.channel is None:
            group = BROADCAST_GROUP
        else:
            group = get_group_name(event.channel)

        try:
            await self.channel_layer.group_send(
                group,
                {
                    'type': 'relay',
                    'payload': normalize(event.as_message()),
                    'exclude': exclude,
                },
            )
        except Exception:
            logger.exception(f'Could not dispatch {event.kind} to {group}')

    def sync_dispatch(self, event, exclude=None):
        async_to_sync(self.dispatch)(event, exclude)
