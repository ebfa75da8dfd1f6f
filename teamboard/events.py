"""
Events produced by mutation handlers and published to project channels.

Handlers never publish by themselves. They return the events together with
their result, and the view hands them to an EventPublisher, which
dispatches them once the surrounding database transaction has committed.
A request that fails never reaches that point, so it publishes nothing.
"""
import logging
from functools import partial
from django.apps import apps
from django.db import transaction
from .websocket_router import get_channel_key

logger = logging.getLogger(__name__)

PROJECT_CREATED = 'project:created'
PROJECT_UPDATED = 'project:updated'
PROJECT_DELETED = 'project:deleted'
PROJECT_MEMBER_ADDED = 'project:member-added'
TASK_CREATED = 'task:created'
TASK_UPDATED = 'task:updated'
TASK_DELETED = 'task:deleted'
COMMENT_CREATED = 'comment:created'
COMMENT_UPDATED = 'comment:updated'
COMMENT_DELETED = 'comment:deleted'
USER_TYPING = 'user:typing'
USER_STOPPED_TYPING = 'user:stopped-typing'


class Event:
    """
    A single message for a project channel.

    Attributes:
        kind: one of the event kinds above
        channel: channel key ("project:<id>"), or None for events
            delivered to every connected client
        payload: canonical form of the entity, or {"id": ...} for deletions
    """

    def __init__(self, kind, channel, payload):
        self.kind = kind
        self.channel = channel
        self.payload = payload

    @classmethod
    def for_project(cls, kind, project_id, payload):
        return cls(kind, get_channel_key(project_id), payload)

    @classmethod
    def broadcast(cls, kind, payload):
        return cls(kind, None, payload)

    def as_message(self):
        return {
            'event': self.kind,
            'data': self.payload,
        }

    def __eq__(self, other):
        if not isinstance(other, Event):
            return NotImplemented
        return (self.kind, self.channel, self.payload) == \
            (other.kind, other.channel, other.payload)

    def __repr__(self):
        return f'<Event {self.kind} {self.channel}>'


class EventPublisher:
    """Publishes handler events after the transaction commits.

    Outside of an atomic block, on_commit runs the callback immediately.
    """

    def __init__(self, registry):
        self.registry = registry

    def publish_on_commit(self, events):
        events = list(events)
        if not events:
            return
        transaction.on_commit(partial(self._flush, events))

    def _flush(self, events):
        for event in events:
            try:
                self.registry.sync_dispatch(event)
            except Exception:
                logger.exception(
                    f'Error publishing {event.kind} to {event.channel}'
                )


def get_registry():
    return apps.get_app_config('teamboard').registry


def get_publisher():
    return apps.get_app_config('teamboard').publisher
