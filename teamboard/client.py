"""
Client side of the project channels.

A client keeps local copies of what it fetched over HTTP and merges the
events it receives on its channels into them. Its own mutations reach it
twice, once as the HTTP response and once as the event, so every merge is
by id and last write wins: both copies are already the canonical form.
"""
from . import events


def _upsert(items, entity, at_beginning=False):
    for i, item in enumerate(items):
        if item['id'] == entity['id']:
            items[i] = entity
            return
    if at_beginning:
        items.insert(0, entity)
    else:
        items.append(entity)


def _remove(items, entity_id):
    items[:] = [item for item in items if item['id'] != entity_id]


class ProjectView:
    """Local state of one project screen.

    Attributes:
        project: canonical project, or None before loading
        tasks: canonical tasks, newest first
        comments: task id -> canonical comments, oldest first
        deleted: True once the project was deleted by someone
    """

    def __init__(self, project_id):
        self.project_id = project_id
        self.project = None
        self.tasks = []
        self.comments = {}
        self.deleted = False

    def load(self, project, tasks=()):
        self.project = project
        self.tasks = list(tasks)

    def load_comments(self, task_id, comments):
        self.comments[task_id] = list(comments)

    def apply(self, message):
        """Merge a {"event": kind, "data": payload} message"""
        kind = message.get('event')
        data = message.get('data') or {}

        if kind in (events.PROJECT_UPDATED, events.PROJECT_MEMBER_ADDED):
            if data.get('id') == self.project_id:
                self.project = data
        elif kind == events.PROJECT_DELETED:
            if data.get('id') == self.project_id:
                self.deleted = True
                self.project = None
                self.tasks = []
                self.comments = {}
        elif kind in (events.TASK_CREATED, events.TASK_UPDATED):
            if data['project']['id'] == self.project_id:
                _upsert(self.tasks, data, at_beginning=True)
        elif kind == events.TASK_DELETED:
            _remove(self.tasks, data['id'])
            self.comments.pop(data['id'], None)
        elif kind in (events.COMMENT_CREATED, events.COMMENT_UPDATED):
            if data['task'] in self.comments:
                _upsert(self.comments[data['task']], data)
        elif kind == events.COMMENT_DELETED:
            for comments in self.comments.values():
                _remove(comments, data['id'])

    def task(self, task_id):
        for task in self.tasks:
            if task['id'] == task_id:
                return task


class ProjectList:
    """The dashboard list of projects, newest first"""

    def __init__(self, projects=()):
        self.projects = list(projects)

    def apply(self, message):
        kind = message.get('event')
        data = message.get('data') or {}

        if kind in (events.PROJECT_CREATED, events.PROJECT_UPDATED,
                    events.PROJECT_MEMBER_ADDED):
            _upsert(self.projects, data, at_beginning=True)
        elif kind == events.PROJECT_DELETED:
            _remove(self.projects, data['id'])


class SubscriptionManager:
    """
    Joins the channel of the project being viewed and leaves it when the
    client navigates away.

    send is called with each outbound message (a dict), e.g. a function
    writing JSON to the websocket.
    """

    def __init__(self, send, projects=None):
        self.send = send
        self.projects = projects if projects is not None else ProjectList()
        self.view = None

    def enter(self, project_id):
        if self.view is not None:
            if self.view.project_id == project_id:
                return self.view
            self.leave()
        self.send({'type': 'join:project', 'projectId': project_id})
        self.view = ProjectView(project_id)
        return self.view

    def leave(self):
        if self.view is None:
            return
        self.send({'type': 'leave:project', 'projectId': self.view.project_id})
        self.view = None

    def receive(self, message):
        """Route an inbound message to the dashboard and the open view"""
        if 'event' not in message:
            return
        self.projects.apply(message)
        if self.view is not None:
            self.view.apply(message)

    def typing(self, task_id, active=True):
        if self.view is None:
            return
        self.send({
            'type': 'typing:start' if active else 'typing:stop',
            'projectId': self.view.project_id,
            'taskId': task_id,
        })

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.leave()
