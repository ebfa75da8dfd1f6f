"""
Mutation handlers for projects, tasks and comments.

Every handler follows the same steps:

1. Validate ids and input, before touching the database
   (InvalidArgument).
2. Resolve the target and its parent (NotFound).
3. Check the authorization policy against what was just read (Forbidden).
   Existence is never hidden: a caller without access to an existing
   resource gets Forbidden, not NotFound.
4. Write. Identity fields come from the caller, never from the input, and
   updates only apply the fields their input serializer declares.
5. Resolve the canonical form of the written entity.

Handlers return an Outcome with the canonical form and the events to
publish. Publishing is left to the caller, after commit.
"""
import logging
from collections import namedtuple
from django.db import IntegrityError, transaction
from django.utils import timezone
from . import events, policy
from .events import Event
from .exceptions import Conflict, Forbidden, InvalidArgument, NotFound
from .models import Comment, Project, ProjectMember, Task, User, is_object_id
from .serialize import default_serializer
from .serializers import (
    CommentCreateSerializer,
    CommentInputSerializer,
    MemberInputSerializer,
    ProjectInputSerializer,
    TaskCreateSerializer,
    TaskFieldsSerializer,
    canonical_comment,
    canonical_project,
    canonical_task,
)

logger = logging.getLogger(__name__)

Outcome = namedtuple('Outcome', ['result', 'events'])


def check_id(value, field='id'):
    if not is_object_id(value):
        raise InvalidArgument({field: 'Invalid ID format'})
    return value


def validate(serializer_class, data, partial=False):
    serializer = serializer_class(data=data, partial=partial)
    if not serializer.is_valid():
        raise InvalidArgument(serializer.errors)
    return serializer.validated_data


def get_project(project_id):
    try:
        return Project.objects.prefetch_related('members').get(pk=project_id)
    except Project.DoesNotExist:
        raise NotFound('Project not found')


def get_task(task_id):
    try:
        return Task.objects.select_related('project') \
                           .prefetch_related('project__members') \
                           .get(pk=task_id)
    except Task.DoesNotExist:
        raise NotFound('Task not found')


def get_comment(comment_id):
    try:
        return Comment.objects.select_related('task').get(pk=comment_id)
    except Comment.DoesNotExist:
        raise NotFound('Comment not found')


def _check_assignee(user_id):
    if user_id is not None and not User.objects.filter(pk=user_id).exists():
        raise NotFound('User not found')


def _stamp_attachments(attachments):
    now = timezone.now()
    return [
        {
            'name': attachment['name'],
            'url': attachment['url'],
            'uploadedAt': default_serializer(attachment.get('uploadedAt') or now),
        }
        for attachment in attachments
    ]


def _task_fields(data):
    fields = dict(data)
    if 'attachments' in fields:
        fields['attachments'] = _stamp_attachments(fields['attachments'])
    return fields


# Projects

def create_project(user, data):
    fields = validate(ProjectInputSerializer, data)

    project = Project.objects.create(owner=user, **fields)
    ProjectMember.objects.create(
        project=project,
        user=user,
        role=ProjectMember.Role.OWNER,
    )
    logger.info(f'Project {project.pk} created by {user.pk}')

    result = canonical_project(project.pk)
    # The project has no subscribers yet, every client is told about it
    return Outcome(result, [
        Event.broadcast(events.PROJECT_CREATED, result),
    ])


def update_project(user, project_id, data):
    check_id(project_id)
    fields = validate(ProjectInputSerializer, data, partial=True)

    project = get_project(project_id)
    if not policy.can_update_project(user, project):
        raise Forbidden('Not authorized to update this project')

    # A partial update is checked against the stored side of the range
    start = fields.get('start_date', project.start_date)
    end = fields.get('end_date', project.end_date)
    if start and end and end < start:
        raise InvalidArgument({'endDate': 'End date cannot be before start date'})

    for field, value in fields.items():
        setattr(project, field, value)
    project.save()
    logger.info(f'Project {project.pk} updated by {user.pk}')

    result = canonical_project(project.pk)
    return Outcome(result, [
        Event.for_project(events.PROJECT_UPDATED, project.pk, result),
    ])


def delete_project(user, project_id):
    check_id(project_id)

    project = get_project(project_id)
    if not policy.can_delete_project(user, project):
        raise Forbidden('Not authorized to delete this project')

    project.delete()
    logger.info(f'Project {project_id} deleted by {user.pk}')

    return Outcome({}, [
        Event.for_project(events.PROJECT_DELETED, project_id, {'id': project_id}),
    ])


def add_member(user, project_id, data):
    check_id(project_id)
    fields = validate(MemberInputSerializer, data)

    project = get_project(project_id)
    if not policy.can_mutate_project_membership(user, project):
        raise Forbidden('Not authorized to add members')

    invitee = User.objects.filter(email__iexact=fields['email']).first()
    if invitee is None:
        raise NotFound('User not found')

    if policy.role_of(invitee, project) is not None:
        raise Conflict('User is already a member')

    try:
        with transaction.atomic():
            ProjectMember.objects.create(
                project=project,
                user=invitee,
                role=fields['role'],
            )
    except IntegrityError:
        # Added by a concurrent request since the snapshot was read
        raise Conflict('User is already a member')
    logger.info(f'User {invitee.pk} added to project {project.pk} '
                f'as {fields["role"]} by {user.pk}')

    result = canonical_project(project.pk)
    return Outcome(result, [
        Event.for_project(events.PROJECT_MEMBER_ADDED, project.pk, result),
    ])


# Tasks

def create_task(user, data):
    fields = validate(TaskCreateSerializer, data)
    project_id = fields.pop('project')

    project = get_project(project_id)
    if not policy.can_create_task_in(user, project):
        raise Forbidden('Not authorized to create tasks in this project')
    _check_assignee(fields.get('assigned_to_id'))

    task = Task(project=project, created_by=user, **_task_fields(fields))
    task.save()
    logger.info(f'Task {task.pk} created in project {project.pk} by {user.pk}')

    result = canonical_task(task.pk)
    return Outcome(result, [
        Event.for_project(events.TASK_CREATED, project.pk, result),
    ])


def update_task(user, task_id, data):
    check_id(task_id)
    fields = validate(TaskFieldsSerializer, data, partial=True)

    task = get_task(task_id)
    if not policy.can_mutate_task(user, task, task.project):
        raise Forbidden('Not authorized to update this task')
    _check_assignee(fields.get('assigned_to_id'))

    for field, value in _task_fields(fields).items():
        setattr(task, field, value)
    task.save()
    logger.info(f'Task {task.pk} updated by {user.pk}')

    result = canonical_task(task.pk)
    return Outcome(result, [
        Event.for_project(events.TASK_UPDATED, task.project_id, result),
    ])


def delete_task(user, task_id):
    check_id(task_id)

    task = get_task(task_id)
    if not policy.can_delete_task(user, task, task.project):
        raise Forbidden('Not authorized to delete this task')

    project_id = task.project_id
    task.delete()
    logger.info(f'Task {task_id} deleted by {user.pk}')

    return Outcome({}, [
        Event.for_project(events.TASK_DELETED, project_id, {'id': task_id}),
    ])


# Comments

def create_comment(user, data):
    fields = validate(CommentCreateSerializer, data)

    task = get_task(fields['task'])
    if not policy.can_comment_on_task(user, task, task.project):
        raise Forbidden('Not authorized to comment on this task')

    comment = Comment.objects.create(
        task=task,
        author=user,
        content=fields['content'],
    )
    logger.info(f'Comment {comment.pk} created on task {task.pk} by {user.pk}')

    result = canonical_comment(comment.pk)
    return Outcome(result, [
        Event.for_project(events.COMMENT_CREATED, task.project_id, result),
    ])


def update_comment(user, comment_id, data):
    check_id(comment_id)
    fields = validate(CommentInputSerializer, data)

    comment = get_comment(comment_id)
    if not policy.can_mutate_comment(user, comment):
        raise Forbidden('Not authorized to update this comment')

    comment.content = fields['content']
    comment.save()
    logger.info(f'Comment {comment.pk} updated by {user.pk}')

    result = canonical_comment(comment.pk)
    return Outcome(result, [
        Event.for_project(events.COMMENT_UPDATED, comment.task.project_id, result),
    ])


def delete_comment(user, comment_id):
    check_id(comment_id)

    comment = get_comment(comment_id)
    if not policy.can_delete_comment(user, comment):
        raise Forbidden('Not authorized to delete this comment')

    project_id = comment.task.project_id
    comment.delete()
    logger.info(f'Comment {comment_id} deleted by {user.pk}')

    return Outcome({}, [
        Event.for_project(events.COMMENT_DELETED, project_id, {'id': comment_id}),
    ])
