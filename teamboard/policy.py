"""
Authorization predicates for projects, tasks and comments.

Every function is a pure decision over the snapshot a handler read before
writing. Snapshots are duck-typed:

- user: ``id``
- project: ``owner_id`` and ``roles``, a mapping of member user id to role
- task: ``created_by_id``
- comment: ``author_id``

Nothing here touches the database, so the same predicates serve the REST
handlers and the websocket consumer.
"""
from .models import ProjectMember

MANAGER_ROLES = frozenset((
    ProjectMember.Role.OWNER.value,
    ProjectMember.Role.ADMIN.value,
))


def role_of(user, project):
    """Role of user in project, or None if user is not a member"""
    if user.id == project.owner_id:
        return ProjectMember.Role.OWNER.value
    return project.roles.get(user.id)


def can_read_project(user, project):
    return role_of(user, project) is not None


def can_mutate_project_membership(user, project):
    return role_of(user, project) in MANAGER_ROLES


def can_update_project(user, project):
    return can_mutate_project_membership(user, project)


def can_delete_project(user, project):
    # Admins cannot delete, only the owner
    return user.id == project.owner_id


def can_create_task_in(user, project):
    return can_read_project(user, project)


def can_mutate_task(user, task, project):
    # Any member may edit, reassign or change status of any task
    return can_read_project(user, project)


def can_delete_task(user, task, project):
    return user.id == project.owner_id or user.id == task.created_by_id


def can_comment_on_task(user, task, project):
    return can_read_project(user, project)


def can_mutate_comment(user, comment):
    return user.id == comment.author_id


def can_delete_comment(user, comment):
    return user.id == comment.author_id
