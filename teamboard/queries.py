from . import policy
from .exceptions import Forbidden, InvalidArgument
from .handlers import check_id, get_project, get_task, validate
from .models import Project
from .serializers import (
    CommentSerializer,
    ProjectSerializer,
    TaskFilterSerializer,
    TaskSerializer,
    canonical_project,
    canonical_task,
    comment_queryset,
    task_queryset,
)


def list_projects(user):
    projects = Project.objects.visible_to(user).with_relations()
    return ProjectSerializer(projects, many=True).data


def get_project_detail(user, project_id):
    check_id(project_id)
    project = get_project(project_id)
    if not policy.can_read_project(user, project):
        raise Forbidden('Not authorized to access this project')
    return canonical_project(project.pk)


def list_tasks(user, params):
    filters = validate(TaskFilterSerializer, params)
    tasks = task_queryset()

    project_id = filters.pop('project', None)
    if project_id:
        project = get_project(project_id)
        if not policy.can_read_project(user, project):
            raise Forbidden('Not authorized to access this project')
        tasks = tasks.filter(project=project)
    else:
        tasks = tasks.filter(project__in=Project.objects.visible_to(user))

    tasks = tasks.filter(**filters)
    return TaskSerializer(tasks, many=True).data


def get_task_detail(user, task_id):
    check_id(task_id)
    task = get_task(task_id)
    if not policy.can_read_project(user, task.project):
        raise Forbidden('Not authorized to access this task')
    return canonical_task(task.pk)


def list_comments(user, task_id):
    if not task_id:
        raise InvalidArgument({'task': 'Task ID is required'})
    check_id(task_id, 'task')
    task = get_task(task_id)
    if not policy.can_read_project(user, task.project):
        raise Forbidden('Not authorized to access this task')
    comments = comment_queryset().filter(task=task)
    return CommentSerializer(comments, many=True).data
