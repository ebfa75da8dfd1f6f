from django.db import transaction
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView, exception_handler as drf_exception_handler
from . import handlers, queries
from .events import get_publisher


def exception_handler(exc, context):
    """Render errors in the {"success": false, ...} envelope"""
    response = drf_exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, ValidationError):
        response.data = {
            'success': False,
            'errors': list(_flatten_errors(exc.detail)),
        }
    else:
        response.data = {
            'success': False,
            'message': str(exc.detail),
        }
    return response


def _flatten_errors(detail, field=None):
    if isinstance(detail, dict):
        for key, value in detail.items():
            key = key if field is None else f'{field}.{key}'
            yield from _flatten_errors(value, key)
    elif isinstance(detail, list):
        for item in detail:
            yield from _flatten_errors(item, field)
    else:
        yield {'field': field, 'message': str(detail)}


class MutationView(APIView):
    """Runs a mutation handler in a transaction and publishes its
    events once the transaction commits."""

    def mutate(self, handler, *args, status_code=status.HTTP_200_OK):
        with transaction.atomic():
            outcome = handler(self.request.user, *args)
            get_publisher().publish_on_commit(outcome.events)

        return Response({
            'success': True,
            'data': outcome.result,
        }, status=status_code)


def listing(items):
    return Response({
        'success': True,
        'count': len(items),
        'data': items,
    })


def detail(data):
    return Response({
        'success': True,
        'data': data,
    })


class ProjectListView(MutationView):

    def get(self, request):
        return listing(queries.list_projects(request.user))

    def post(self, request):
        return self.mutate(handlers.create_project, request.data,
                           status_code=status.HTTP_201_CREATED)


class ProjectDetailView(MutationView):

    def get(self, request, pk):
        return detail(queries.get_project_detail(request.user, pk))

    def put(self, request, pk):
        return self.mutate(handlers.update_project, pk, request.data)

    def delete(self, request, pk):
        return self.mutate(handlers.delete_project, pk)


class ProjectMembersView(MutationView):

    def post(self, request, pk):
        return self.mutate(handlers.add_member, pk, request.data)


class TaskListView(MutationView):

    def get(self, request):
        return listing(queries.list_tasks(request.user, request.query_params))

    def post(self, request):
        return self.mutate(handlers.create_task, request.data,
                           status_code=status.HTTP_201_CREATED)


class TaskDetailView(MutationView):

    def get(self, request, pk):
        return detail(queries.get_task_detail(request.user, pk))

    def put(self, request, pk):
        return self.mutate(handlers.update_task, pk, request.data)

    def delete(self, request, pk):
        return self.mutate(handlers.delete_task, pk)


class CommentListView(MutationView):

    def get(self, request):
        task_id = request.query_params.get('task')
        return listing(queries.list_comments(request.user, task_id))

    def post(self, request):
        return self.mutate(handlers.create_comment, request.data,
                           status_code=status.HTTP_201_CREATED)


class CommentDetailView(MutationView):

    def put(self, request, pk):
        return self.mutate(handlers.update_comment, pk, request.data)

    def delete(self, request, pk):
        return self.mutate(handlers.delete_comment, pk)
