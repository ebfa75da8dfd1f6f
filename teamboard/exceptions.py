from rest_framework import exceptions, status


class InvalidArgument(exceptions.ValidationError):
    """Malformed id or failed field validation."""
    default_code = 'invalid_argument'


class Forbidden(exceptions.PermissionDenied):
    default_detail = 'Not authorized'
    default_code = 'forbidden'


class NotFound(exceptions.NotFound):
    default_code = 'not_found'


class Conflict(exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Conflict'
    default_code = 'conflict'


class UnauthorizedError(Exception):
    pass
