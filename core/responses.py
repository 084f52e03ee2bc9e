"""
Error response shape shared by all API views.
"""
from rest_framework.response import Response


def error_response(error, detail, status_code, **extra):
    """Build `{'error': ..., 'detail': ...}` plus any extra fields."""
    body = {'error': error, 'detail': detail}
    body.update(extra)
    return Response(body, status=status_code)
