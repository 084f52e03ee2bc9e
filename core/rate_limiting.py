"""
Redis-based rate limiting for API endpoints.
Implements a fixed window counter per view and client IP.

The Redis connection is opened on first use. If Redis can't be reached,
rate limiting is skipped (fail open) until the process restarts.
"""
import logging
from functools import wraps

import redis
from django.conf import settings
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)

_UNSET = object()
_redis_client = _UNSET


def get_redis_client():
    """Return the shared Redis client, or None when Redis is unavailable."""
    global _redis_client
    if _redis_client is _UNSET:
        try:
            client = redis.Redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5
            )
            client.ping()
            _redis_client = client
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning(f"Redis connection failed: {e}. Rate limiting will be disabled.")
            _redis_client = None
    return _redis_client


def reset_redis_client():
    global _redis_client
    _redis_client = _UNSET


def get_client_ip(request):
    """Extract client IP address from request."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR', 'unknown')
    return ip


def _hit(client, key, window_seconds):
    """Count one request against `key`. Returns (count, seconds until reset)."""
    current_count = client.incr(key)
    if current_count == 1:
        client.expire(key, window_seconds)
    return current_count, client.ttl(key)


def _limit_headers(max_requests, remaining, ttl):
    return {
        'X-RateLimit-Limit': str(max_requests),
        'X-RateLimit-Remaining': str(remaining),
        'X-RateLimit-Reset': str(ttl),
    }


def _limited(scope, request, max_requests, window_seconds, call):
    """
    Run `call()` unless the client exceeded `max_requests` for `scope`.
    """
    client = get_redis_client() if getattr(settings, 'RATE_LIMIT_ENABLED', True) else None
    if client is None:
        return call()

    try:
        key = f"rate_limit:{scope}:{get_client_ip(request)}"
        current_count, ttl = _hit(client, key, window_seconds)
    except redis.RedisError as e:
        logger.error(f"Redis error in rate limiting: {e}")
        return call()

    if current_count > max_requests:
        logger.info(f"Rate limit exceeded for {key}")
        headers = _limit_headers(max_requests, 0, ttl)
        headers['Retry-After'] = str(ttl)
        return Response(
            {
                'error': 'Rate limit exceeded',
                'detail': f'Maximum {max_requests} requests per {window_seconds} seconds allowed.',
                'retry_after': ttl
            },
            status=status.HTTP_429_TOO_MANY_REQUESTS,
            headers=headers
        )

    response = call()
    for header, value in _limit_headers(
        max_requests, max(0, max_requests - current_count), ttl
    ).items():
        response[header] = value
    return response


def rate_limit(max_requests: int = 20, window_seconds: int = 60):
    """
    Rate limiting decorator for DRF view methods.

    Usage:
        @rate_limit(20, 60)  # 20 requests per minute
        def get(self, request):
            ...
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(self, request, *args, **kwargs):
            return _limited(
                view_func.__qualname__, request, max_requests, window_seconds,
                lambda: view_func(self, request, *args, **kwargs)
            )
        return wrapper
    return decorator

