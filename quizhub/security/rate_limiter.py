"""
Rate limiting module to prevent abuse and brute force attacks.

Tracks request counts per IP address or user in memory using a
sliding window.
"""

from functools import wraps
from flask import request, jsonify, current_app, make_response
from collections import defaultdict
import threading
import time

from quizhub.config import Config
from quizhub.security.security_logger import SecurityLogger


class RateLimiter:
    """
    Rate limiter that tracks requests per IP address or user.

    Uses a sliding window algorithm to track requests within a time period.
    """

    def __init__(self):
        """Initialize the rate limiter with empty storage."""
        self._storage = defaultdict(list)
        self._lock = threading.Lock()
        self._cleanup_interval = 3600  # Clean up old entries every hour
        self._last_cleanup = time.time()

    def _cleanup_old_entries(self):
        """Remove old entries that are outside the time window."""
        current_time = time.time()
        if current_time - self._last_cleanup < self._cleanup_interval:
            return

        with self._lock:
            cutoff = current_time - 3600
            for key in list(self._storage):
                self._storage[key] = [ts for ts in self._storage[key] if ts > cutoff]
                if not self._storage[key]:
                    del self._storage[key]
            self._last_cleanup = current_time

    def is_allowed(self, identifier: str, max_requests: int, window_seconds: int) -> tuple[bool, int]:
        """
        Check if a request is allowed based on rate limit.

        Args:
            identifier: Unique identifier (IP address or user ID)
            max_requests: Maximum number of requests allowed
            window_seconds: Time window in seconds

        Returns:
            Tuple of (is_allowed, remaining_requests)
        """
        self._cleanup_old_entries()

        current_time = time.time()
        cutoff = current_time - window_seconds

        with self._lock:
            timestamps = self._storage[identifier]
            timestamps[:] = [ts for ts in timestamps if ts > cutoff]

            # Check BEFORE recording the current request
            if len(timestamps) >= max_requests:
                return False, 0

            timestamps.append(current_time)
            return True, max_requests - len(timestamps)

    def reset(self, identifier: str | None = None):
        """Reset rate limit for one identifier, or for everyone."""
        with self._lock:
            if identifier is None:
                self._storage.clear()
            elif identifier in self._storage:
                del self._storage[identifier]


# Global rate limiter instance
_rate_limiter = RateLimiter()


def get_rate_limiter() -> RateLimiter:
    return _rate_limiter


def rate_limit(limit_setting: str, per: str = 'ip',
               error_message: str = "Rate limit exceeded. Please try again later."):
    """
    Decorator to rate limit a route.

    Args:
        limit_setting: Name of the Config attribute holding "<max>/<seconds>"
        per: Rate limit per 'ip' or 'user'
        error_message: Error message to return when limit exceeded

    Example:
        @auth_bp.route('/login', methods=['POST'])
        @rate_limit('LOGIN_RATE_LIMIT')
        def login():
            ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_app.config.get("RATELIMIT_ENABLED", True):
                return f(*args, **kwargs)

            from quizhub.config import config
            max_requests, window_seconds = Config.parse_rate_limit(getattr(config, limit_setting))

            ip = request.remote_addr or request.environ.get('REMOTE_ADDR', 'unknown')
            identifier = f"ip:{ip}"
            if per == 'user':
                from flask_login import current_user
                if current_user.is_authenticated:
                    identifier = f"user:{current_user.id}"
            identifier = f"{identifier}:{request.endpoint}"

            is_allowed, remaining = _rate_limiter.is_allowed(
                identifier, max_requests, window_seconds
            )

            if not is_allowed:
                SecurityLogger.log_rate_limit_exceeded(identifier, request.path)
                response = make_response(jsonify({
                    'success': False,
                    'error': error_message,
                    'code': 'rate_limited',
                    'retry_after': window_seconds
                }), 429)
                response.headers['X-RateLimit-Limit'] = str(max_requests)
                response.headers['X-RateLimit-Remaining'] = '0'
                response.headers['Retry-After'] = str(window_seconds)
                return response

            response = make_response(f(*args, **kwargs))
            response.headers['X-RateLimit-Limit'] = str(max_requests)
            response.headers['X-RateLimit-Remaining'] = str(remaining)
            return response

        return decorated_function
    return decorator
