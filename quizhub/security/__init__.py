"""
Security module for the application.

This module provides:
- Role-based access policy
- Rate limiting
- Security logging
"""

from .access_policy import Action, Actor, AnalyticsScope, Decision, can_access, is_allowed
from .rate_limiter import RateLimiter, rate_limit, get_rate_limiter
from .security_logger import SecurityLogger

__all__ = [
    'Action',
    'Actor',
    'AnalyticsScope',
    'Decision',
    'can_access',
    'is_allowed',
    'RateLimiter',
    'rate_limit',
    'get_rate_limiter',
    'SecurityLogger',
]
