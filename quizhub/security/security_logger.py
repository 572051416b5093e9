"""
Security logging module.

This module provides specialized logging for security events
such as failed logins, access policy denials, account changes and
rate limit hits.
"""

from flask import request, current_app, has_request_context
from datetime import datetime


def _remote_addr() -> str:
    if has_request_context():
        return request.remote_addr or "unknown"
    return "n/a"


class SecurityLogger:
    """
    Security event logger.

    Logs security-related events for monitoring and auditing.
    """

    @staticmethod
    def log_failed_login(email: str, reason: str = "Invalid credentials"):
        """
        Log a failed login attempt.

        Args:
            email: Email address used in login attempt
            reason: Reason for failure
        """
        current_app.logger.warning(
            f"SECURITY: Failed login attempt - Email: {email}, "
            f"IP: {_remote_addr()}, Reason: {reason}, "
            f"Time: {datetime.utcnow().isoformat()}"
        )

    @staticmethod
    def log_successful_login(user_id: int, email: str):
        current_app.logger.info(
            f"SECURITY: Successful login - User ID: {user_id}, "
            f"Email: {email}, IP: {_remote_addr()}, "
            f"Time: {datetime.utcnow().isoformat()}"
        )

    @staticmethod
    def log_access_denied(user_id: int | None, role: str | None, action: str, resource: str):
        """
        Log an access policy denial.

        Args:
            user_id: Actor id, None when unauthenticated
            role: Actor role
            action: Action that was requested
            resource: Short description of the target resource
        """
        user_info = f"User ID: {user_id} ({role})" if user_id else "Unauthenticated"
        current_app.logger.warning(
            f"SECURITY: Access denied - {user_info}, Action: {action}, "
            f"Resource: {resource}, IP: {_remote_addr()}, "
            f"Time: {datetime.utcnow().isoformat()}"
        )

    @staticmethod
    def log_account_deactivated(user_id: int, email: str):
        current_app.logger.info(
            f"SECURITY: Account deactivated - User ID: {user_id}, "
            f"Email: {email}, IP: {_remote_addr()}, "
            f"Time: {datetime.utcnow().isoformat()}"
        )

    @staticmethod
    def log_role_change(admin_id: int, user_id: int, old_role: str, new_role: str):
        """
        Log a role change made by an admin.

        Args:
            admin_id: Admin who made the change
            user_id: Account whose role changed
            old_role: Role before the change
            new_role: Role after the change
        """
        current_app.logger.warning(
            f"SECURITY: Role changed - User ID: {user_id}, {old_role} -> {new_role}, "
            f"By: {admin_id}, IP: {_remote_addr()}, "
            f"Time: {datetime.utcnow().isoformat()}"
        )

    @staticmethod
    def log_rate_limit_exceeded(identifier: str, endpoint: str):
        """
        Log rate limit exceeded.

        Args:
            identifier: User or IP identifier
            endpoint: Endpoint that was rate limited
        """
        current_app.logger.warning(
            f"SECURITY: Rate limit exceeded - Identifier: {identifier}, "
            f"Endpoint: {endpoint}, IP: {_remote_addr()}, "
            f"Time: {datetime.utcnow().isoformat()}"
        )
