"""
Retry helper for transient database failures.

Only connection-level errors are retried; business-rule errors and
integrity violations propagate on the first occurrence.
"""
from functools import wraps
import time

from flask import current_app
from sqlalchemy.exc import DisconnectionError, OperationalError

from quizhub.common.errors import ServiceUnavailable

TRANSIENT_ERRORS = (OperationalError, DisconnectionError)


def retry_on_transient(f):
    """
    Re-run ``f`` after a transient database error.

    The session is rolled back before each retry. Waits grow exponentially
    from DB_RETRY_BACKOFF_SECONDS; after DB_RETRY_ATTEMPTS tries the error
    is surfaced as ServiceUnavailable.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        from quizhub import db
        attempts = current_app.config.get("DB_RETRY_ATTEMPTS", 3)
        backoff = current_app.config.get("DB_RETRY_BACKOFF_SECONDS", 0.2)

        for attempt in range(attempts):
            try:
                return f(*args, **kwargs)
            except TRANSIENT_ERRORS as e:
                db.session.rollback()
                if attempt == attempts - 1:
                    current_app.logger.error(
                        f"{f.__name__} failed after {attempts} attempts: {e}"
                    )
                    raise ServiceUnavailable() from e
                wait_time = backoff * (2 ** attempt)
                current_app.logger.warning(
                    f"Transient database error in {f.__name__} on attempt "
                    f"{attempt + 1}/{attempts}: {e}. Retrying in {wait_time:.2f}s..."
                )
                time.sleep(wait_time)
    return decorated_function
