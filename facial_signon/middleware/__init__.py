"""HTTP middleware components."""

from facial_signon.middleware.logging import LoggingMiddleware
from facial_signon.middleware.request_id import RequestIDMiddleware

__all__ = ["RequestIDMiddleware", "LoggingMiddleware"]
