"""DLVR API middleware components.

- Request ID tracking for log correlation
- Consistent error response formatting
"""

from dlvr.api.middleware.errors import ErrorHandlerMiddleware
from dlvr.api.middleware.request_id import RequestIDMiddleware

__all__ = [
    "ErrorHandlerMiddleware",
    "RequestIDMiddleware",
]
