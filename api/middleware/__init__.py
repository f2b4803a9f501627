from .request_id import RequestIDMiddleware, user_id_var
from .logging import LoggingMiddleware

__all__ = [
    "RequestIDMiddleware",
    "LoggingMiddleware",
    "user_id_var",
]
