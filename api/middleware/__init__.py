from .logging import LoggingMiddleware
from .request_id import REQUEST_ID_HEADER, RequestIDMiddleware

__all__ = ["LoggingMiddleware", "RequestIDMiddleware", "REQUEST_ID_HEADER"]
