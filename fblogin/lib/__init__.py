from fblogin.lib import observability
from fblogin.lib.exceptions import http_exception_handler, internal_server_error_handler

__all__ = [
    "observability",
    "http_exception_handler",
    "internal_server_error_handler",
]
