"""ASGI entry point: ``fblogin.asgi:app``."""

from fblogin.app_factory import create_app
from fblogin.lib import observability

app = observability.instrument_app(create_app())
