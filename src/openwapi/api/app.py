"""ASGI application and console entry point."""

import uvicorn

from openwapi.config import load_settings
from openwapi.observability.logging import configure_logging

from .factory import create_app

_settings = load_settings()
configure_logging(production=_settings.is_production)

app = create_app(_settings)


def main() -> None:
    """Run the API with uvicorn on the configured port."""
    uvicorn.run(app, host="0.0.0.0", port=_settings.port, log_config=None)
