from __future__ import annotations

# Minimal entrypoint module for ASGI servers
# Exposes the FastAPI app constructed in allyhub.api.routes
import logging

from allyhub.core.config import LOG_LEVEL

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")

from allyhub.api.routes import app  # noqa: E402

__all__ = ["app"]
