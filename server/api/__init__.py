"""
HTTP API

aiohttp.web application exposing the prediction lifecycle.
"""
from api.routes import ORCHESTRATOR, create_app

__all__ = [
    "ORCHESTRATOR",
    "create_app",
]
