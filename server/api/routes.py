"""
HTTP API

aiohttp.web surface over the LifecycleOrchestrator. Handlers only validate
input and shape JSON; every failure is turned into a JSON error body by
error_middleware:

    POST /generate-predictions          {topic}
    POST /finalize-prediction/{id}
    GET  /prediction/{id}
    GET  /user-stats/{address}
    POST /test/generate-predictions     {topic}        (no chain writes)
    POST /test/finalize-prediction      {description}  (no chain access)
"""
from __future__ import annotations

import json
import logging
import traceback
from enum import Enum
from typing import Any, Awaitable, Callable

from aiohttp import web

from lifecycle.orchestrator import LifecycleOrchestrator

logger = logging.getLogger(__name__)

ORCHESTRATOR = web.AppKey("orchestrator", LifecycleOrchestrator)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

routes = web.RouteTableDef()


def to_jsonable(value: Any) -> Any:
    """Convert contract return values (bytes, tuples, enums) into JSON types."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def _error(status: int, message: str, **extra: Any) -> web.Response:
    return web.json_response({"error": message, **extra}, status=status)


async def _body_field(request: web.Request, name: str) -> str | None:
    """A non-blank string field from the JSON body, or None."""
    if not request.can_read_body:
        return None
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(body, dict):
        return None
    value = body.get(name)
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


def _prediction_id(request: web.Request) -> int:
    raw = request.match_info["id"]
    try:
        prediction_id = int(raw)
    except ValueError:
        raise web.HTTPBadRequest(
            text=json.dumps({"error": f"Prediction id must be an integer, got {raw!r}"}),
            content_type="application/json",
        )
    if prediction_id < 0:
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "Prediction id must be non-negative"}),
            content_type="application/json",
        )
    return prediction_id


# ── Middlewares ────────────────────────────────────────────────────


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=CORS_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPException as ex:
        ex.headers.update(CORS_HEADERS)
        raise
    response.headers.update(CORS_HEADERS)
    return response


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """
    Render uncaught errors as 500 JSON.

    POST flows also include the stack trace for debugging; read-only GETs
    only carry the message.
    """
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in {request.method} {request.path}: {e}")
        if request.method == "POST":
            stack = "".join(traceback.format_exception(type(e), e, e.__traceback__))
            return _error(500, str(e), stack=stack)
        return _error(500, str(e))


# ── Creation ───────────────────────────────────────────────────────


@routes.post("/generate-predictions")
async def generate_predictions(request: web.Request) -> web.Response:
    topic = await _body_field(request, "topic")
    if topic is None:
        return _error(400, "Topic is required")

    logger.info(f"Generating predictions for topic: {topic}")
    report = await request.app[ORCHESTRATOR].create_predictions(topic)
    return web.json_response(report.to_dict())


@routes.post("/test/generate-predictions")
async def test_generate_predictions(request: web.Request) -> web.Response:
    topic = await _body_field(request, "topic")
    if topic is None:
        return _error(400, "Topic is required")

    logger.info(f"Generating test predictions for topic: {topic}")
    predictions = await request.app[ORCHESTRATOR].preview_predictions(topic)
    return web.json_response({"predictions": [p.to_dict() for p in predictions]})


# ── Finalization ───────────────────────────────────────────────────


@routes.post("/finalize-prediction/{id}")
async def finalize_prediction(request: web.Request) -> web.Response:
    prediction_id = _prediction_id(request)
    result = await request.app[ORCHESTRATOR].finalize_prediction(prediction_id)
    return web.json_response(result.to_dict())


@routes.post("/test/finalize-prediction")
async def test_finalize_prediction(request: web.Request) -> web.Response:
    description = await _body_field(request, "description")
    if description is None:
        return _error(400, "Prediction description is required")

    logger.info(f"Test finalizing prediction: {description}")
    preview = await request.app[ORCHESTRATOR].preview_outcome(description)
    return web.json_response(preview.to_dict())


# ── Reads ──────────────────────────────────────────────────────────


@routes.get("/prediction/{id}")
async def get_prediction(request: web.Request) -> web.Response:
    prediction_id = _prediction_id(request)
    raw = await request.app[ORCHESTRATOR].get_prediction(prediction_id)
    return web.json_response(to_jsonable(raw))


@routes.get("/user-stats/{address}")
async def get_user_stats(request: web.Request) -> web.Response:
    stats = await request.app[ORCHESTRATOR].get_user_stats(request.match_info["address"])
    return web.json_response(to_jsonable(stats))


def create_app(orchestrator: LifecycleOrchestrator) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app[ORCHESTRATOR] = orchestrator
    app.add_routes(routes)
    return app
