"""FastAPI application exposing the COTI tools over HTTP and a JSON-RPC MCP gateway."""

from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, Response

from coti_mcp import mcp
from coti_mcp.config import CotiConfig, default_config
from coti_mcp.context import ServerContext, build_context
from coti_mcp.errors import ConfigurationMissingError
from coti_mcp.metrics import default_metrics
from coti_mcp.rate_limiter import PerKeyRateLimiter
from coti_mcp.tools.outcome import ToolOutcome

logger = logging.getLogger(__name__)

HEALTH_STATUS = {"status": "ok"}
APP_VERSION = "0.1.0"
MCP_SERVER_NAME = "coti-mcp-server"
MCP_SERVER_VERSION = APP_VERSION


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "message": record.getMessage(),
            "name": record.name,
        }
        for key in ("tool", "request_id", "error"):
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        return json.dumps(payload)


def configure_logging(config: CotiConfig | None = None, *, force: bool = False) -> None:
    config = config or default_config
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    if config.log_format.lower() == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logging.basicConfig(level=level, handlers=[handler], force=force)
    else:
        logging.basicConfig(level=level, force=force)


router = APIRouter()


def _context(request: Request) -> Optional[ServerContext]:
    return getattr(request.app.state, "context", None)


def _log_tool_result(tool_name: str, outcome: ToolOutcome, request_id: Optional[str] = None) -> None:
    if outcome.is_error:
        logger.warning(
            "tool=%s outcome=error error=%s request_id=%s",
            tool_name,
            outcome.error,
            request_id,
            extra={"tool": tool_name, "request_id": request_id, "error": outcome.error},
        )
        default_metrics.record_tool(tool_name, success=False, error_kind=outcome.error)
    else:
        logger.info(
            "tool=%s outcome=success request_id=%s",
            tool_name,
            request_id,
            extra={"tool": tool_name, "request_id": request_id},
        )
        default_metrics.record_tool(tool_name, success=True)


async def _enforce_rate_limit(request: Request, tool_name: str) -> Optional[JSONResponse]:
    limiter: PerKeyRateLimiter = request.app.state.rate_limiter
    allowed = await limiter.allow(tool_name)
    if not allowed:
        logger.warning("tool=%s outcome=rate_limited", tool_name, extra={"tool": tool_name})
        default_metrics.incr_rate_limited()
        # Return a JSON-RPC style error envelope for MCP clients.
        return JSONResponse(
            status_code=429,
            content={"jsonrpc": "2.0", "error": {"code": 429, "message": "Rate limit exceeded"}},
        )
    return None


def _not_ready() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"jsonrpc": "2.0", "error": {"code": -32002, "message": "Server context not initialised"}},
    )


async def _run_tool(request: Request, context: ServerContext, tool_name: str, arguments: Any) -> Dict[str, Any]:
    request_id = getattr(request.state, "request_id", None)
    outcome = await mcp.dispatch(tool_name, arguments, context)
    _log_tool_result(tool_name, outcome, request_id)
    return outcome.to_envelope()


@router.get("/health")
async def health() -> JSONResponse:
    """Lightweight health endpoint for monitoring."""
    return JSONResponse(content=HEALTH_STATUS)


@router.get("/metrics")
async def metrics() -> JSONResponse:
    """Return in-process metrics snapshot."""
    return JSONResponse(content=default_metrics.snapshot())


@router.post("/tools/{tool_name}")
async def tool_route(tool_name: str, request: Request) -> JSONResponse:
    """Run one tool; the JSON body holds its arguments and the envelope is returned as-is."""
    context = _context(request)
    if context is None:
        return _not_ready()
    raw = await request.body()
    try:
        arguments = json.loads(raw) if raw.strip() else {}
    except ValueError:
        return JSONResponse(status_code=400, content=ToolOutcome(text="Invalid JSON body", error="invalid_argument").to_envelope())
    limited = await _enforce_rate_limit(request, tool_name)
    if limited:
        return limited
    return JSONResponse(content=await _run_tool(request, context, tool_name, arguments))


@router.post("/mcp")
async def mcp_gateway(request: Request) -> Response:
    """
    Minimal JSON-RPC gateway for MCP clients.

    Supported methods:
      - initialize
      - list_tools / tools/list
      - call_tool / tools/call
      - notifications/initialized (no response body)
    """
    request_id = getattr(request.state, "request_id", None)
    start_time = time.time()

    def _respond(
        payload: Dict[str, Any],
        status_code: int = 200,
        *,
        outcome: str,
        method_label: Optional[str] = None,
        tool_label: Optional[str] = None,
        error_code: Optional[int] = None,
    ) -> JSONResponse:
        duration_ms = (time.time() - start_time) * 1000
        logger.debug(
            "mcp outcome=%s method=%s tool=%s id=%s status=%s duration_ms=%.2f error_code=%s",
            outcome,
            method_label,
            tool_label,
            payload.get("id"),
            status_code,
            duration_ms,
            error_code,
            extra={"request_id": request_id, "tool": tool_label, "error": error_code},
        )
        return JSONResponse(status_code=status_code, content=payload)

    try:
        body = await request.json()
    except ValueError:
        payload = _jsonrpc_error_payload(None, -32700, "Parse error")
        return _respond(payload, status_code=400, outcome="error", error_code=-32700)

    if not isinstance(body, dict):
        payload = _jsonrpc_error_payload(None, -32600, "Invalid request")
        return _respond(payload, status_code=400, outcome="error", error_code=-32600)

    method = body.get("method")
    rpc_id = body.get("id")
    raw_params = body.get("params")
    if raw_params is None:
        params: Dict[str, Any] = {}
    elif isinstance(raw_params, dict):
        params = raw_params
    else:
        payload = _jsonrpc_error_payload(rpc_id, -32602, "Invalid params")
        return _respond(payload, outcome="error", method_label=method, error_code=-32602)

    if not method:
        payload = _jsonrpc_error_payload(rpc_id, -32600, "Invalid request")
        return _respond(payload, outcome="error", error_code=-32600)

    if method == "initialize":
        protocol_version = params.get("protocolVersion")
        if not isinstance(protocol_version, str) or not protocol_version:
            payload = _jsonrpc_error_payload(rpc_id, -32602, "Invalid params")
            return _respond(payload, outcome="error", method_label=method, error_code=-32602)
        result = {
            "protocolVersion": protocol_version,
            "serverInfo": {"name": MCP_SERVER_NAME, "version": MCP_SERVER_VERSION},
            "capabilities": {"tools": {"listChanged": False}},
        }
        return _respond(_jsonrpc_success_payload(rpc_id, result), outcome="success", method_label=method)

    if method in ("list_tools", "tools/list"):
        limited = await _enforce_rate_limit(request, "list_tools")
        if limited:
            return limited
        result = {"tools": mcp.list_tools()}
        return _respond(_jsonrpc_success_payload(rpc_id, result), outcome="success", method_label=method)

    if method in ("call_tool", "tools/call"):
        tool_name = params.get("name") or params.get("tool")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = params.get("params") or {}
        if not isinstance(tool_name, str) or not tool_name.strip():
            payload = _jsonrpc_error_payload(rpc_id, -32602, "Invalid params")
            return _respond(payload, outcome="error", method_label=method, error_code=-32602)
        if not isinstance(arguments, dict):
            payload = _jsonrpc_error_payload(rpc_id, -32602, "Invalid params")
            return _respond(payload, outcome="error", method_label=method, tool_label=tool_name, error_code=-32602)
        context = _context(request)
        if context is None:
            return _not_ready()
        limited = await _enforce_rate_limit(request, tool_name)
        if limited:
            return limited
        envelope = await _run_tool(request, context, tool_name, arguments)
        return _respond(
            _jsonrpc_success_payload(rpc_id, envelope),
            outcome="error" if envelope["isError"] else "success",
            method_label=method,
            tool_label=tool_name,
        )

    if method in ("notifications/initialized", "initialized"):
        # Notifications get no JSON-RPC response body.
        logger.debug("mcp initialized notification received", extra={"request_id": request_id})
        return Response(status_code=204)

    payload = _jsonrpc_error_payload(rpc_id, -32601, "Method not found")
    return _respond(payload, outcome="error", method_label=method, error_code=-32601)


def _jsonrpc_success_payload(rpc_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": rpc_id, "result": result}


def _jsonrpc_error_payload(rpc_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": rpc_id, "error": {"code": code, "message": message}}


async def add_request_context(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.time()
    default_metrics.incr_request()
    response = await call_next(request)
    duration_ms = (time.time() - start) * 1000
    default_metrics.record_duration(request_id, duration_ms)
    response.headers["X-Request-ID"] = request_id
    return response


def create_app(
    context: Optional[ServerContext] = None,
    *,
    config: CotiConfig | None = None,
    rate_limiter: Optional[PerKeyRateLimiter] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    When no context is given, the lifespan loads one from the environment at
    startup (failing startup on bad account configuration) and closes its client
    on shutdown.
    """
    config = config or (context.config if context is not None else default_config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.context is None
        if owned:
            app.state.context = build_context(config)
        yield
        if owned:
            await app.state.context.client.aclose()
            app.state.context = None

    app = FastAPI(
        title="COTI MCP Server",
        description="COTI blockchain tool surface for LLM agents.",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.context = context
    app.state.rate_limiter = rate_limiter or PerKeyRateLimiter(
        rate_per_sec=config.rate_limit_qps,
        per_tool=config.per_tool_rate_limits,
    )
    app.middleware("http")(add_request_context)
    app.include_router(router)
    return app


configure_logging()
app = create_app()


def main() -> None:
    """Console entry point: load accounts from the environment and serve over HTTP."""
    configure_logging(force=True)
    try:
        context = build_context(default_config)
    except ConfigurationMissingError as exc:
        logger.error("Invalid COTI MCP configuration: %s", exc.message, extra={"error": exc.kind})
        print(f"Error: {exc.message}", file=sys.stderr)
        sys.exit(1)
    logger.info("Starting %s on %s:%d", MCP_SERVER_NAME, default_config.host, default_config.port)
    uvicorn.run(create_app(context), host=default_config.host, port=default_config.port, log_config=None)


# Run with: coti-mcp-server (or uvicorn coti_mcp.server:app)
