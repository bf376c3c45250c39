"""netgraph — HTTP API and WebSocket push channel.

Exposes:
  GET    /health                        — liveness check
  POST   /api/scan                      — ARP scan, merge, broadcast
  GET    /api/devices                   — device snapshot
  GET    /api/devices/{id}/metrics      — probe one device
  GET    /api/users                     — users (with live metrics unless ?metrics=false)
  GET    /api/connections               — connection snapshot
  POST   /api/connect                   — request a P2P / LAN / WAN connection
  DELETE /api/connections/{id}          — remove a connection
  POST   /api/connections/{id}/test     — measure connection quality
  WS     /ws                            — push channel

Start with::

    python -m netgraph.server
    # or
    uvicorn netgraph.server:app --host 0.0.0.0 --port 3002
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from netgraph import __version__
from netgraph.config import ServerConfig
from netgraph.errors import AdmissionDenied, NotFoundError, ScanError
from netgraph.network import NetworkService
from netgraph.probe import SystemProbe
from netgraph.realtime.websocket import client_ws_handler
from netgraph.registry.models import ConnectionType

logger = logging.getLogger(__name__)

_CONNECTION_TYPES = ", ".join(t.value for t in ConnectionType)


# ──────────────────────────────────────────────────────────────────
# Request models
# ──────────────────────────────────────────────────────────────────

class ConnectRequest(BaseModel):
    userId: str | None = None
    sourceId: str | None = None
    connectionType: str | None = None


# ──────────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────────

def _network(request: Request) -> NetworkService:
    return request.app.state.network


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def create_app(
    network: NetworkService | None = None,
    config: ServerConfig | None = None,
) -> FastAPI:
    """Build the FastAPI app around *network* (a fresh one if omitted)."""
    if network is None:
        config = config or ServerConfig.from_env()
        network = NetworkService(SystemProbe(config), config)

    app = FastAPI(title="netgraph", version=__version__)
    app.state.network = network
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(AdmissionDenied)
    async def _denied(request: Request, exc: AdmissionDenied):
        return _error(400, exc.reason)

    @app.exception_handler(RequestValidationError)
    async def _invalid(request: Request, exc: RequestValidationError):
        return _error(400, "Invalid request body")

    @app.exception_handler(Exception)
    async def _internal(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return _error(500, "Internal server error")

    # ── Endpoints ─────────────────────────────────────────────────

    @app.get("/health")
    async def health(request: Request):
        network = _network(request)
        return {
            "status": "ok",
            "clients": network.gateway.client_count,
            **network.registry.counts(),
        }

    @app.post("/api/scan")
    async def scan(request: Request):
        try:
            devices = await _network(request).scan()
        except ScanError as exc:
            logger.error("Scan error: %s", exc)
            return _error(500, "Scan failed")
        except Exception:
            logger.exception("Scan failed unexpectedly")
            return _error(500, "Scan failed")
        return [d.to_dict() for d in devices]

    @app.get("/api/devices")
    async def list_devices(request: Request):
        return _network(request).snapshot("device")

    @app.get("/api/devices/{device_id}/metrics")
    async def device_metrics(device_id: str, request: Request):
        try:
            metrics = await _network(request).device_metrics(device_id)
        except Exception:
            logger.exception("Metrics for device %s failed", device_id)
            return _error(500, "Failed to get device metrics")
        return metrics.to_dict()

    @app.get("/api/users")
    async def list_users(request: Request, metrics: bool = True):
        network = _network(request)
        if not metrics:
            return network.snapshot("user")
        return [u.to_dict() for u in await network.users_with_metrics()]

    @app.get("/api/connections")
    async def list_connections(request: Request):
        return _network(request).snapshot("connection")

    @app.post("/api/connect")
    async def connect(body: ConnectRequest, request: Request):
        if not body.userId or not body.sourceId:
            return _error(400, "Both userId and sourceId are required")
        try:
            connection_type = ConnectionType(body.connectionType)
        except ValueError:
            return _error(400, f"connectionType must be one of: {_CONNECTION_TYPES}")

        conn = await _network(request).connect(body.sourceId, body.userId, connection_type)
        return conn.to_dict()

    @app.delete("/api/connections/{connection_id}")
    async def delete_connection(connection_id: str, request: Request):
        await _network(request).remove_connection(connection_id)
        return {"success": True}

    @app.post("/api/connections/{connection_id}/test")
    async def test_connection(connection_id: str, request: Request):
        try:
            result = await _network(request).test_connection(connection_id)
        except NotFoundError:
            raise
        except Exception:
            logger.exception("Connection test error for %s", connection_id)
            return _error(500, "Failed to test connection")
        return result.to_dict()

    app.add_api_websocket_route("/ws", client_ws_handler)
    return app


app = create_app()


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────

def main():
    import uvicorn
    config = ServerConfig.from_env()
    logging.basicConfig(level=config.log_level)
    logger.info("Starting netgraph server on %s:%d", config.host, config.port)
    uvicorn.run("netgraph.server:app", host=config.host, port=config.port, reload=False)


if __name__ == "__main__":
    main()
