"""WebSocket push channel for browser clients.

  Client → Server:
    register-user   {"id"?: str, "name"?: str}

  Server → Client:
    user-registered {"user": {...}}
    device-update / user-update / connection-update   {"data": [...]}
    error           {"detail": str}

Every message is a JSON object with a ``type`` field.  Closing the socket is
the disconnect event.
"""

from __future__ import annotations

import json
import logging
import uuid

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


async def client_ws_handler(websocket: WebSocket) -> None:
    """Handle one browser tab's push-channel connection.

    Mount via ``app.add_api_websocket_route("/ws", client_ws_handler)``; the
    :class:`~netgraph.network.NetworkService` is read from ``app.state.network``.
    """
    network = websocket.app.state.network
    await websocket.accept()
    session_id = f"sess-{uuid.uuid4().hex[:8]}"
    client_ip = websocket.client.host if websocket.client else None
    user_agent = websocket.headers.get("user-agent")
    logger.info("Client connected: %s from %s", session_id, client_ip)

    try:
        await network.open_session(session_id, websocket)

        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                logger.warning("Malformed message from %s", session_id)
                await websocket.send_json({"type": "error", "detail": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "detail": "Expected a JSON object"})
                continue
            msg_type = message.get("type", "")

            if msg_type == "register-user":
                await network.register_user(
                    session_id,
                    user_id=_optional_str(message.get("id")),
                    name=_optional_str(message.get("name")),
                    client_ip=client_ip,
                    user_agent=user_agent,
                )
            else:
                logger.warning("Unknown message type from %s: %s", session_id, msg_type)

    except WebSocketDisconnect:
        logger.info("Client disconnected: %s", session_id)
    except Exception:
        logger.exception("Error in client WebSocket %s", session_id)
    finally:
        await network.close_session(session_id)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)
