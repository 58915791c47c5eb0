"""
Push-update WebSocket endpoint
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from tradedesk.core.logging import get_logger

logger = get_logger(__name__)

ws_router = APIRouter(tags=["Realtime"])


@ws_router.websocket("/ws")
async def push_updates(websocket: WebSocket):
    """Bind one dashboard connection to the push hub"""
    hub = websocket.app.state.hub
    await websocket.accept()
    session = await hub.register(websocket)

    try:
        while True:
            raw = await websocket.receive_text()
            await hub.handle_frame(session, raw)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"Push connection {session.session_id} failed: {e}")
    finally:
        hub.unregister(session)
