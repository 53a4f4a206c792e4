import anyio
from anyio import CancelScope
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.logging import get_logger
from app.services.event_fanout import Subscription

logger = get_logger("api.events")

router = APIRouter(tags=["events"])


async def _pump_events(websocket: WebSocket, subscription: Subscription, scope: CancelScope) -> None:
    """Reenvía al cliente los eventos de la suscripción, en orden."""
    try:
        while not subscription.closed:
            event = await run_in_threadpool(subscription.get, settings.EVENT_POLL_SECONDS)
            if event is not None:
                await websocket.send_json(event.to_wire())
    except WebSocketDisconnect:
        logger.info("ws_send_after_disconnect", extra={"operation": "ws_send", "resource": "event"})
    finally:
        scope.cancel()


@router.websocket("/ws")
async def events_feed(websocket: WebSocket):
    fanout = websocket.app.state.fanout

    await websocket.accept()
    subscription = fanout.subscribe()
    try:
        await websocket.send_json({"type": "connected", "message": "WebSocket connected successfully"})

        async with anyio.create_task_group() as tg:
            tg.start_soon(_pump_events, websocket, subscription, tg.cancel_scope)
            try:
                while True:
                    # Los clientes no envían comandos; solo se detecta la desconexión
                    message = await websocket.receive_text()
                    logger.debug(
                        "ws_message_ignored",
                        extra={"operation": "ws_receive", "resource": "event", "size": len(message)},
                    )
            except WebSocketDisconnect:
                tg.cancel_scope.cancel()

        if subscription.dropped:
            # Cliente demasiado lento: se le pide reconectar y refrescar
            await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
    finally:
        fanout.unsubscribe(subscription)
