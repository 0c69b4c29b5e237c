"""WebSocket API that runs a story session and streams its events."""

import asyncio
import logging
from typing import Literal

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from ..config import SessionOptions, Settings, get_settings
from ..errors import DreamweaverError
from ..gateway.factory import get_generation_gateway
from ..gateway.interface import GenerationGateway
from ..models.events import SessionEvent
from ..playback.player import ClientAckPlayer, NarrationPlayer
from ..playback.session import StorySession

router = APIRouter(prefix="/api/sessions", tags=["sessions"])
logger = logging.getLogger(__name__)


class StartMessage(BaseModel):
    """First message a client sends to begin a session."""

    type: Literal["start"]
    prompt: str
    options: SessionOptions = SessionOptions()


def get_narration_player(settings: Settings = Depends(get_settings)) -> NarrationPlayer:
    """Narration is played by the client, which reports each finished sentence."""
    return ClientAckPlayer(
        timeout_factor=settings.playback_ack_timeout_factor,
        grace_seconds=settings.playback_ack_grace_seconds,
    )


class EventSink:
    """Forwards session events to the socket until the client goes away."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.connected = True

    async def __call__(self, event: SessionEvent) -> None:
        if not self.connected:
            return
        try:
            await self.websocket.send_json(event.to_dict())
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.info(f"Client went away while sending {event.type}: {e}")
            self.connected = False


async def receive_controls(websocket: WebSocket, session: StorySession) -> None:
    """Apply pause/resume/stop/finished messages from the client."""
    while True:
        try:
            message = await websocket.receive_json()
        except WebSocketDisconnect:
            logger.info(f"Client disconnected from session {session.state.session_id}")
            session.stop("disconnected")
            return
        except ValueError as e:
            logger.warning(f"Ignoring malformed control message: {e}")
            continue

        kind = message.get("type") if isinstance(message, dict) else None
        if kind == "pause":
            session.pause()
        elif kind == "resume":
            session.resume()
        elif kind == "finished":
            index = message.get("index")
            if isinstance(index, int):
                session.player.finished(index)
            else:
                logger.warning(f"finished message without a sentence index: {message}")
        elif kind == "stop":
            session.stop()
            return
        else:
            logger.warning(f"Unknown control message: {kind}")


@router.websocket("/ws")
async def session_socket(
    websocket: WebSocket,
    gateway: GenerationGateway = Depends(get_generation_gateway),
    player: NarrationPlayer = Depends(get_narration_player),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Run one story session over a WebSocket.

    Receives: a start message, then finished messages as each sentence ends
    playing on the client, and optional pause/resume/stop messages.
    Sends: sentence, image, music, chapter, tick, error and ended events,
    followed by a summary.
    """
    await websocket.accept()

    try:
        start = StartMessage.model_validate(await websocket.receive_json())
    except WebSocketDisconnect:
        return
    except ValueError as e:
        logger.warning(f"Invalid start message: {e}")
        await websocket.send_json({"type": "error", "message": "Invalid start message", "fatal": True})
        await websocket.close(code=1008)
        return

    sink = EventSink(websocket)
    session = StorySession(gateway, options=start.options, player=player, on_event=sink, settings=settings)
    logger.info(f"Creating new session: {session.state.session_id}")

    controls = asyncio.create_task(receive_controls(websocket, session))
    try:
        summary = await session.run(start.prompt)
    except DreamweaverError:
        summary = session.summary()
    finally:
        controls.cancel()

    if sink.connected:
        await websocket.send_json({"type": "summary", **summary.to_dict()})
        await websocket.close()
