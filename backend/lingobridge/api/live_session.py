"""
WebSocket endpoint driving one live interpretation session per connection.

The client streams recognizer events and audio energy; the server answers
with debounced session state snapshots.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Optional, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, ValidationError

from ..services.llm_service import llm_service
from ..services.session import Session
from ..services.speaker_classifier import SpeakerClassifier
from ..services.translation_service import translation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["session"])

# Session ids of currently connected clients
active_sessions: Set[str] = set()


class SessionConfig(BaseModel):
    source_lang: Optional[str] = None
    target_lang: Optional[str] = None
    view_mode: str = Field("simple", pattern="^(simple|focus|full)$")
    dual_channel: Optional[bool] = None
    facts: List[str] = Field(default_factory=list)


def _energy_samples(data: Dict[str, Any]) -> List[tuple]:
    if "samples" in data:
        return [(float(left), float(right)) for left, right in data["samples"]]
    return [(float(data.get("left", 0.0)), float(data.get("right", 0.0)))]


@router.websocket("/session")
async def live_session(websocket: WebSocket) -> None:
    """
    Live session over WebSocket.

    Client messages: start, transcript, words, tentative, energy,
    local_speaking, languages, flush, source_error, reset_facts, stop.
    Server messages: session_started, state, warning, error, session_stopped.
    """
    await websocket.accept()

    connection_id = str(uuid.uuid4())[:8]
    logger.info(f"[{connection_id}] Client connected to session endpoint")

    ws_closed = False
    send_lock = asyncio.Lock()
    outbox: asyncio.Queue = asyncio.Queue()
    session: Optional[Session] = None
    facts: List[str] = []

    async def safe_send(data: dict) -> bool:
        """Send JSON to client with error handling. Uses lock for serialization."""
        nonlocal ws_closed
        if ws_closed:
            return False
        try:
            async with send_lock:
                await websocket.send_json(data)
            return True
        except Exception as e:
            logger.debug(f"[{connection_id}] Send failed: {e}")
            return False

    async def sender() -> None:
        while True:
            message = await outbox.get()
            await safe_send(message)

    sender_task = asyncio.create_task(sender())

    async def stop_current(finalize: bool = False) -> None:
        nonlocal session, facts
        if session is None or not session.is_active:
            return
        final_state = await session.stop_session(finalize=finalize)
        facts = list(session.facts)
        active_sessions.discard(session.session_id)
        outbox.put_nowait({"type": "session_stopped", "state": final_state})

    async def start(data: Dict[str, Any]) -> None:
        nonlocal session
        await stop_current()
        config = SessionConfig(**{k: v for k, v in data.items() if k != "type"})
        classifier = SpeakerClassifier(enabled=config.dual_channel) if config.dual_channel is not None else None
        session = Session(
            translation_service,
            llm_service,
            source_lang=config.source_lang,
            target_lang=config.target_lang,
            view_mode=config.view_mode,
            on_state=lambda state: outbox.put_nowait({"type": "state", "state": state}),
            on_warning=lambda message: outbox.put_nowait({"type": "warning", "message": message}),
            facts=config.facts or facts,
            classifier=classifier,
        )
        await session.start_session()
        active_sessions.add(session.session_id)
        outbox.put_nowait({"type": "session_started", "session_id": session.session_id})

    try:
        while True:
            try:
                data = await websocket.receive_json()
            except json.JSONDecodeError:
                await safe_send({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(data, dict):
                await safe_send({"type": "error", "message": "Expected a JSON object"})
                continue

            msg_type = data.get("type")
            try:
                if msg_type == "start":
                    await start(data)
                    continue
                if msg_type == "stop":
                    await stop_current(finalize=bool(data.get("finalize", False)))
                    continue
                if msg_type == "reset_facts":
                    facts = []
                    if session is not None:
                        session.reset_facts()
                    continue

                if session is None or not session.is_active:
                    await safe_send({"type": "error", "message": "No active session, send 'start' first"})
                    continue

                if msg_type == "transcript":
                    session.submit_transcript(
                        data.get("final", ""),
                        data.get("tentative", ""),
                        int(data.get("epoch", 0)),
                    )
                elif msg_type == "words":
                    session.add_words(data.get("text", ""))
                elif msg_type == "tentative":
                    session.set_tentative_text(data.get("text", ""))
                elif msg_type == "energy":
                    for left, right in _energy_samples(data):
                        session.add_energy_sample(left, right)
                elif msg_type == "local_speaking":
                    session.set_local_speaking(bool(data.get("value", False)))
                elif msg_type == "languages":
                    session.set_languages(data.get("source_lang"), data.get("target_lang") or session.target_lang)
                elif msg_type == "flush":
                    session.force_flush()
                elif msg_type == "source_error":
                    session.report_source_failure(data.get("source", "transcript"), data.get("message", ""))
                else:
                    await safe_send({"type": "error", "message": f"Unknown message type: {msg_type}"})
            except ValidationError as e:
                await safe_send({"type": "error", "message": f"Invalid session config: {e.errors()[0]['msg']}"})
            except (TypeError, ValueError) as e:
                logger.warning(f"[{connection_id}] Bad '{msg_type}' message: {e}")
                await safe_send({"type": "error", "message": f"Bad '{msg_type}' message"})

    except WebSocketDisconnect:
        logger.info(f"[{connection_id}] Client disconnected")
    except Exception as e:
        logger.error(f"[{connection_id}] Session endpoint error: {e}")
        await safe_send({"type": "error", "message": str(e)})

    finally:
        try:
            await stop_current()
        finally:
            ws_closed = True
            sender_task.cancel()
            try:
                await sender_task
            except asyncio.CancelledError:
                pass
