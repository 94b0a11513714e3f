"""
WebSocket endpoint for live sessions.

Clients connect to ``/ws/session/{session_id}`` and send JSON messages:

- ``JOIN_SESSION`` with ``userId`` and ``profileId``
- ``USER_REACTION`` with ``trackId``, ``reaction``, optional ``intensity``
  and ``profileId`` (debounced per connection)
- ``TRACK_CHANGE`` with ``trackId`` and optional track details

Every session event, ``REACTION_PROCESSED`` replies and the periodic
``SESSION_UPDATE`` metrics are pushed back on the same socket.
"""
import json
import logging
import uuid

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from .dependencies import get_coordinator
from ..coordinator import ConnectionHandle, ERROR, SessionCoordinator
from ..errors import FuxiError

logger = logging.getLogger(__name__)

ws_router = APIRouter()


def _handle_message(handle: ConnectionHandle, session_id: str, message: dict) -> None:
    coordinator = handle.coordinator
    msg_type = message.get('type')

    if msg_type == 'JOIN_SESSION':
        user_id = message.get('userId')
        profile_id = message.get('profileId')
        if not user_id or not profile_id:
            handle.send({'type': 'SESSION_JOIN_ERROR', 'error': "userId and profileId are required"})
            return
        try:
            session = handle.join(session_id, user_id, profile_id)
            recommendations = coordinator.get_recommendations(session_id, profile_id)
        except FuxiError as e:
            handle.send({'type': 'SESSION_JOIN_ERROR', 'error': str(e)})
            return
        handle.send({
            'type': 'SESSION_JOINED',
            'sessionId': session_id,
            'connectionId': handle.connection_id,
            'sessionInfo': session.to_dict(),
            'initialRecommendations': [r.to_dict() for r in recommendations],
        })

    elif msg_type == 'USER_REACTION':
        payload = {k: v for k, v in message.items() if k != 'type'}
        handle.react(payload)

    elif msg_type == 'TRACK_CHANGE':
        track_info = message.get('track') or {k: v for k, v in message.items() if k != 'type'}
        handle.change_track(track_info)

    else:
        handle.send({'type': ERROR, 'error': f"Unknown message type: {msg_type!r}"})


@ws_router.websocket("/ws/session/{session_id}")
async def session_socket(
    websocket: WebSocket,
    session_id: str,
    coordinator: SessionCoordinator = Depends(get_coordinator)
):
    await websocket.accept()
    connection_id = str(uuid.uuid4())
    handle = coordinator.attach_connection(connection_id, sender=websocket.send_json)
    handle.send({
        'type': 'CONNECTION_ESTABLISHED',
        'connectionId': connection_id,
        'sessionId': session_id,
        'timestamp': coordinator.clock.now_ms(),
    })
    logger.info(f"WebSocket connected: {connection_id} to session {session_id}")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received on {connection_id}")
                handle.send({'type': ERROR, 'error': "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                handle.send({'type': ERROR, 'error': "Messages must be JSON objects"})
                continue
            _handle_message(handle, session_id, message)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: {connection_id} from session {session_id}")
    finally:
        handle.close()
