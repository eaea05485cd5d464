import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from ...application.services.connection_auth import ConnectionAuthenticator
from ...core.dependencies import get_connection_authenticator
from ...domain.errors import AuthError

router = APIRouter()

logger = logging.getLogger(__name__)


def _handshake_token(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


@router.websocket("/ws/session")
async def websocket_session(
    websocket: WebSocket,
    authenticator: ConnectionAuthenticator = Depends(get_connection_authenticator),
) -> None:
    """Authenticate the handshake, then hold the session open until the client leaves."""
    try:
        identity = await authenticator.authenticate(_handshake_token(websocket))
    except AuthError as exc:
        logger.info("Rejected websocket handshake: %s", exc.code)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.message)
        return

    websocket.state.user = identity
    await websocket.accept()
    await websocket.send_json(
        {
            "type": "connected",
            "user": {"user_id": identity.user_id, "name": identity.name, "email": identity.email},
        }
    )
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Websocket session closed for user %s", identity.user_id)
