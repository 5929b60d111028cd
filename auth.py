"""
Identity handed over by the credential collaborator.

Tokens are verified upstream; the authenticated user id arrives in the
USER_ID_HEADER header (or, for WebSockets, the `user_id` query parameter).
"""
from typing import Optional

from fastapi import HTTPException, Request, WebSocket

from config import USER_ID_HEADER


def get_current_user_id(request: Request) -> str:
    user_id = request.headers.get(USER_ID_HEADER)
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id


def get_websocket_user_id(websocket: WebSocket) -> Optional[str]:
    return websocket.headers.get(USER_ID_HEADER) or websocket.query_params.get("user_id")
