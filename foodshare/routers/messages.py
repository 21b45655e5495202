"""
实时消息 WebSocket 路由
"""
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from ..exceptions import InvalidTokenError
from ..logging.config import get_structured_logger
from ..security.tokens import TokenType

router = APIRouter(tags=["实时消息"])
logger = get_structured_logger(__name__)

CONNECTION_LIMIT_CLOSE_CODE = 4000


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str | None = Query(default=None)):
    """通过查询参数中的访问令牌认证，每个用户加入个人房间"""
    services = websocket.app.state.services

    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication error")
        return
    try:
        claims = services.tokens.verify(token, TokenType.ACCESS)
    except InvalidTokenError as e:
        logger.warning("WebSocket 连接被拒绝", extra={"error_code": e.error_code})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication error")
        return

    user = await services.users.find_by_id(claims.user_id)
    if user is None or not user.is_active:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication error")
        return

    await websocket.accept()
    hub = services.hub
    if not await hub.connect(websocket, user.id):
        await websocket.close(code=CONNECTION_LIMIT_CLOSE_CODE, reason="Connection limit exceeded")
        return

    try:
        await websocket.send_json({"event": "connected", "data": {"userId": user.id}})
        while True:
            raw = await websocket.receive_text()
            await hub.handle_frame(websocket, user.id, raw)
    except WebSocketDisconnect:
        logger.info("客户端断开 WebSocket", extra={"user_id": user.id})
    finally:
        await hub.disconnect(websocket, user.id)
