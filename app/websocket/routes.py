"""
WebSocket endpoint for live scan progress.

Connect: ws://host/ws/scans/{scan_id}?token={jwt}

Events:
  {"type": "progress", "scanId": 1, "stage": "analyzing", "progress": 30, "message": "..."}
  {"type": "completed", "scanId": 1, "status": "COMPLETED", "complianceScore": 92, ...}
  {"type": "error", "scanId": 1, "message": "..."}
"""
import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.scan import Scan
from app.models.user import User
from app.utils.auth import decode_token, resolve_account_context
from app.websocket.manager import websocket_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


@router.websocket("/ws/scans/{scan_id}")
async def scan_websocket(
    websocket: WebSocket,
    scan_id: int,
    token: str = Query(..., description="JWT access token"),
    db: Session = Depends(get_db),
):
    """Subscribe to progress events for one scan of the caller's account"""
    user_id = decode_token(token)
    user = db.query(User).filter(User.id == user_id).first() if user_id is not None else None
    if user is None or not user.is_active:
        logger.warning("WebSocket auth failed")
        await websocket.close(code=4001, reason="Invalid token")
        return

    scan = db.query(Scan).filter(Scan.id == scan_id).first()
    if scan is None:
        await websocket.close(code=4004, reason="Scan not found")
        return

    ctx = resolve_account_context(db, user)
    if scan.account_id != ctx.account_id and not ctx.is_admin:
        logger.warning(f"WebSocket access denied: user {user.id} tried to watch scan {scan_id}")
        await websocket.close(code=4003, reason="Access denied")
        return

    room = str(scan_id)
    await websocket_manager.connect(room, websocket)
    try:
        await websocket.send_json({
            "type": "connected",
            "scanId": scan_id,
            "status": scan.status.value,
        })
        # Release the session; the socket may stay open for minutes
        db.close()

        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
            else:
                logger.debug(f"WebSocket received: {data[:100]}")
    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected from scan {scan_id}")
    finally:
        websocket_manager.disconnect(room, websocket)


@router.get("/ws/status")
async def websocket_status():
    """Connection statistics"""
    return {
        "total_connections": websocket_manager.get_connection_count(),
        "active_scans": websocket_manager.get_active_scans(),
    }
