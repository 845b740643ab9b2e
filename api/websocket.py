"""
WebSocket Gateway

職責：
1. 連線 <-> (room_id, player_id) 的對照表（side-table，不把狀態塞在連線物件上）
2. inbound frame 解析後交給 RoomStateMachine
3. outbound 事件送給單一連線或整個房間
4. 連線存活檢查交給 WebSocket 協定層（uvicorn 的 ping/pong），
   逾時的連線會以 websocket.disconnect 結束，走一般的斷線流程

送出事件一律放進該連線的 queue，由各自的 writer task 負責寫出，
一個連線寫入失敗不影響其他連線，也不會回滾狀態。
"""
import asyncio
import logging
import threading
import uuid
from typing import Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from models import ConnectionBinding, Event
from schemas import encode_frame, parse_frame
from core.exceptions import RouletteQuizException

router = APIRouter(tags=["websocket"])
logger = logging.getLogger(__name__)


class Connection:
    """一條 WebSocket 連線與它的 outbound queue"""

    def __init__(self, websocket: WebSocket, conn_id: Optional[str] = None) -> None:
        self.id = conn_id or uuid.uuid4().hex
        self.websocket = websocket
        self.closed = False
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return (
            not self.closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def start(self) -> None:
        self._writer = asyncio.create_task(self._drain())

    def enqueue(self, frame: str) -> None:
        self._outbox.put_nowait(frame)

    async def _drain(self) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                await self.websocket.send_text(frame)
            except Exception as e:
                logger.warning(f"Failed to deliver frame to connection {self.id}: {e}")
                self.closed = True
                return

    async def close(self, code: int = 1000) -> None:
        if self._writer is not None:
            self._writer.cancel()
            self._writer = None

        if self.closed:
            return
        self.closed = True

        if (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        ):
            try:
                await self.websocket.close(code=code)
            except RuntimeError as e:
                # client 已經先關閉
                logger.debug(f"Connection {self.id} already closed: {e}")


class ConnectionGateway:
    """所有連線的擁有者"""

    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}
        self._bindings: Dict[str, ConnectionBinding] = {}
        self._guard = threading.Lock()

    # ============ 連線註冊 ============

    def register(self, connection: Connection) -> None:
        with self._guard:
            self._connections[connection.id] = connection

    def unregister(self, conn_id: str) -> Optional[Connection]:
        with self._guard:
            self._bindings.pop(conn_id, None)
            return self._connections.pop(conn_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._connections)

    # ============ 身分對照 ============

    def bind(self, conn_id: str, room_id: str, player_id: str) -> None:
        with self._guard:
            self._bindings[conn_id] = ConnectionBinding(room_id, player_id)

    def unbind(self, conn_id: str) -> Optional[ConnectionBinding]:
        with self._guard:
            return self._bindings.pop(conn_id, None)

    def identity(self, conn_id: str) -> Optional[ConnectionBinding]:
        with self._guard:
            return self._bindings.get(conn_id)

    # ============ 送出事件 ============

    def send_to_one(self, conn_id: str, event: Event, data: dict) -> None:
        with self._guard:
            connection = self._connections.get(conn_id)

        if connection is None or not connection.is_open:
            return
        connection.enqueue(encode_frame(event, data))

    def broadcast_to_room(self, room_id: str, event: Event, data: dict) -> None:
        frame = encode_frame(event, data)
        with self._guard:
            recipients = [
                self._connections[conn_id]
                for conn_id, binding in self._bindings.items()
                if binding.room_id == room_id and conn_id in self._connections
            ]

        for connection in recipients:
            if connection.is_open:
                connection.enqueue(frame)


def handle_frame(state_machine, gateway: ConnectionGateway, conn_id: str, raw: str) -> None:
    """
    處理一個 inbound frame

    - 格式錯誤 / 未知事件：記錄後丟棄，不回覆
    - 業務異常：只回覆請求者 error{message}
    - 其他異常：記錄 traceback，回覆 Internal error，連線維持開啟
    """
    try:
        frame = parse_frame(raw)
    except ValidationError as e:
        logger.warning(f"Dropping invalid frame from connection {conn_id}: {e.errors()[0]['msg']}")
        return

    logger.debug(f"Received event {frame.event} from connection {conn_id}")

    try:
        state_machine.dispatch(conn_id, frame)
    except RouletteQuizException as e:
        logger.info(f"Rejected {frame.event} from connection {conn_id}: {e}")
        gateway.send_to_one(conn_id, Event.ERROR, {"message": str(e)})
    except Exception as e:
        logger.error(f"Failed to handle {frame.event}: {e}", exc_info=True)
        gateway.send_to_one(conn_id, Event.ERROR, {"message": "Internal error"})


@router.websocket("/api/socket")
async def game_socket(websocket: WebSocket):
    """
    遊戲連線 endpoint

    每個 frame 都是 {"event": ..., "data": {...}}。
    """
    gateway: ConnectionGateway = websocket.app.state.gateway
    state_machine = websocket.app.state.state_machine

    await websocket.accept()
    connection = Connection(websocket)
    gateway.register(connection)
    connection.start()
    logger.info(f"Client connected: {connection.id}")

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            raw = message.get("text")
            if raw is None:
                raw = (message.get("bytes") or b"").decode("utf-8", errors="replace")

            handle_frame(state_machine, gateway, connection.id, raw)
    except WebSocketDisconnect:
        logger.info(f"Client disconnected: {connection.id}")
    finally:
        state_machine.connection_closed(connection.id)
        gateway.unregister(connection.id)
        await connection.close()
