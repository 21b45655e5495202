"""
实时消息中心

每个连接加入个人房间 user_<id>，可按需加入交换房间 swap_<id>。
帧格式为 JSON {event, data}。
"""
import asyncio
import json
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Protocol

from ..logging.config import get_structured_logger
from ..monitoring import metrics_collector

logger = get_structured_logger(__name__)


class Connection(Protocol):
    async def send_json(self, data: Any, mode: str = "text") -> None: ...


def user_room(user_id: str) -> str:
    return f"user_{user_id}"


def swap_room(swap_id: str) -> str:
    return f"swap_{swap_id}"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class MessageHub:
    """管理连接、房间成员关系与事件转发"""

    def __init__(self, max_connections_per_user: int = 5):
        self._max_connections_per_user = max_connections_per_user
        self._user_connections: dict[str, list[Connection]] = defaultdict(list)
        self._rooms: dict[str, set[Connection]] = defaultdict(set)
        self._memberships: dict[Connection, set[str]] = defaultdict(set)
        self._lock = asyncio.Lock()
        self._handlers = {
            "join_swap": self._on_join_swap,
            "leave_swap": self._on_leave_swap,
            "send_message": self._on_send_message,
            "typing_start": self._on_typing_start,
            "typing_stop": self._on_typing_stop,
            "share_location": self._on_share_location,
            "swap_status_update": self._on_swap_status_update,
        }

    async def connect(self, connection: Connection, user_id: str) -> bool:
        """登记连接；超过单用户连接上限时返回 False"""
        async with self._lock:
            connections = self._user_connections[user_id]
            if len(connections) >= self._max_connections_per_user:
                logger.warning(
                    "WebSocket 连接数超限",
                    extra={"user_id": user_id, "current_connections": len(connections)},
                )
                if not connections:
                    del self._user_connections[user_id]
                return False
            connections.append(connection)
            self._join_locked(connection, user_room(user_id))
            self._update_gauge()
        logger.info("WebSocket 已连接", extra={"user_id": user_id})
        return True

    async def disconnect(self, connection: Connection, user_id: str) -> None:
        async with self._lock:
            connections = self._user_connections.get(user_id)
            if connections and connection in connections:
                connections.remove(connection)
                if not connections:
                    del self._user_connections[user_id]
            for room in self._memberships.pop(connection, set()):
                members = self._rooms.get(room)
                if members is not None:
                    members.discard(connection)
                    if not members:
                        del self._rooms[room]
            self._update_gauge()
        logger.info("WebSocket 已断开", extra={"user_id": user_id})

    def _join_locked(self, connection: Connection, room: str) -> None:
        self._rooms[room].add(connection)
        self._memberships[connection].add(room)

    async def join(self, connection: Connection, room: str) -> None:
        async with self._lock:
            self._join_locked(connection, room)

    async def leave(self, connection: Connection, room: str) -> None:
        async with self._lock:
            members = self._rooms.get(room)
            if members is not None:
                members.discard(connection)
                if not members:
                    del self._rooms[room]
            self._memberships.get(connection, set()).discard(room)

    def _update_gauge(self) -> None:
        metrics_collector.set_websocket_connections(self.get_total_connections())

    def get_connection_count(self, user_id: str) -> int:
        return len(self._user_connections.get(user_id, []))

    def get_total_connections(self) -> int:
        return sum(len(conns) for conns in self._user_connections.values())

    def room_members(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    async def emit(self, room: str, event: str, data: dict, exclude: Connection | None = None) -> int:
        """向房间广播事件，返回成功送达的连接数"""
        async with self._lock:
            targets = [c for c in self._rooms.get(room, ()) if c is not exclude]

        sent = 0
        failed: list[Connection] = []
        for connection in targets:
            try:
                await connection.send_json({"event": event, "data": data})
                sent += 1
            except Exception as e:
                logger.error("WebSocket 消息发送失败", extra={"room": room, "error": str(e)})
                failed.append(connection)

        if failed:
            async with self._lock:
                for connection in failed:
                    for name in self._memberships.get(connection, set()):
                        members = self._rooms.get(name)
                        if members is not None:
                            members.discard(connection)
        return sent

    async def emit_to_user(self, user_id: str, event: str, data: dict) -> int:
        return await self.emit(user_room(user_id), event, data)

    async def emit_to_swap(self, swap_id: str, event: str, data: dict) -> int:
        return await self.emit(swap_room(swap_id), event, data)

    async def emit_notification(self, user_id: str, notification: dict) -> int:
        return await self.emit_to_user(user_id, "notification", notification)

    async def send_error(self, connection: Connection, message: str) -> None:
        await connection.send_json({"event": "error", "data": {"message": message}})

    async def handle_frame(self, connection: Connection, user_id: str, raw: str) -> None:
        """解析客户端帧并分发到对应事件处理器"""
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            await self.send_error(connection, "Malformed frame")
            return
        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            await self.send_error(connection, "Malformed frame")
            return

        event = frame["event"]
        data = frame.get("data")
        if data is None:
            data = {}
        handler = self._handlers.get(event)
        if handler is None:
            await self.send_error(connection, f"Unknown event: {event}")
            return
        if not isinstance(data, dict):
            await self.send_error(connection, f"Invalid payload for {event}")
            return
        await handler(connection, user_id, data)

    @staticmethod
    def _require(data: dict, *keys: str) -> bool:
        return all(data.get(key) not in (None, "") for key in keys)

    async def _on_join_swap(self, connection: Connection, user_id: str, data: dict) -> None:
        if not self._require(data, "swapId"):
            await self.send_error(connection, "Invalid payload for join_swap")
            return
        await self.join(connection, swap_room(str(data["swapId"])))
        logger.info("加入交换房间", extra={"user_id": user_id, "swap_id": data["swapId"]})

    async def _on_leave_swap(self, connection: Connection, user_id: str, data: dict) -> None:
        if not self._require(data, "swapId"):
            await self.send_error(connection, "Invalid payload for leave_swap")
            return
        await self.leave(connection, swap_room(str(data["swapId"])))

    async def _on_send_message(self, connection: Connection, user_id: str, data: dict) -> None:
        if not self._require(data, "receiverId", "message"):
            await self.send_error(connection, "Invalid payload for send_message")
            return
        swap_id = data.get("swapId")
        timestamp = _timestamp()
        await self.emit(
            user_room(str(data["receiverId"])),
            "new_message",
            {"senderId": user_id, "message": data["message"], "swapId": swap_id, "timestamp": timestamp},
            exclude=connection,
        )
        if swap_id:
            await self.emit(
                swap_room(str(swap_id)),
                "swap_message",
                {"senderId": user_id, "message": data["message"], "timestamp": timestamp},
                exclude=connection,
            )

    async def _typing(self, connection: Connection, user_id: str, data: dict, event: str, source: str) -> None:
        if not self._require(data, "receiverId"):
            await self.send_error(connection, f"Invalid payload for {source}")
            return
        await self.emit(
            user_room(str(data["receiverId"])),
            event,
            {"userId": user_id, "swapId": data.get("swapId")},
            exclude=connection,
        )

    async def _on_typing_start(self, connection: Connection, user_id: str, data: dict) -> None:
        await self._typing(connection, user_id, data, "user_typing", "typing_start")

    async def _on_typing_stop(self, connection: Connection, user_id: str, data: dict) -> None:
        await self._typing(connection, user_id, data, "user_stopped_typing", "typing_stop")

    async def _on_share_location(self, connection: Connection, user_id: str, data: dict) -> None:
        if not self._require(data, "swapId", "latitude", "longitude"):
            await self.send_error(connection, "Invalid payload for share_location")
            return
        await self.emit(
            swap_room(str(data["swapId"])),
            "location_shared",
            {
                "userId": user_id,
                "latitude": data["latitude"],
                "longitude": data["longitude"],
                "timestamp": _timestamp(),
            },
            exclude=connection,
        )

    async def _on_swap_status_update(self, connection: Connection, user_id: str, data: dict) -> None:
        if not self._require(data, "swapId", "status"):
            await self.send_error(connection, "Invalid payload for swap_status_update")
            return
        await self.emit(
            swap_room(str(data["swapId"])),
            "swap_status_changed",
            {"swapId": data["swapId"], "status": data["status"], "timestamp": _timestamp()},
            exclude=connection,
        )
