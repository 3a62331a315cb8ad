"""
Delivery Channel：即時推播

Tracks live WebSocket connections per debate room and fans out events.

- 一個連線同時只屬於一個房間（加入新房間 = 自動離開舊房間）
- broadcast 送給房間內所有連線，包含發送者自己（前端只需要一條渲染路徑）
- 某個連線送失敗：記 log、移除該連線，其他連線照常送
- 斷線移除永遠不拋例外

推播只是「資料已更新」的提示；資料的權威來源永遠是資料庫，
客戶端斷線重連後要重新抓歷史，而不是依賴推播重播。

Safe for the asyncio single-threaded event loop (no extra locking needed).
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Set

logger = logging.getLogger(__name__)


class Connection(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass(eq=False)
class Subscriber:
    connection: Connection
    user_id: str
    room_id: Optional[str] = None


class RoomChannel:

    def __init__(self):
        # {room_id: {Subscriber}}
        self._rooms: Dict[str, Set[Subscriber]] = {}
        # {id(connection): Subscriber}
        self._subscribers: Dict[int, Subscriber] = {}

    # ============ 連線管理 ============

    def register(self, connection: Connection, user_id: str) -> Subscriber:
        subscriber = Subscriber(connection=connection, user_id=user_id)
        self._subscribers[id(connection)] = subscriber
        return subscriber

    def join(self, connection: Connection, room_id: str, user_id: Optional[str] = None) -> Subscriber:
        subscriber = self._subscribers.get(id(connection))
        if subscriber is None:
            subscriber = self.register(connection, user_id)

        if subscriber.room_id is not None and subscriber.room_id != room_id:
            self._remove_from_room(subscriber)

        subscriber.room_id = room_id
        self._rooms.setdefault(room_id, set()).add(subscriber)
        logger.debug(f"[{room_id}] {subscriber.user_id} joined ({self.count(room_id)} connected)")
        return subscriber

    def leave(self, connection: Connection) -> Optional[str]:
        subscriber = self._subscribers.get(id(connection))
        if subscriber is None or subscriber.room_id is None:
            return None
        room_id = subscriber.room_id
        self._remove_from_room(subscriber)
        return room_id

    def disconnect(self, connection: Connection) -> None:
        subscriber = self._subscribers.pop(id(connection), None)
        if subscriber is not None:
            self._remove_from_room(subscriber)

    def _remove_from_room(self, subscriber: Subscriber) -> None:
        room_id = subscriber.room_id
        subscriber.room_id = None
        if room_id is None:
            return
        members = self._rooms.get(room_id)
        if members is None:
            return
        members.discard(subscriber)
        if not members:
            self._rooms.pop(room_id, None)

    # ============ 查詢 ============

    def count(self, room_id: str) -> int:
        return len(self._rooms.get(room_id, ()))

    def room_of(self, connection: Connection) -> Optional[str]:
        subscriber = self._subscribers.get(id(connection))
        return subscriber.room_id if subscriber else None

    def user_of(self, connection: Connection) -> Optional[str]:
        subscriber = self._subscribers.get(id(connection))
        return subscriber.user_id if subscriber else None

    # ============ 推播 ============

    async def broadcast(
        self,
        room_id: str,
        event: Dict[str, Any],
        exclude: Optional[Connection] = None,
    ) -> int:
        """
        Send an event to every subscriber of a room.

        Returns the number of successful deliveries.
        """
        delivered = 0
        for subscriber in list(self._rooms.get(room_id, ())):
            if exclude is not None and subscriber.connection is exclude:
                continue
            try:
                await subscriber.connection.send_json(event)
                delivered += 1
            except Exception as e:
                logger.warning(
                    f"[{room_id}] broadcast {event.get('type')} to {subscriber.user_id} failed: {e}"
                )
                self.disconnect(subscriber.connection)
        return delivered

    async def send_to(self, connection: Connection, event: Dict[str, Any]) -> bool:
        try:
            await connection.send_json(event)
            return True
        except Exception as e:
            logger.warning(f"send {event.get('type')} failed: {e}")
            self.disconnect(connection)
            return False
