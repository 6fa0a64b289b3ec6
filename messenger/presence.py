import logging
from typing import Any, Protocol

from fastapi import WebSocket
from starlette.websockets import WebSocketState

# Настройка логирования
logger = logging.getLogger(__name__)


class Connection(Protocol):
    @property
    def is_live(self) -> bool: ...

    async def emit(self, event: str, payload: Any) -> None: ...


# То, через что координатор доставки отправляет события
class Notifier(Protocol):
    def is_online(self, username: str) -> bool: ...

    async def send(self, recipient: str, event: str, payload: Any) -> None: ...


# Кадр на проводе: {"event": ..., "data": ...}
class WebSocketConnection:
    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    @property
    def is_live(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def emit(self, event: str, payload: Any) -> None:
        await self.websocket.send_json({"event": event, "data": payload})


class PresenceRegistry:
    # username -> активное подключение; хранится не больше одного на
    # пользователя, новая регистрация вытесняет прежнюю

    def __init__(self):
        self._connections: dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def register(self, username: str, connection: Connection) -> None:
        if username in self._connections:
            logger.info(f"Replacing connection of {username}")
        self._connections[username] = connection
        logger.info(f"{username} registered ({len(self._connections)} online)")

    def unregister(
        self, username: str, connection: Connection | None = None
    ) -> bool:
        current = self._connections.get(username)
        if current is None:
            return False
        if connection is not None and current is not connection:
            # Сокет уже вытеснен более новым подключением
            return False
        del self._connections[username]
        logger.info(f"{username} unregistered ({len(self._connections)} online)")
        return True

    def get(self, username: str) -> Connection | None:
        return self._connections.get(username)

    def is_online(self, username: str) -> bool:
        connection = self._connections.get(username)
        return connection is not None and connection.is_live

    def online_users(self) -> list[str]:
        return sorted(
            u for u, c in self._connections.items() if c.is_live
        )

    async def send(self, recipient: str, event: str, payload: Any) -> None:
        connection = self._connections.get(recipient)
        if connection is None or not connection.is_live:
            logger.debug(f"Skipping '{event}' for offline user {recipient}")
            return
        try:
            await connection.emit(event, payload)
        except Exception:
            logger.warning(
                f"Push of '{event}' to {recipient} failed", exc_info=True
            )

    def clear(self) -> None:
        logger.info(f"Dropping {len(self._connections)} connection(s)")
        self._connections.clear()
