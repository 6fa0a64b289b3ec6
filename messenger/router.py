import logging
import anyio
import json
from fastapi import (
    APIRouter, Request, Depends, FastAPI, WebSocket, WebSocketDisconnect
)
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker
)
from typing import AsyncGenerator, List, Optional
from types import SimpleNamespace
from contextlib import asynccontextmanager

from .delivery import (
    AUTHENTICATED, ERROR, DeliveryCoordinator
)
from .errors import AuthError, NotFoundError
from .models import Base, UserStatus
from .presence import PresenceRegistry, WebSocketConnection
from .session_service import SessionStore
from .shemas import (
    CreateGroupRequest, GroupMemberRequest, GroupMessageRequest,
    GroupResponse, LoginRequest, LogoutRequest, MarkReadRequest,
    MessageResponse, OkResponse, RegisterRequest, SendMessageRequest,
    SendMessageResponse, TokenResponse, UserResponse, message_to_schema
)
from . import group_service, message_service, user_service, config

# --- Логирование ---
logger = logging.getLogger(__name__)

# --- Инициализация маршрутов ---
router = APIRouter()

# --- Lifespan (инициализация/деинициализация компонентов) ---
@asynccontextmanager
async def lifespan_context(app: FastAPI):
    database_url = getattr(app.state, "database_url", config.DATABASE_URL)
    logger.info("App starting... initializing DB and realtime state")
    engine = create_async_engine(database_url, echo=config.DB_ECHO)
    await create_db_and_tables(engine)
    presence = PresenceRegistry()
    app.state.store = SimpleNamespace()
    app.state.store.engine = engine
    app.state.store.session_maker = async_sessionmaker(
        bind=engine, expire_on_commit=False
    )
    app.state.store.sessions = SessionStore(config.SECRET_KEY, config.ALGORITHM)
    app.state.store.presence = presence
    app.state.store.delivery = DeliveryCoordinator(presence)
    logger.info("Realtime state initialized")
    yield
    logger.info("App shutting down")
    app.state.store.sessions.clear()
    app.state.store.presence.clear()
    await engine.dispose()

# --- Создание таблиц при старте ---
async def create_db_and_tables(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized.")

# --- Генератор сессий для Depends ---
async def get_async_session(
    request: Request
) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.store.session_maker() as session:
        yield session

def get_session_store(request: Request) -> SessionStore:
    return request.app.state.store.sessions

def get_presence(request: Request) -> PresenceRegistry:
    return request.app.state.store.presence

def get_delivery(request: Request) -> DeliveryCoordinator:
    return request.app.state.store.delivery

# --- Токен из заголовка Authorization: Bearer или X-Auth-Token ---
def get_current_username(
    request: Request,
    sessions: SessionStore = Depends(get_session_store)
) -> str:
    token = request.headers.get("X-Auth-Token")
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        token = auth.split("Bearer ")[1]
    if not token:
        raise AuthError("no token")
    username = sessions.resolve(token)
    if username is None:
        raise AuthError("invalid token")
    return username

@router.get("/health")
async def health(presence: PresenceRegistry = Depends(get_presence)) -> dict:
    return {"status": "ok", "connections": len(presence.online_users())}

# --- Регистрация пользователя ---
@router.post("/auth/register")
async def register_user(
    request: RegisterRequest,
    session: AsyncSession = Depends(get_async_session)
) -> OkResponse:
    await user_service.create_user(session, request.username, request.password)
    await session.commit()
    logger.info(f"User registered: {request.username}")
    return OkResponse()

# --- Аутентификация пользователя ---
@router.post("/auth/login")
async def login_user(
    request: LoginRequest,
    session: AsyncSession = Depends(get_async_session),
    sessions: SessionStore = Depends(get_session_store)
) -> TokenResponse:
    user = await user_service.get_user_by_username(session, request.username)
    if user is None:
        raise AuthError("no such user", status_code=400)
    if not user_service.verify_password(user, request.password):
        raise AuthError("invalid credentials", status_code=400)
    await user_service.set_status(session, user.username, UserStatus.ONLINE)
    await session.commit()
    token = sessions.issue(user.username)
    logger.info(f"User logged in: {request.username}")
    return TokenResponse(token=token, username=user.username)

# --- Выход ---
@router.post("/auth/logout")
async def logout_user(
    request: LogoutRequest,
    session: AsyncSession = Depends(get_async_session),
    sessions: SessionStore = Depends(get_session_store)
) -> OkResponse:
    if sessions.resolve(request.token) != request.username:
        raise AuthError("invalid token", status_code=403)
    sessions.revoke(request.token)
    await user_service.set_status(session, request.username, UserStatus.OFFLINE)
    await session.commit()
    logger.info(f"User logged out: {request.username}")
    return OkResponse()

# --- Текущий пользователь по токену ---
@router.get("/auth/me")
async def whoami(
    username: str = Depends(get_current_username),
    session: AsyncSession = Depends(get_async_session)
) -> UserResponse:
    user = await user_service.get_user_by_username(session, username)
    if user is None:
        raise NotFoundError("user not found")
    return UserResponse.model_validate(user)

# --- Отправка личного сообщения ---
@router.post("/messages/send")
async def send_message(
    request: SendMessageRequest,
    session: AsyncSession = Depends(get_async_session),
    delivery: DeliveryCoordinator = Depends(get_delivery)
) -> SendMessageResponse:
    receiver = await user_service.get_user_by_username(session, request.receiver)
    if receiver is None:
        raise NotFoundError("receiver not found", status_code=400)
    message = await delivery.send_direct(
        session, request.sender, request.receiver, request.content
    )
    return SendMessageResponse(message=message_to_schema(message))

# --- История личной переписки ---
@router.get("/messages/history/{username}")
async def get_history(
    username: str,
    session: AsyncSession = Depends(get_async_session)
) -> List[MessageResponse]:
    user = await user_service.get_user_by_username(session, username)
    if user is None:
        raise NotFoundError("user not found", status_code=400)
    messages = await message_service.get_message_history(session, username)
    return [message_to_schema(m) for m in messages]

# --- Отметка о прочтении ---
@router.post("/messages/mark-read")
async def mark_read(
    request: MarkReadRequest,
    session: AsyncSession = Depends(get_async_session),
    delivery: DeliveryCoordinator = Depends(get_delivery)
) -> OkResponse:
    await delivery.mark_read(session, request.username, request.message_ids)
    return OkResponse()

# --- Список пользователей (без хешей паролей) ---
@router.get("/users")
async def get_users(
    session: AsyncSession = Depends(get_async_session)
) -> List[UserResponse]:
    users = await user_service.list_users(session)
    return [UserResponse.model_validate(u) for u in users]

# --- Создание группы ---
@router.post("/groups")
async def create_group(
    request: CreateGroupRequest,
    session: AsyncSession = Depends(get_async_session)
) -> GroupResponse:
    group = await group_service.create_group(
        session, request.name, request.created_by, request.members
    )
    await session.commit()
    return GroupResponse.model_validate(group)

# --- Добавление участника ---
@router.post("/groups/{group_id}/add")
async def add_group_member(
    group_id: int,
    request: GroupMemberRequest,
    session: AsyncSession = Depends(get_async_session),
    delivery: DeliveryCoordinator = Depends(get_delivery)
) -> GroupResponse:
    group = await group_service.add_member(session, group_id, request.username)
    await session.commit()
    await delivery.notify_group_added(group, request.username)
    return GroupResponse.model_validate(group)

# --- Удаление участника ---
@router.post("/groups/{group_id}/remove")
async def remove_group_member(
    group_id: int,
    request: GroupMemberRequest,
    session: AsyncSession = Depends(get_async_session)
) -> GroupResponse:
    group = await group_service.remove_member(
        session, group_id, request.username
    )
    await session.commit()
    return GroupResponse.model_validate(group)

# --- Группы пользователя ---
@router.get("/groups/user/{username}")
async def list_user_groups(
    username: str,
    session: AsyncSession = Depends(get_async_session)
) -> List[GroupResponse]:
    groups = await group_service.get_groups_for_user(session, username)
    return [GroupResponse.model_validate(g) for g in groups]

# --- Сообщения группы ---
@router.get("/groups/{group_id}/messages")
async def get_group_messages(
    group_id: int,
    session: AsyncSession = Depends(get_async_session)
) -> List[MessageResponse]:
    group = await group_service.get_group_by_id(session, group_id)
    if group is None:
        raise NotFoundError("group not found")
    messages = await message_service.get_group_messages(session, group_id)
    return [message_to_schema(m) for m in messages]

# --- Отправка сообщения в группу ---
@router.post("/groups/{group_id}/message")
async def send_group_message(
    group_id: int,
    request: GroupMessageRequest,
    session: AsyncSession = Depends(get_async_session),
    delivery: DeliveryCoordinator = Depends(get_delivery)
) -> SendMessageResponse:
    group = await group_service.get_group_by_id(session, group_id)
    if group is None:
        raise NotFoundError("group not found")
    message = await delivery.send_group(
        session, group, request.sender, request.content
    )
    return SendMessageResponse(message=message_to_schema(message))

# --- Realtime-канал: {"event": ..., "data": ...} ---
@router.websocket("/ws")
async def realtime_channel(websocket: WebSocket):
    store = websocket.app.state.store
    await websocket.accept()
    connection = WebSocketConnection(websocket)
    username: Optional[str] = None
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(
                    message.get("code", 1000), message.get("reason")
                )
            # Бинарные кадры и невалидный JSON: ошибка, сокет остаётся открытым
            text = message.get("text")
            try:
                frame = json.loads(text) if text is not None else None
            except ValueError:
                frame = None
            if not isinstance(frame, dict):
                await connection.emit(ERROR, {"error": "malformed frame"})
                continue
            event = frame.get("event")
            data = frame.get("data") or {}
            if event != "auth":
                await connection.emit(ERROR, {"error": f"unknown event: {event}"})
                continue

            claimed = data.get("username") if isinstance(data, dict) else None
            token = data.get("token") if isinstance(data, dict) else None
            if not claimed or store.sessions.resolve(token) != claimed:
                logger.info(f"Realtime auth rejected for {claimed}")
                await connection.emit(ERROR, {"error": "invalid token"})
                continue

            if username is not None and username != claimed:
                await _release(store, username, connection)
            username = claimed
            store.presence.register(username, connection)
            async with store.session_maker() as session:
                await user_service.set_status(session, username, UserStatus.ONLINE)
                await session.commit()
                await store.delivery.replay_backlog(session, username)
            await connection.emit(AUTHENTICATED, {"username": username})
    except WebSocketDisconnect:
        logger.info(f"Realtime connection closed ({username or 'anonymous'})")
    finally:
        if username is not None:
            # Статус OFFLINE пишется и при отмене задачи (shutdown)
            with anyio.CancelScope(shield=True):
                await _release(store, username, connection)

# --- Снятие регистрации; статус меняется, только если сокет был текущим ---
async def _release(store, username: str, connection: WebSocketConnection):
    if not store.presence.unregister(username, connection):
        return
    async with store.session_maker() as session:
        await user_service.set_status(session, username, UserStatus.OFFLINE)
        await session.commit()
