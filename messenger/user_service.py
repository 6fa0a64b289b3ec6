import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, asc
from sqlalchemy.exc import IntegrityError
from passlib.hash import bcrypt

from messenger.errors import DuplicateKeyError
from messenger.models import User, UserStatus

# --- Логирование ---
logger = logging.getLogger(__name__)

# --- Поиск в справочнике пользователей по логину ---
async def get_user_by_username(
    session: AsyncSession,
    username: str
) -> User | None:
    result = await session.execute(
        select(User).where(User.username == username)
    )
    user = result.scalar_one_or_none()
    logger.info(f"Lookup of {username}: {user.status.value if user else 'unknown'}")
    return user

# --- bcrypt-хеш; сам пароль нигде не хранится ---
def hash_password(password: str) -> str:
    return bcrypt.hash(password)

# --- Сверка пароля с хешем (сравнение внутри passlib) ---
def verify_password(user: User, password: str) -> bool:
    ok = bcrypt.verify(password, user.password_hash)
    if not ok:
        logger.info(f"Password mismatch for {user.username}")
    return ok

# --- Создание нового пользователя ---
async def create_user(
    session: AsyncSession,
    username: str,
    password: str
) -> User:
    logger.info(f"Creating new user: {username}")
    if await get_user_by_username(session, username) is not None:
        raise DuplicateKeyError(f"username {username} already exists")
    user = User(
        username=username,
        password_hash=hash_password(password),
        status=UserStatus.OFFLINE
    )
    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        # Параллельная регистрация того же имени
        await session.rollback()
        raise DuplicateKeyError(f"username {username} already exists")
    logger.info(f"User created: {username}")
    return user

# --- Смена статуса ONLINE/OFFLINE ---
async def set_status(
    session: AsyncSession,
    username: str,
    status: UserStatus
) -> None:
    logger.info(f"Setting status of {username} to {status.value}")
    await session.execute(
        update(User).where(User.username == username).values(status=status)
    )

# --- Список пользователей ---
async def list_users(session: AsyncSession) -> list[User]:
    result = await session.execute(select(User).order_by(asc(User.username)))
    users = result.scalars().all()
    logger.info(f"Fetched {len(users)} users")
    return users
