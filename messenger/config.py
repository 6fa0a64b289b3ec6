import os

# База данных
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./messenger.db")
# Render отдаёт postgresql://, для asyncio нужен драйвер asyncpg
if DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace(
        "postgresql://", "postgresql+asyncpg://", 1
    )
DB_ECHO = os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes")

# JWT
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")

# Логирование
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# HTTP
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
_CORS_ORIGINS_RAW = os.getenv("CORS_ORIGINS", "*")
CORS_ORIGINS = [
    origin.strip() for origin in _CORS_ORIGINS_RAW.split(",")
    if origin.strip()
]
