import logging
import secrets
from jose import JWTError, jwt

# Настройка логирования
logger = logging.getLogger(__name__)


# Хранилище токенов сессий: token -> username, живёт в памяти процесса
class SessionStore:
    def __init__(self, secret_key: str, algorithm: str):
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._tokens: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._tokens)

    # Выдача нового токена; jti из secrets исключает коллизии
    def issue(self, username: str) -> str:
        claims = {"sub": username, "jti": secrets.token_urlsafe(16)}
        token = jwt.encode(claims, self._secret_key, algorithm=self._algorithm)
        self._tokens[token] = username
        logger.info(f"Issued session token for {username}")
        return token

    # Имя пользователя по токену или None
    def resolve(self, token: str | None) -> str | None:
        if not isinstance(token, str) or not token:
            return None
        try:
            payload = jwt.decode(
                token, self._secret_key, algorithms=[self._algorithm]
            )
        except JWTError:
            logger.info("Rejected malformed session token")
            return None
        username = self._tokens.get(token)
        if username is None or payload.get("sub") != username:
            return None
        return username

    # Отзыв токена (повторный вызов ничего не делает)
    def revoke(self, token: str) -> None:
        username = self._tokens.pop(token, None)
        if username is not None:
            logger.info(f"Revoked session token for {username}")

    def clear(self) -> None:
        logger.info(f"Dropping {len(self._tokens)} session token(s)")
        self._tokens.clear()
