class ChatError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


# Отсутствующие или некорректные поля запроса
class ValidationError(ChatError):
    status_code = 400


# Неизвестный пользователь, группа или получатель
class NotFoundError(ChatError):
    status_code = 404


# Неверные учётные данные или токен
class AuthError(ChatError):
    status_code = 401


# Имя пользователя уже занято
class DuplicateKeyError(ChatError):
    status_code = 400
