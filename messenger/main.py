import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config
from .errors import ChatError
from .router import router, lifespan_context

logger = logging.getLogger(__name__)


# Ошибки предметной области -> {"error": ...} с нужным статусом
async def chat_error_handler(request: Request, exc: ChatError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code, content={"error": exc.message}
    )

# Некорректное тело запроса -> 400, а не 422
async def validation_error_handler(
    request: Request, exc: RequestValidationError
):
    errors = exc.errors()
    field = ".".join(str(p) for p in errors[0]["loc"][1:]) if errors else ""
    message = f"invalid input: {field}" if field else "invalid input"
    logger.info(f"{request.method} {request.url.path} -> 400: {message}")
    return JSONResponse(status_code=400, content={"error": message})

async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} failed")
    return JSONResponse(
        status_code=500, content={"error": "Internal Server Error"}
    )


def create_app(database_url: str | None = None) -> FastAPI:
    logging.basicConfig(level=config.LOG_LEVEL)
    # Создаём экземпляр FastAPI и передаём ему lifespan-контекст
    app = FastAPI(lifespan=lifespan_context)
    app.state.database_url = database_url or config.DATABASE_URL
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ChatError, chat_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    # Подключаем маршруты из router.py
    app.include_router(router)
    return app


app = create_app()
