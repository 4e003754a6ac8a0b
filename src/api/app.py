"""FastAPI-транспорт control surface: команды, healthcheck, поток событий."""
import hmac
import time
from collections import defaultdict
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger

from src.api.commands import handle_command
from src.api.schemas import HealthResponse
from src.config import Settings
from src.worker.loop import TaskManager

security = HTTPBearer(auto_error=False)

# Rate limiting: sliding window per IP
RATE_LIMIT_MAX_REQUESTS = 120
RATE_LIMIT_WINDOW_SECONDS = 60

WS_POLICY_VIOLATION = 1008


def _key_matches(provided: str | None, expected: str) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided, expected)


def create_app(manager: TaskManager, settings: Settings) -> FastAPI:
    """Создать FastAPI-приложение поверх уже созданного TaskManager."""
    app = FastAPI(title="Design Extractor API", version="0.1.0")

    app.state.manager = manager
    app.state.settings = settings
    rate_limit_store: dict[str, list[float]] = defaultdict(list)

    async def check_rate_limit(request: Request) -> None:
        """Простой in-memory rate limiter: sliding window per IP."""
        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        window_start = now - RATE_LIMIT_WINDOW_SECONDS

        timestamps = [t for t in rate_limit_store[client_ip] if t > window_start]
        if len(timestamps) >= RATE_LIMIT_MAX_REQUESTS:
            rate_limit_store[client_ip] = timestamps
            raise HTTPException(status_code=429, detail="Rate limit exceeded")
        timestamps.append(now)
        rate_limit_store[client_ip] = timestamps

        # Периодическая очистка стухших IP
        if len(rate_limit_store) > 100:
            stale_ips = [
                ip for ip, ts in rate_limit_store.items()
                if not ts or ts[-1] <= window_start
            ]
            for ip in stale_ips:
                del rate_limit_store[ip]

    async def verify_api_key(
        credentials: HTTPAuthorizationCredentials | None = Depends(security),
    ) -> None:
        """Проверка API-ключа."""
        expected = settings.control_api_key.get_secret_value()
        provided = credentials.credentials if credentials is not None else None
        if not _key_matches(provided, expected):
            raise HTTPException(status_code=401, detail="Invalid API key")

    @app.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Healthcheck — без авторизации."""
        state = manager.queue_state()
        return HealthResponse(
            status="paused" if state.paused else "ok",
            paused=state.paused,
            running=state.running,
            queue_length=state.queue_length,
            tasks_total=manager.tasks.stats().total,
            subscribers=manager.events.subscriber_count,
        )

    @app.post(
        "/api/commands",
        dependencies=[Depends(check_rate_limit), Depends(verify_api_key)],
    )
    async def commands(message: dict[str, Any] = Body(...)) -> dict[str, Any]:
        """Одна команда control surface. Ответ всегда 200 с полем success."""
        return await handle_command(manager, message)

    @app.websocket("/api/events")
    async def events(websocket: WebSocket) -> None:
        """Поток TASKS_UPDATED. Ключ — в заголовке Authorization или ?token=."""
        header = websocket.headers.get("authorization", "")
        provided = header.removeprefix("Bearer ").strip() or websocket.query_params.get("token")
        if not _key_matches(provided, settings.control_api_key.get_secret_value()):
            await websocket.close(code=WS_POLICY_VIOLATION)
            return

        await websocket.accept()
        queue = manager.events.subscribe()
        logger.debug(f"[api] Event subscriber connected ({manager.events.subscriber_count} total)")
        try:
            while True:
                event = await queue.get()
                await websocket.send_json(event)
        except WebSocketDisconnect:
            pass
        finally:
            manager.events.unsubscribe(queue)
            logger.debug("[api] Event subscriber disconnected")

    return app
