import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from questbot.achievements import AchievementEvaluator
from questbot.catalog import StoryCatalog
from questbot.config import Config, load_config
from questbot.engine import ChoiceProcessor
from questbot.errors import (
    CatalogError,
    InvalidChoice,
    NoSuchUser,
    NotFound,
    PersistenceUnavailable,
    QuestBotError,
    RequirementUnmet,
)
from questbot.ranking import RankCalculator
from questbot.routes import router
from questbot.storage import JsonStorage, Persistence
from questbot.transport import HttpTransport, NullTransport, Transport

logger = logging.getLogger(__name__)

ERROR_STATUS: list[tuple[type[QuestBotError], int]] = [
    (NoSuchUser, 404),
    (InvalidChoice, 409),
    (RequirementUnmet, 409),
    (NotFound, 500),
    (CatalogError, 500),
    (PersistenceUnavailable, 503),
]
RETRY_AFTER_SECONDS = 1


async def _engine_error(request: Request, exc: QuestBotError) -> JSONResponse:
    status = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        {"detail": str(exc), "error": type(exc).__name__, "retryable": exc.retryable},
        status_code=status,
        headers=headers,
    )


def create_app(
    config: Config | None = None,
    *,
    storage: Persistence | None = None,
    catalog: StoryCatalog | None = None,
    transport: Transport | None = None,
) -> FastAPI:
    """Wire the engine and its collaborators; explicit arguments override config.

    The story is loaded (and integrity-checked) here, so a broken story
    fails the process at startup rather than on the first request.
    """
    config = config or load_config()
    catalog = catalog or StoryCatalog.load(config.story_file)
    storage = storage or JsonStorage(config.data_dir, config.presets_dir)
    if transport is None:
        transport = (
            HttpTransport(config.transport_url, config.transport_api_key, config.transport_timeout)
            if config.transport_url else NullTransport()
        )

    app = FastAPI(title="Quest Bot")
    app.state.storage = storage
    app.state.transport = transport
    app.state.ranks = RankCalculator(storage)
    app.state.engine = ChoiceProcessor(
        catalog,
        storage,
        AchievementEvaluator(storage),
        timeout=config.persistence_timeout or None,
    )
    app.add_exception_handler(QuestBotError, _engine_error)
    app.include_router(router, prefix="/api")
    return app
