from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from stockflow.app.api.errors import register_exception_handlers
from stockflow.app.api.v1.router import router as v1_router
from stockflow.app.core.config import Settings
from stockflow.app.db.session import Database

logger = logging.getLogger(__name__)


def create_app(database: Database | None = None) -> FastAPI:
    """
    database fourni (tests, scripts) : utilisé tel quel, jamais fermé ici.
    Sinon le lifespan construit le handle depuis l'environnement et le ferme à l'arrêt.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = database is None
        if owned:
            settings = Settings.from_env()
            logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
            app.state.database = Database(settings)
        else:
            app.state.database = database
        logger.info("stockflow started (storage=%s)", app.state.database.dialect)
        try:
            yield
        finally:
            if owned:
                app.state.database.dispose()

    app = FastAPI(title="STOCKFLOW", version="0.1.0", lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(v1_router, prefix="/v1")
    return app


app = create_app()
