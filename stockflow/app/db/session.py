from __future__ import annotations

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from stockflow.app.core.config import Settings


def _enable_sqlite_transactions(engine: Engine, busy_timeout_ms: int) -> None:
    """
    pysqlite n'ouvre pas de transaction sur un SELECT et ne gère pas
    les SAVEPOINT correctement : on reprend la main sur BEGIN.

    BEGIN IMMEDIATE prend le verrou d'écriture dès le début : deux
    transactions d'écriture concurrentes se sérialisent (busy timeout).
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """
    Handle de stockage unique du process.

    Construit explicitement (lifespan FastAPI, scripts, tests) puis injecté
    dans les services. Jamais de singleton au niveau module.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        url = settings.database_url

        connect_args = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = max(settings.lock_timeout_ms, 1) / 1000

        self.engine = create_engine(
            url,
            echo=settings.database_echo,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        if self.dialect == "sqlite":
            _enable_sqlite_transactions(self.engine, settings.lock_timeout_ms)

        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
        )

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def session(self) -> Session:
        return self.SessionLocal()

    def prepare_write(self, session: Session) -> None:
        # Postgres : borne l'attente de verrou ligne (FOR UPDATE) de la transaction
        if self.dialect == "postgresql" and self.settings.lock_timeout_ms:
            session.execute(text(f"SET LOCAL lock_timeout = {int(self.settings.lock_timeout_ms)}"))

    def prepare_snapshot(self, session: Session) -> None:
        # Lecture cohérente à un instant T pour les projections
        if self.dialect == "postgresql":
            session.connection(execution_options={"isolation_level": "REPEATABLE READ"})

    def create_all(self) -> None:
        from stockflow.app.db.base import Base
        from stockflow.app.db.models import models_v1  # noqa: F401  (import for side effects)

        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
