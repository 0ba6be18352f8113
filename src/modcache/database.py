import logging
from collections.abc import Generator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine, text

from modcache.config import settings

logger = logging.getLogger(__name__)


def _set_sqlite_pragma(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def install_pragmas(target: Engine) -> None:
    """Enable foreign keys on every new connection of ``target``."""
    event.listen(target, "connect", _set_sqlite_pragma)


settings.db_path.parent.mkdir(parents=True, exist_ok=True)
engine = create_engine(
    f"sqlite:///{settings.db_path}",
    echo=False,
    connect_args={"timeout": 30, "check_same_thread": False},
)
install_pragmas(engine)


def create_db_and_tables() -> None:
    SQLModel.metadata.create_all(engine)
    with engine.connect() as conn:
        conn.execute(text("PRAGMA journal_mode=WAL"))
        conn.commit()
    logger.info("Database ready at %s", settings.db_path)


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
