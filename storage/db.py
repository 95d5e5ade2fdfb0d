# storage/db.py
from pathlib import Path

from sqlmodel import SQLModel, create_engine, Session

from core.settings import DB_PATH

# Ensure SQLModel metadata is populated
import models.mutation_record  # noqa: F401
import models.drain_lease  # noqa: F401
from storage import migrations


def make_engine(path: Path | str):
    return create_engine(f"sqlite:///{Path(path).as_posix()}", echo=False)


_engine = make_engine(DB_PATH)


def init_db(engine=None):
    engine = engine or _engine
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(engine)
    migrations.run_all(engine)


def get_engine():
    return _engine


def get_session() -> Session:
    return Session(_engine)


def session_factory_for(engine):
    def factory() -> Session:
        return Session(engine)

    return factory
