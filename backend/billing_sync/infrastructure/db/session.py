from functools import lru_cache
from time import perf_counter

from sqlalchemy import create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from billing_sync.core.config import settings
from billing_sync.infrastructure.observability.metrics import observe_db_query


def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault("query_started_at_stack", []).append(perf_counter())


def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    stack = conn.info.get("query_started_at_stack", [])
    if not stack:
        return
    started_at = stack.pop(-1)
    observe_db_query(perf_counter() - started_at, operation="sync_sql")


def instrument_engine(engine: Engine) -> Engine:
    event.listen(engine, "before_cursor_execute", _before_cursor_execute)
    event.listen(engine, "after_cursor_execute", _after_cursor_execute)
    return engine


def build_engine(database_uri: str, **engine_kwargs) -> Engine:
    engine_kwargs.setdefault("pool_pre_ping", True)
    return instrument_engine(create_engine(database_uri, **engine_kwargs))


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker[Session]:
    return build_session_factory(build_engine(settings.sqlalchemy_database_uri))

