from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from mailrelay.core.config import get_settings

_engine: Engine | None = None
_session_local: sessionmaker | None = None


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        settings = get_settings()
        dsn = settings.database_dsn
        is_sqlite = dsn.startswith('sqlite')
        connect_args = {'check_same_thread': False} if is_sqlite else {}
        engine_kwargs: dict = {'pool_pre_ping': True, 'connect_args': connect_args}
        if is_sqlite and dsn in {'sqlite://', 'sqlite:///:memory:'}:
            # In-memory databases vanish with their connection; share one.
            engine_kwargs['poolclass'] = StaticPool
        elif is_sqlite and settings.app_env.lower() == 'test':
            engine_kwargs['poolclass'] = NullPool
        _engine = create_engine(dsn, **engine_kwargs)
    return _engine


def get_session_local() -> sessionmaker:
    global _session_local
    if _session_local is None:
        _session_local = sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, class_=Session)
    return _session_local


class _SessionLocalProxy:
    def __call__(self, *args, **kwargs) -> Session:
        return get_session_local()(*args, **kwargs)


SessionLocal = _SessionLocalProxy()


def create_schema() -> None:
    from mailrelay.db.base import Base
    import mailrelay.models  # noqa: F401

    Base.metadata.create_all(bind=get_engine())

