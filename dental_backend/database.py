from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


Base = declarative_base()


def build_engine(database_url: str) -> Engine:
    if not database_url.startswith('sqlite'):
        return create_engine(database_url)

    engine_options = {'connect_args': {'check_same_thread': False}}
    # In-memory databases live in a single connection shared by all threads.
    if database_url in {'sqlite://', 'sqlite:///:memory:'}:
        engine_options['poolclass'] = StaticPool
    return create_engine(database_url, **engine_options)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
