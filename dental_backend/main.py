import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from dental_backend.core import config
from dental_backend.database import Base, build_engine, build_session_factory
from dental_backend.models import appointment, patient, user  # noqa: F401  (register tables)
from dental_backend.routes import appointment_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)


def initialize_database(engine: Engine) -> None:
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


def validation_error_detail(errors: list[dict]) -> str:
    for error in errors:
        if error.get('type') == 'missing':
            return appointment_routes.MISSING_FIELDS_DETAIL

    for error in errors:
        cause = (error.get('ctx') or {}).get('error')
        if cause is not None:
            return str(cause)

    if errors:
        return str(errors[0].get('msg', 'Solicitud inválida'))
    return 'Solicitud inválida'


def create_app(database_url: str | None = None) -> FastAPI:
    config.validate_runtime_config()

    engine = build_engine(database_url or config.DATABASE_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        initialize_database(engine)
        yield
        engine.dispose()

    app = FastAPI(title='Dental Agenda API', lifespan=lifespan)
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        detail = validation_error_detail(exc.errors())
        logger.warning('Validation error for %s: %s', request.url.path, detail)
        return JSONResponse(status_code=400, content={'detail': detail})

    @app.get('/')
    def root():
        return {'status': 'Dental Agenda API Running'}

    app.include_router(appointment_routes.router, prefix='/api')

    return app


app = create_app()
