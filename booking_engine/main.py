import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from booking_engine.core import config
from booking_engine.database import Base, engine, ensure_scheduling_schema
from booking_engine.models import appointment, appointment_type, availability, blocked_period, user  # noqa: F401
from booking_engine.routes import appointment_routes, availability_routes

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.DEBUG if config.APP_DEBUG else logging.INFO,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )


def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_scheduling_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and Postgres credentials.')


@asynccontextmanager
async def lifespan(_app: FastAPI):
    initialize_database()
    yield


def root():
    return {'status': 'Booking Engine API Running'}


def create_application() -> FastAPI:
    _configure_logging()
    config.validate_runtime_config()

    application = FastAPI(title='Instructor Booking Engine', debug=config.APP_DEBUG, lifespan=lifespan)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
        expose_headers=['ETag'],
    )

    application.add_api_route('/', root, methods=['GET'])
    application.include_router(availability_routes.router, prefix='/availability')
    application.include_router(appointment_routes.router, prefix='/appointments')
    return application


app = create_application()
