import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from therapy_backend.core import config
from therapy_backend.database import Base, engine, ensure_availability_schema, ensure_session_schema
from therapy_backend.models import availability, credit, session, user  # noqa: F401
from therapy_backend.routes import availability_routes, session_routes

logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

app = FastAPI(title='Therapy Booking API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
        ensure_session_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and Postgres credentials.')


@app.get('/')
def root():
    return {'status': 'Therapy Booking API Running'}


app.include_router(availability_routes.router, prefix='/availability')
app.include_router(session_routes.router, prefix='/sessions')
