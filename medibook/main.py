import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from medibook.core import config
from medibook.database import Base, engine, ensure_appointment_schema, ensure_booked_slot_schema
from medibook.models import appointment, booked_slot, doctor, user  # noqa: F401
from medibook.routes import appointment_routes, auth_routes, doctor_routes

config.validate_runtime_config()

app = FastAPI(title='MediBook API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
        ensure_booked_slot_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'MediBook API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(doctor_routes.router, prefix='/doctors')
