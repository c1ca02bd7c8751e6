import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from admissions_backend.core import config
from admissions_backend.core.errors import DomainError
from admissions_backend.database import Base, engine, ensure_booking_schema
from admissions_backend.models import appointment, schedule, student, user  # noqa: F401
from admissions_backend.routes import (
    appointment_routes,
    auth_routes,
    schedule_routes,
    student_routes,
    user_routes,
)
from admissions_backend.routes.common import DATABASE_UNAVAILABLE_DETAIL

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
)

config.validate_runtime_config()

app = FastAPI(title='Admissions Consulting API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.CORS_ORIGIN],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'success': False, 'message': message})


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else 'Request failed'
    return _error_response(exc.status_code, message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get('msg', 'Invalid request') if errors else 'Invalid request'
    return _error_response(400, message)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Database error while handling %s %s', request.method, request.url.path)
    return _error_response(503, DATABASE_UNAVAILABLE_DETAIL)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('Unhandled error while handling %s %s', request.method, request.url.path)
    return _error_response(500, 'Internal server error')


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_booking_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/health')
def health():
    return {'success': True, 'message': 'Admissions Consulting API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(user_routes.router, prefix='/api/users')
app.include_router(student_routes.router, prefix='/api/students')
app.include_router(schedule_routes.router, prefix='/api/schedules')
app.include_router(appointment_routes.router, prefix='/api/appointments')
