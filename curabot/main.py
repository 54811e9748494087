import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from curabot.core import config
from curabot.core.context import AppContext, build_context
from curabot.core.logging_config import configure_logging
from curabot.database import ensure_schema
from curabot.routes import (
    admin_routes,
    appointment_routes,
    auth_routes,
    chatbot_routes,
    doctor_routes,
    schedule_routes,
)

logger = logging.getLogger(__name__)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={'message': message}, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = '.'.join(str(part) for part in first.get('loc', ()) if part != 'body')
    message = first.get('msg', 'Invalid request')
    if location:
        message = f'{location}: {message}'
    return JSONResponse(status_code=400, content={'message': message})


def create_app(context: AppContext | None = None) -> FastAPI:
    configure_logging()
    config.validate_runtime_config()

    app = FastAPI(title='CuraBot API')
    app.state.context = context or build_context()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    @app.on_event('startup')
    def initialize_database() -> None:
        try:
            ensure_schema(app.state.context.engine)
        except SQLAlchemyError as exc:
            logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')
            raise RuntimeError('Cannot connect to the database') from exc
        logger.info('CuraBot connected to database, LLM configured: %s', app.state.context.llm.is_configured)

    @app.get('/')
    def root():
        return {'status': 'CuraBot API Running'}

    app.include_router(auth_routes.router, prefix='/api/auth')
    app.include_router(doctor_routes.router, prefix='/api/doctors')
    app.include_router(schedule_routes.router, prefix='/api/schedule')
    app.include_router(appointment_routes.router, prefix='/api/appointments')
    app.include_router(chatbot_routes.router, prefix='/api/ai/chatbot')
    app.include_router(admin_routes.router, prefix='/api/admin')

    return app


app = create_app()
