import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.database import engine, ensure_account_schema
from backend.models import account, student, teacher
from backend.routes import admin_routes, auth_routes, link_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=config.CORS_ALLOW_CREDENTIALS,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        account.Base.metadata.create_all(bind=engine)
        student.Base.metadata.create_all(bind=engine)
        teacher.Base.metadata.create_all(bind=engine)
        ensure_account_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and Postgres credentials.')


@app.get('/')
def root():
    return {'status': 'School Dashboard API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(link_routes.router, prefix='/link')
app.include_router(admin_routes.router, prefix='/admin')
