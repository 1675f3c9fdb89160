import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from salescrm.core.config import settings
from salescrm.core.database import engine, Base
from salescrm.core.exceptions import AppError, app_error_handler, request_validation_handler
from salescrm.api import api_router
import salescrm.models  # noqa: F401  регистрирует модели в Base.metadata

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Для dev-баз создаем таблицы; в production схемой управляет Alembic
    Base.metadata.create_all(bind=engine)
    logger.info("Sales CRM API started")
    yield


app = FastAPI(
    title="Sales CRM API",
    description="API для учета сделок, возвратов и планов продаж",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

app.include_router(api_router)


@app.get("/")
def root():
    return {"message": "Sales CRM API", "version": "1.0.0"}


@app.get("/health")
def health():
    return {"status": "ok"}
