import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

# Importar la función de configuración de logging
from class_service.core.logging_config import setup_logging

# Llamar a la configuración de logging ANTES de importar/crear otros elementos
setup_logging()

# Ahora importar el resto
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from class_service.api.v1.api import api_router
from class_service.core.config import get_settings
from class_service.core.exceptions import register_exception_handlers
from class_service.core.scheduler import init_scheduler, shutdown_scheduler
from class_service.db.init_db import create_tables
from class_service.db.redis_client import initialize_redis_pool, close_redis_client
from class_service.db.session import get_async_db
from class_service.middleware.timing import TimingMiddleware

logger = logging.getLogger(__name__)

# Obtener la instancia de configuración al inicio del módulo
settings_instance = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Lifespan: Startup iniciado...")

    await create_tables()
    logger.info("Lifespan: Tablas de base de datos listas.")

    # Redis es opcional: sin pool se verifica cada token contra el servicio de autenticación
    pool = await initialize_redis_pool()
    logger.info(f"Lifespan: Cache de identidades {'activa' if pool else 'desactivada'}.")

    app.state.scheduler = init_scheduler()

    yield  # Aplicación en ejecución

    logger.info("Lifespan: Shutdown iniciado...")
    shutdown_scheduler()
    await close_redis_client()


app = FastAPI(
    title=settings_instance.PROJECT_NAME,
    description=settings_instance.PROJECT_DESCRIPTION,
    version=settings_instance.VERSION,
    openapi_url=f"{settings_instance.API_V1_STR}/openapi.json",
    docs_url=f"{settings_instance.API_V1_STR}/docs",
    redoc_url=f"{settings_instance.API_V1_STR}/redoc",
    lifespan=lifespan,
)

register_exception_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"Middleware: Recibida petición: {request.method} {request.url.path}")
    if settings_instance.DEBUG_MODE:
        # Sanitizar headers antes de loguear para evitar fuga de secretos
        headers_dict = dict(request.headers)
        auth_header = headers_dict.get("authorization")
        if auth_header:
            if auth_header.startswith("Bearer "):
                token = auth_header[7:]
                headers_dict["authorization"] = f"Bearer ****{token[-6:]}" if len(token) > 6 else "Bearer ****"
            else:
                headers_dict["authorization"] = "***masked***"
        if "cookie" in headers_dict:
            headers_dict["cookie"] = "***masked***"
        logger.debug(f"Middleware: Headers: {headers_dict}")

    response = await call_next(request)

    logger.info(f"Middleware: Enviando respuesta: {response.status_code}")
    return response


app.add_middleware(TimingMiddleware)

# Configurar CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin).rstrip("/") for origin in settings_instance.BACKEND_CORS_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Incluir routers
app.include_router(api_router, prefix=settings_instance.API_V1_STR)


# Ruta raíz
@app.get("/")
def root():
    return {
        "message": "Bienvenido al servicio de clases y reservas",
        "docs": f"{settings_instance.API_V1_STR}/docs",
    }


@app.get("/health")
async def health(db: AsyncSession = Depends(get_async_db)):
    database = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check: base de datos no disponible: {e}")
        database = "unavailable"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "service": settings_instance.PROJECT_NAME,
        "version": settings_instance.VERSION,
        "database": database,
    }


if __name__ == "__main__":
    uvicorn.run("class_service.main:app", host="0.0.0.0", port=8000, reload=settings_instance.DEBUG_MODE)
