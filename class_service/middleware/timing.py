import time
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp
import logging

logger = logging.getLogger("timing_middleware")


class TimingMiddleware(BaseHTTPMiddleware):
    """
    Middleware que mide el tiempo de respuesta de cada solicitud y lo expone
    en la cabecera X-Process-Time. Las solicitudes lentas se registran como WARNING.
    """

    def __init__(self, app: ASGIApp, slow_threshold_ms: float = 700.0):
        super().__init__(app)
        self.slow_threshold_ms = slow_threshold_ms

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = (time.perf_counter() - start_time) * 1000  # En milisegundos

        response.headers["X-Process-Time"] = f"{process_time:.2f}ms"

        # Plantilla de la ruta (/classes/{class_id}) en lugar de la URL con IDs
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        if process_time > self.slow_threshold_ms:
            logger.warning(
                f"SLOW {request.method} {endpoint} -> {response.status_code} en {process_time:.2f}ms"
            )
        else:
            logger.debug(f"{request.method} {endpoint} -> {response.status_code} en {process_time:.2f}ms")

        return response
