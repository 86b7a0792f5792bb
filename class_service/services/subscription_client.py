"""
Cliente del servicio de pagos para comprobar suscripciones activas.

Usado antes de crear una reserva. Cualquier fallo del servicio de pagos
(timeout, error de red, 5xx o respuesta mal formada) se traduce en
ServiceUnavailableError: la reserva se deniega, nunca se concede por defecto.
"""
from typing import Optional
import logging

import httpx

from class_service.core.config import get_settings
from class_service.core.exceptions import ServiceUnavailableError

logger = logging.getLogger(__name__)


class SubscriptionClient:
    """
    Consulta ``GET /api/payments/me/active`` con el token del usuario.

    La respuesta esperada es ``{"success": true, "data": {"hasActiveSubscription": bool}}``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.PAYMENT_SERVICE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.EXTERNAL_SERVICE_TIMEOUT_SECONDS
        self.transport = transport

    async def has_active_subscription(self, token: str) -> bool:
        """
        Indica si el dueño del token tiene una suscripción activa.

        Raises:
            ServiceUnavailableError: Si el servicio de pagos no da una respuesta válida
        """
        url = f"{self.base_url}/api/payments/me/active"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as e:
            logger.error(f"Servicio de pagos no disponible ({type(e).__name__}): {e}")
            raise ServiceUnavailableError(
                "No se pudo verificar la suscripción. Por favor, intenta más tarde."
            ) from e

        if response.status_code != 200:
            logger.error(f"Servicio de pagos respondió {response.status_code} al verificar suscripción")
            raise ServiceUnavailableError(
                "No se pudo verificar la suscripción. Por favor, intenta más tarde."
            )

        try:
            payload = response.json()
            has_subscription = payload["data"]["hasActiveSubscription"]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Respuesta inesperada del servicio de pagos: {e}")
            raise ServiceUnavailableError(
                "No se pudo verificar la suscripción. Por favor, intenta más tarde."
            ) from e

        if not isinstance(has_subscription, bool):
            logger.error(f"hasActiveSubscription no es booleano: {has_subscription!r}")
            raise ServiceUnavailableError(
                "No se pudo verificar la suscripción. Por favor, intenta más tarde."
            )
        return has_subscription


subscription_client = SubscriptionClient()
