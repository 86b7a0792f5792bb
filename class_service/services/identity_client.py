"""
Cliente del servicio de autenticación para verificar tokens.

El servicio de clases no valida tokens por sí mismo: reenvía el bearer a
``GET /api/auth/profile`` y confía en la identidad y el rol que devuelve.
"""
from typing import Optional
import logging

import httpx
from pydantic import ValidationError as PydanticValidationError

from class_service.core.config import get_settings
from class_service.core.exceptions import AuthenticationError, ServiceUnavailableError
from class_service.schemas.user import AuthenticatedUser

logger = logging.getLogger(__name__)


class IdentityClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.AUTH_SERVICE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.EXTERNAL_SERVICE_TIMEOUT_SECONDS
        self.transport = transport

    async def verify_token(self, token: str) -> AuthenticatedUser:
        """
        Verifica el token contra el servicio de autenticación.

        Returns:
            AuthenticatedUser con id, rol, nombre, email y estado

        Raises:
            AuthenticationError: Token rechazado (401/403 o success=false)
            ServiceUnavailableError: El servicio no respondió o respondió 5xx
        """
        url = f"{self.base_url}/api/auth/profile"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as e:
            logger.error(f"Servicio de autenticación no disponible ({type(e).__name__}): {e}")
            raise ServiceUnavailableError("Servicio de autenticación no disponible") from e

        if response.status_code in (401, 403):
            raise AuthenticationError()
        if response.status_code >= 500:
            logger.error(f"Servicio de autenticación respondió {response.status_code}")
            raise ServiceUnavailableError("Servicio de autenticación no disponible")

        try:
            payload = response.json()
        except ValueError as e:
            logger.error(f"Respuesta no JSON del servicio de autenticación: {e}")
            raise ServiceUnavailableError("Servicio de autenticación no disponible") from e

        if response.status_code != 200 or not isinstance(payload, dict) or not payload.get("success"):
            raise AuthenticationError()

        data = payload.get("data") or {}
        user_id = data.get("_id") or data.get("id")
        if not user_id:
            raise AuthenticationError("Perfil de usuario inválido")
        try:
            return AuthenticatedUser(
                id=str(user_id),
                role=data.get("role"),
                name=data.get("name") or "",
                email=data.get("email") or "",
                is_active=data.get("isActive", True),
                token=token,
            )
        except PydanticValidationError as e:
            logger.warning(f"Perfil de usuario inválido devuelto por el servicio de autenticación: {e}")
            raise AuthenticationError("Perfil de usuario inválido") from e


identity_client = IdentityClient()
