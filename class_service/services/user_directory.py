"""
Cliente del directorio de usuarios del servicio de autenticación.

Solo se usa para añadir el email a los listados de reservas de una clase.
Es best-effort: cualquier fallo se registra como WARNING y devuelve un mapa
vacío, el listado nunca falla por esto.
"""
from typing import Dict, Optional
import logging

import httpx

from class_service.core.config import get_settings

logger = logging.getLogger(__name__)


class UserDirectoryClient:
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

    async def get_email_map(self, token: str) -> Dict[str, str]:
        """
        Mapa ``{user_id: email}`` a partir de ``GET /api/admin/users``.

        Returns:
            Diccionario con los usuarios conocidos; vacío si la consulta falla
        """
        url = f"{self.base_url}/api/admin/users"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, headers={"Authorization": f"Bearer {token}"})
            response.raise_for_status()
            users = response.json().get("data") or []
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning(f"No se pudo obtener el directorio de usuarios: {e}")
            return {}

        email_map: Dict[str, str] = {}
        for user in users:
            if not isinstance(user, dict):
                continue
            user_id = user.get("id") or user.get("_id")
            email = user.get("email")
            if user_id and email:
                email_map[str(user_id)] = email
        return email_map


user_directory_client = UserDirectoryClient()
