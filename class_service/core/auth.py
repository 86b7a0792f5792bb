"""
Autenticación y control de roles.

La identidad se verifica siempre contra el servicio de autenticación. El
resultado se cachea dentro del request (``request.state``) y, si Redis está
disponible, durante IDENTITY_CACHE_TTL_SECONDS bajo un hash SHA-256 del token.
"""
from typing import Callable, Optional
import hashlib
import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError as PydanticValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from class_service.core.config import get_settings
from class_service.core.exceptions import AuthenticationError, ForbiddenError
from class_service.db.redis_client import get_redis_client
from class_service.schemas.user import AuthenticatedUser, UserRole
from class_service.services.identity_client import IdentityClient, identity_client

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_identity_client() -> IdentityClient:
    return identity_client


def identity_cache_key(token: str) -> str:
    return f"identity:{hashlib.sha256(token.encode('utf-8')).hexdigest()}"


async def _read_cached_identity(redis: Redis, token: str) -> Optional[AuthenticatedUser]:
    try:
        raw = await redis.get(identity_cache_key(token))
    except RedisError as e:
        logger.warning(f"Cache de identidades no disponible: {e}")
        return None
    if not raw:
        return None
    try:
        user = AuthenticatedUser.model_validate_json(raw)
    except PydanticValidationError:
        logger.warning("Entrada de cache de identidad inválida, se ignora")
        return None
    return user.model_copy(update={"token": token})


async def _store_cached_identity(redis: Redis, user: AuthenticatedUser, ttl: int) -> None:
    try:
        await redis.set(identity_cache_key(user.token), user.model_dump_json(), ex=ttl)
    except RedisError as e:
        logger.warning(f"No se pudo guardar la identidad en cache: {e}")


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    redis: Optional[Redis] = Depends(get_redis_client),
    client: IdentityClient = Depends(get_identity_client),
) -> AuthenticatedUser:
    """
    Dependencia FastAPI que devuelve el usuario autenticado.

    Orden de búsqueda: cache del request, cache Redis y servicio de autenticación.

    Raises:
        AuthenticationError: Sin token o token rechazado
        ForbiddenError: Usuario desactivado
        ServiceUnavailableError: El servicio de autenticación no responde
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("No se proporcionó token de autenticación")
    token = credentials.credentials

    user = getattr(request.state, "current_user", None)
    if user is None or user.token != token:
        settings = get_settings()
        ttl = settings.IDENTITY_CACHE_TTL_SECONDS
        user = None
        if redis is not None and ttl > 0:
            user = await _read_cached_identity(redis, token)
            if user is not None:
                logger.debug(f"Identidad de {user.id} obtenida de cache")
        if user is None:
            user = await client.verify_token(token)
            if redis is not None and ttl > 0:
                await _store_cached_identity(redis, user, ttl)
        request.state.current_user = user

    if not user.is_active:
        raise ForbiddenError("Usuario desactivado")
    return user


def require_roles(*roles: UserRole) -> Callable:
    """
    Dependencia que exige uno de los roles indicados.

    Uso:
        @router.post("/", dependencies=[Depends(require_roles(UserRole.MONITOR, UserRole.ADMIN))])
    """
    allowed = set(roles)

    async def role_checker(current_user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if current_user.role not in allowed:
            logger.info(
                f"Usuario {current_user.id} con rol {current_user.role.value} "
                f"sin permiso (requiere {[r.value for r in roles]})"
            )
            raise ForbiddenError(
                f"Acceso denegado. Se requiere rol: {', '.join(r.value for r in roles)}"
            )
        return current_user

    return role_checker
