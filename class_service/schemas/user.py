from enum import Enum

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    SOCIO = "socio"
    MONITOR = "monitor"
    ADMIN = "admin"


class AuthenticatedUser(BaseModel):
    """Identidad verificada por el servicio de autenticación."""
    id: str
    role: UserRole
    name: str
    email: str = ""
    is_active: bool = True
    # El token se reenvía a los servicios colaboradores; nunca se serializa
    token: str = Field("", repr=False, exclude=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
