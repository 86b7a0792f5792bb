import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from typing import Dict
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from class_service.core.auth import get_current_user
from class_service.core.deps import get_booking_service, get_class_service
from class_service.db.base import Base
from class_service.db.session import get_async_db
from class_service.main import app
from class_service.schemas.gym_class import ClassCreate
from class_service.schemas.user import AuthenticatedUser, UserRole
from class_service.services.booking_lifecycle import BookingLifecycleService
from class_service.services.class_lifecycle import ClassLifecycleService


class FrozenClock:
    """Reloj controlable para los servicios."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# Instante de referencia de los tests de servicio
BASE_NOW = datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc)


def make_user(user_id: str, role: UserRole, name: str = None) -> AuthenticatedUser:
    return AuthenticatedUser(
        id=user_id,
        role=role,
        name=name or f"Usuario {user_id}",
        email=f"{user_id}@gym.test",
        token=f"token-{user_id}",
    )


def class_payload(**overrides) -> ClassCreate:
    data = {
        "name": "Spinning",
        "description": "Clase de ciclo indoor",
        "schedule": datetime(2030, 1, 10, 10, 0, tzinfo=timezone.utc),
        "duration": 60,
        "max_participants": 10,
        "room": "Sala 1",
    }
    data.update(overrides)
    return ClassCreate(**data)


async def _create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# --- Base de datos ---

@pytest.fixture
async def engine(tmp_path):
    """
    SQLite en fichero por test: cada sesión obtiene su propia conexión, lo
    que permite probar escrituras concurrentes.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'class_service_test.db'}",
        connect_args={"timeout": 30},
    )
    await _create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# --- Usuarios ---

@pytest.fixture
def monitor():
    return make_user("monitor-1", UserRole.MONITOR, "Marta Monitor")


@pytest.fixture
def other_monitor():
    return make_user("monitor-2", UserRole.MONITOR, "Mario Monitor")


@pytest.fixture
def admin():
    return make_user("admin-1", UserRole.ADMIN, "Ana Admin")


@pytest.fixture
def socio():
    return make_user("socio-1", UserRole.SOCIO, "Sergio Socio")


@pytest.fixture
def other_socio():
    return make_user("socio-2", UserRole.SOCIO, "Sonia Socia")


# --- Servicios ---

@pytest.fixture
def clock():
    return FrozenClock(BASE_NOW)


@pytest.fixture
def subscription_checker():
    checker = AsyncMock()
    checker.has_active_subscription.return_value = True
    return checker


@pytest.fixture
def user_directory():
    directory = AsyncMock()
    directory.get_email_map.return_value = {}
    return directory


@pytest.fixture
def class_lifecycle(clock):
    return ClassLifecycleService(clock=clock)


@pytest.fixture
def booking_lifecycle(clock, subscription_checker, user_directory, class_lifecycle):
    return BookingLifecycleService(
        subscriptions=subscription_checker,
        user_directory=user_directory,
        classes=class_lifecycle,
        clock=clock,
        cancellation_cutoff=timedelta(minutes=60),
    )


# --- API ---

@pytest.fixture
def api_engine(tmp_path):
    """
    Engine sin pool para la API: TestClient ejecuta cada request en su propio
    event loop y las conexiones aiosqlite no se pueden compartir entre loops.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'class_service_api.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    asyncio.run(_create_schema(engine))
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def current_user_holder() -> Dict[str, AuthenticatedUser]:
    return {}


@pytest.fixture
def client(api_engine, current_user_holder, subscription_checker, user_directory):
    """
    Cliente de prueba con la base de datos, el usuario y los colaboradores sustituidos.

    El usuario autenticado se elige con ``current_user_holder["user"] = ...``.
    """
    session_local = async_sessionmaker(api_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    async def override_get_async_db():
        async with session_local() as session:
            yield session

    def override_get_current_user() -> AuthenticatedUser:
        return current_user_holder["user"]

    classes = ClassLifecycleService()
    bookings = BookingLifecycleService(
        subscriptions=subscription_checker,
        user_directory=user_directory,
        classes=classes,
    )

    app.dependency_overrides[get_async_db] = override_get_async_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_class_service] = lambda: classes
    app.dependency_overrides[get_booking_service] = lambda: bookings

    yield TestClient(app)

    app.dependency_overrides.clear()
