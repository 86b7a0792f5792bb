"""
Base repository async para operaciones CRUD genéricas.
"""
from typing import TypeVar, Generic, Optional, List, Dict, Any, Type, Union
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel
import logging

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType")
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


class AsyncBaseRepository(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    """
    Repositorio base con operaciones CRUD async sobre un modelo SQLAlchemy.

    Los métodos hacen flush pero nunca commit: la transacción pertenece al
    servicio que orquesta la operación. Las lecturas usan ``populate_existing``
    para que los objetos del identity map reflejen los UPDATE masivos hechos
    con ``synchronize_session=False``.
    """

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def _known_fields(self, data: Union[BaseModel, Dict[str, Any]], operation: str) -> Dict[str, Any]:
        if not isinstance(data, dict):
            data = data.model_dump(exclude_unset=True)
        known = {}
        for field, value in data.items():
            if hasattr(self.model, field):
                known[field] = value
            else:
                logger.warning(f"Campo ignorado en {operation}: {self.model.__name__} no tiene '{field}'")
        return known

    async def get(self, db: AsyncSession, id: Any) -> Optional[ModelType]:
        """Objeto por ID, o None si no existe."""
        stmt = select(self.model).where(self.model.id == id).execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_multi(
        self,
        db: AsyncSession,
        *,
        skip: int = 0,
        limit: Optional[int] = None,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[List[Any]] = None
    ) -> List[ModelType]:
        """
        Listado con filtros de igualdad opcionales.

        Args:
            filters: ``{campo: valor}``; los valores None se ignoran
            order_by: Expresiones de ordenación

        Example:
            bookings = await async_booking_repository.get_multi(
                db,
                filters={"status": BookingStatus.CONFIRMED},
                order_by=[Booking.booking_date.desc()]
            )
        """
        stmt = select(self.model).execution_options(populate_existing=True)

        active_filters = {k: v for k, v in (filters or {}).items() if v is not None}
        for field, value in self._known_fields(active_filters, "filtro").items():
            stmt = stmt.where(getattr(self.model, field) == value)

        if order_by:
            stmt = stmt.order_by(*order_by)
        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def create(
        self,
        db: AsyncSession,
        *,
        obj_in: Union[CreateSchemaType, Dict[str, Any]]
    ) -> ModelType:
        """Insertar y devolver el objeto con su ID asignado."""
        db_obj = self.model(**self._known_fields(obj_in, "create"))
        db.add(db_obj)
        await db.flush()
        await db.refresh(db_obj)
        return db_obj

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: Union[UpdateSchemaType, Dict[str, Any]]
    ) -> ModelType:
        for field, value in self._known_fields(obj_in, "update").items():
            setattr(db_obj, field, value)
        db.add(db_obj)
        await db.flush()
        await db.refresh(db_obj)
        return db_obj

    async def remove(self, db: AsyncSession, *, db_obj: ModelType) -> ModelType:
        await db.delete(db_obj)
        await db.flush()
        return db_obj
