from typing import Any

from sqlalchemy.orm import DeclarativeBase, declared_attr


class Base(DeclarativeBase):
    id: Any
    __name__: str

    # Generar nombres de tablas automáticamente (GymClass -> gym_class)
    @declared_attr.directive
    def __tablename__(cls) -> str:
        name = cls.__name__
        return "".join(
            "_" + char.lower() if char.isupper() and index else char.lower()
            for index, char in enumerate(name)
        )
