from typing import Optional
from datetime import datetime

from pydantic import BaseModel, Field, computed_field, field_validator

from class_service.core.timezone_utils import utc_now
from class_service.models.gym_class import ClassStatus


def _clean_room(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("La sala es obligatoria")
    return cleaned


class ClassBase(BaseModel):
    name: str = Field(..., min_length=3, max_length=100)
    description: str = Field("", max_length=500)
    schedule: datetime = Field(..., description="Inicio de la clase (ISO 8601). Sin zona horaria se interpreta en la hora del gimnasio")
    duration: int = Field(..., ge=15, le=180, description="Duración en minutos")
    max_participants: int = Field(..., ge=1, le=50)
    room: str = Field(..., max_length=100)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("room")
    @classmethod
    def validate_room(cls, v: str) -> str:
        return _clean_room(v)


class ClassCreate(ClassBase):
    # Solo un admin puede crear clases en nombre de otro monitor
    monitor_id: Optional[str] = None
    monitor_name: Optional[str] = Field(None, max_length=200)


class ClassUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    schedule: Optional[datetime] = None
    duration: Optional[int] = Field(None, ge=15, le=180)
    max_participants: Optional[int] = Field(None, ge=1, le=50)
    room: Optional[str] = Field(None, max_length=100)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("room")
    @classmethod
    def validate_room(cls, v: Optional[str]) -> Optional[str]:
        return _clean_room(v)


class ClassInfo(BaseModel):
    """Resumen de la clase que acompaña a las reservas"""
    id: int
    name: str
    schedule: datetime
    duration: int
    room: str
    monitor_name: str
    status: ClassStatus
    current_participants: int
    max_participants: int

    model_config = {"from_attributes": True}


class GymClass(BaseModel):
    id: int
    name: str
    description: str
    monitor_id: str
    monitor_name: str
    schedule: datetime
    duration: int
    end_time: datetime
    room: str
    max_participants: int
    current_participants: int
    status: ClassStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def available_spots(self) -> int:
        return max(self.max_participants - self.current_participants, 0)

    @computed_field
    @property
    def is_bookable(self) -> bool:
        return (
            self.status == ClassStatus.ACTIVE
            and self.schedule > utc_now()
            and self.current_participants < self.max_participants
        )
