# Importar todos los modelos para que create_all los registre en Base.metadata
from class_service.db.base_class import Base  # noqa
from class_service.models.gym_class import GymClass  # noqa
from class_service.models.booking import Booking  # noqa
