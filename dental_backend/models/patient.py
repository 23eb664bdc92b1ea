"""Patient model definitions."""

from sqlalchemy import Column, String
from dental_backend.database import Base


class Patient(Base):
    """Represents a clinic patient."""
    __tablename__ = "patients"

    id = Column(String, primary_key=True)
    organization_id = Column(String, nullable=False, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    phone = Column(String)
    email = Column(String)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
