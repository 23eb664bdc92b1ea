"""User model definitions."""

from sqlalchemy import Column, String
from dental_backend.database import Base


class User(Base):
    """Represents a staff member of an organization (doctors included)."""
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    organization_id = Column(String, index=True)
    email = Column(String, unique=True, index=True)
    name = Column(String)
    role = Column(String)  # admin/doctor/assistant
    especialidad = Column(String)
