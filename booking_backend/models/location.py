"""Location model definitions."""

from sqlalchemy import Column, Integer, String
from booking_backend.database import Base


class Location(Base):
    """Represents a named pickup location."""
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, index=True, nullable=False)
    street = Column(String, nullable=True)
    house_number = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    city = Column(String, nullable=True)

    def format_address(self) -> str:
        street_line = " ".join(part for part in (self.street, self.house_number) if part)
        city_line = " ".join(part for part in (self.postal_code, self.city) if part)
        address = ", ".join(part for part in (street_line, city_line) if part)
        return f"{self.name}, {address}" if address else self.name
