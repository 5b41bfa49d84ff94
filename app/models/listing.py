from sqlalchemy import Boolean, Column, Integer, JSON, String, Text

from app.database import Base


class ListingRow(Base):
    __tablename__ = "listings"

    id = Column(String, primary_key=True, index=True)
    position = Column(Integer, nullable=False, default=0, index=True)
    version = Column(Integer, nullable=False, default=1)
    brand = Column(String, index=True)
    model = Column(String, index=True)
    year = Column(Integer, nullable=True)
    fuel = Column(String, nullable=True)
    transmission = Column(String, nullable=True)
    cv = Column(String, nullable=True)
    price = Column(String, nullable=True)
    km = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    sold = Column(Boolean, nullable=False, default=False)
    image = Column(String, nullable=True)
    logo = Column(String, nullable=True)
    logo_class = Column(String, nullable=True)
    logo_size = Column(Integer, nullable=True)
    logo_margin = Column(Integer, nullable=True)
    gallery_exterior = Column(JSON, nullable=False, default=list)
    gallery_interior = Column(JSON, nullable=False, default=list)


class AppFlag(Base):
    """One-shot flags, e.g. 'default data already seeded'."""
    __tablename__ = "app_flags"

    name = Column(String, primary_key=True)
    value = Column(String, nullable=False, default="1")
