"""Warehouse model."""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from delivery_notes.database import Base


class Warehouse(Base):
    """Warehouse holding products."""

    __tablename__ = 'warehouse'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False, unique=True)
    address = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    products = relationship('Product', back_populates='warehouse')

    def __repr__(self):
        return f"<Warehouse(id={self.id}, name='{self.name}')>"
