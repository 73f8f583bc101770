"""Product model."""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from delivery_notes.database import Base


class Product(Base):
    """Product with its quantity on hand."""

    __tablename__ = 'product'
    __table_args__ = (
        CheckConstraint('quantity >= 0', name='ck_product_quantity_non_negative'),
        CheckConstraint('price >= 0', name='ck_product_price_non_negative'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    warehouse_id = Column(Integer, ForeignKey('warehouse.id'), nullable=False, index=True)
    code = Column(String(64), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    warehouse = relationship('Warehouse', back_populates='products')

    def __repr__(self):
        return f"<Product(id={self.id}, code='{self.code}', quantity={self.quantity})>"
