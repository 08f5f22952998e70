from sqlalchemy import Column, Integer, String, CheckConstraint
from sqlalchemy.orm import relationship

from inventory_tracker.database import Base


class Product(Base):
    """
    Product model representing an item tracked in the inventory.
    
    Attributes:
        id: Unique identifier for the product
        name: Product name (unique across the store)
        unit: Unit of measure, e.g. "pcs" or "kg"
        category: Free-text category used for filtering
        brand: Brand name
        stock: Quantity on hand (must be non-negative)
        status: Free-text status label, e.g. "In Stock"
        image: Path or URL of the product image
    """
    __tablename__ = "products"
    
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True, index=True)
    unit = Column(String(64), nullable=True)
    category = Column(String(255), nullable=True, index=True)
    brand = Column(String(255), nullable=True)
    stock = Column(Integer, nullable=False, default=0)
    status = Column(String(64), nullable=True)
    image = Column(String(512), nullable=True)
    
    # History entries are removed together with their product
    history = relationship(
        "InventoryHistory",
        back_populates="product",
        cascade="all, delete-orphan",
    )
    
    __table_args__ = (
        CheckConstraint('stock >= 0', name='check_stock_non_negative'),
    )
    
    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"
