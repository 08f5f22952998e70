from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from inventory_tracker.database import Base


class InventoryHistory(Base):
    """
    Append-only record of a stock quantity change.
    
    Attributes:
        id: Unique identifier for the entry
        product_id: Product whose stock changed
        old_quantity: Stock before the change
        new_quantity: Stock after the change
        change_date: When the change was recorded (UTC)
        user_info: Who made the change
    """
    __tablename__ = "inventory_history"
    
    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    old_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    change_date = Column(DateTime(timezone=True), nullable=False)
    user_info = Column(String(255), nullable=False, default="System/Admin")
    
    product = relationship("Product", back_populates="history")
    
    def __repr__(self):
        return (
            f"<InventoryHistory(product_id={self.product_id}, "
            f"{self.old_quantity} -> {self.new_quantity})>"
        )
