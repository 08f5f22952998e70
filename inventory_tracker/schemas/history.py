from pydantic import BaseModel, ConfigDict
from datetime import datetime


class HistoryResponse(BaseModel):
    """Schema for a single stock change entry."""
    id: int
    product_id: int
    old_quantity: int
    new_quantity: int
    change_date: datetime
    user_info: str
    
    model_config = ConfigDict(from_attributes=True)
