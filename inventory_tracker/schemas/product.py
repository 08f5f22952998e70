from pydantic import BaseModel, Field, ConfigDict
from typing import Optional


class ProductBase(BaseModel):
    """Base schema for Product with common attributes."""
    model_config = ConfigDict(str_strip_whitespace=True)
    
    name: str = Field(..., min_length=1, max_length=255, description="Product name")
    unit: Optional[str] = Field(None, max_length=64, description="Unit of measure")
    category: Optional[str] = Field(None, max_length=255, description="Product category")
    brand: Optional[str] = Field(None, max_length=255, description="Brand name")
    stock: int = Field(..., ge=0, description="Stock on hand (must be non-negative)")
    status: Optional[str] = Field(None, max_length=64, description="Free-text status label")
    image: Optional[str] = Field(None, max_length=512, description="Image path or URL")


class ProductCreate(ProductBase):
    """Schema for creating a new product."""
    pass


class ProductUpdate(ProductBase):
    """Schema for updating a product. The full field set replaces the stored one."""
    pass


class ProductResponse(ProductBase):
    """Schema for product response including the identifier."""
    id: int
    
    model_config = ConfigDict(from_attributes=True)


class ProductCreated(BaseModel):
    """Response returned after a product is added."""
    message: str
    id: int


class ProductUpdated(BaseModel):
    """Response returned after an update attempt."""
    message: str
    changes: int


class MessageResponse(BaseModel):
    message: str
