from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class SkippedProduct(BaseModel):
    """A CSV row that was not imported, with the reason."""
    name: str
    reason: str
    unit: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    stock: Optional[int] = None
    status: Optional[str] = None
    image: Optional[str] = None


class ImportSummary(BaseModel):
    """Result of a CSV import run."""
    model_config = ConfigDict(populate_by_name=True)
    
    message: str = "CSV import finished."
    added: int = 0
    skipped: int = 0
    skipped_products: list[SkippedProduct] = Field(default_factory=list, alias="skippedProducts")
