from sqlalchemy.orm import Session
from typing import List
import csv
import io

from inventory_tracker.models.product import Product

EXPORT_COLUMNS: List[str] = ["name", "unit", "category", "brand", "stock", "status"]


class NothingToExportError(Exception):
    """Exception raised when the store holds no products."""
    pass


class ExportService:
    """Serializes the product table to CSV."""

    def __init__(self, db: Session):
        self.db = db

    def export_csv(self) -> str:
        """
        Render every product, ordered by name, as CSV text.

        Fields containing a comma, quote or newline are quoted and inner
        quotes are doubled. Missing values are written as empty fields.

        Raises:
            NothingToExportError: If there are no products
        """
        products = self.db.query(Product).order_by(Product.name.asc()).all()

        if not products:
            raise NothingToExportError("No products to export.")

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
        writer.writerow(EXPORT_COLUMNS)
        for product in products:
            writer.writerow(
                "" if getattr(product, column) is None else getattr(product, column)
                for column in EXPORT_COLUMNS
            )

        return buffer.getvalue()
