from sqlalchemy.orm import Session
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from datetime import datetime, timezone
from typing import Optional, List
import logging

from inventory_tracker.config import get_settings
from inventory_tracker.models.product import Product
from inventory_tracker.models.history import InventoryHistory
from inventory_tracker.schemas.product import ProductCreate, ProductUpdate, ProductResponse
from inventory_tracker.tasks.history_tasks import record_stock_change
from inventory_tracker.utils.cache import cache_service

logger = logging.getLogger(__name__)

settings = get_settings()


class ProductNotFoundError(Exception):
    """Exception raised when the requested product doesn't exist."""
    pass


class DuplicateNameError(Exception):
    """Exception raised when a product name is already taken."""
    pass


# Columns the product list may be sorted by; anything else falls back to id
SORTABLE_COLUMNS = {
    "id": Product.id,
    "name": Product.name,
    "stock": Product.stock,
    "category": Product.category,
    "brand": Product.brand,
}

TEXT_SORT_COLUMNS = {"name", "category", "brand"}

UPDATABLE_FIELDS = ("name", "unit", "category", "brand", "stock", "status", "image")


class ProductService:
    """
    Service class for Product operations.

    This service handles:
    - Listing products with search, category filter and sorting
    - Creating and deleting products
    - The stock-update transaction with history tracking
    - Reading stock history
    - Cache invalidation for single-product lookups
    """

    CACHE_PREFIX = "product"

    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        sort: str = "id",
        order: str = "asc",
    ) -> List[Product]:
        """
        List products.

        Args:
            search: Substring matched against name or brand
            category: Exact category to filter on
            sort: Column to sort by; unknown values fall back to ``id``
            order: ``asc`` or ``desc`` (case-insensitive), default ``asc``

        Returns:
            List of matching products
        """
        query = self.db.query(Product)

        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Product.name.ilike(pattern), Product.brand.ilike(pattern)))

        if category:
            query = query.filter(Product.category == category)

        sort_key = sort if sort in SORTABLE_COLUMNS else "id"
        column = SORTABLE_COLUMNS[sort_key]
        if sort_key in TEXT_SORT_COLUMNS:
            column = func.lower(column)

        descending = (order or "").lower() == "desc"
        ordering = column.desc() if descending else column.asc()

        return query.order_by(ordering, Product.id.asc()).all()

    def get_by_id(self, product_id: int) -> Optional[Product]:
        """Get a product by ID straight from the database."""
        return self.db.query(Product).filter(Product.id == product_id).first()

    def get_by_id_cached(self, product_id: int) -> Optional[dict]:
        """
        Get product details from cache or database.
        Returns a dictionary (suitable for API response).

        Args:
            product_id: Product ID to look up

        Returns:
            Product data as dictionary or None
        """
        cached = cache_service.get(self.CACHE_PREFIX, str(product_id))
        if cached:
            return cached

        product = self.get_by_id(product_id)

        if product:
            product_dict = ProductResponse.model_validate(product).model_dump()
            cache_service.set(self.CACHE_PREFIX, str(product_id), product_dict)
            return product_dict

        return None

    def create(self, product_data: ProductCreate) -> Product:
        """
        Create a new product.

        Raises:
            DuplicateNameError: If the name is already used
        """
        product = Product(**product_data.model_dump())
        self.db.add(product)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.info(f"Rejected duplicate product name '{product_data.name}': {e.orig}")
            raise DuplicateNameError("Product name already exists.")
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self.db.refresh(product)
        logger.info(f"Product #{product.id} '{product.name}' created")
        return product

    def update(self, product_id: int, product_data: ProductUpdate) -> int:
        """
        Replace all fields of a product and track stock changes.

        Steps, in order:
        1. Reject the update if a *different* product already has the name
        2. Load the current record (not found -> error)
        3. Apply the new values; identical values are not written
        4. If stock changed, append a history entry

        A failure in step 4 is logged and never undoes the update. The
        entry is handed to a background task to be retried.

        Args:
            product_id: ID of product to update
            product_data: Full replacement field set

        Returns:
            Number of modified rows (0 when nothing changed)

        Raises:
            DuplicateNameError: If another product has the requested name
            ProductNotFoundError: If the product doesn't exist
        """
        taken = (
            self.db.query(Product.id)
            .filter(Product.name == product_data.name, Product.id != product_id)
            .first()
        )
        if taken:
            raise DuplicateNameError("Product name already exists for another product.")

        product = self.get_by_id(product_id)
        if not product:
            raise ProductNotFoundError(f"Product with ID {product_id} not found")

        old_stock = product.stock
        new_values = product_data.model_dump(include=set(UPDATABLE_FIELDS))
        changed = {
            field: value for field, value in new_values.items()
            if getattr(product, field) != value
        }

        if not changed:
            return 0

        for field, value in changed.items():
            setattr(product, field, value)

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.info(f"Update of product #{product_id} hit a name conflict: {e.orig}")
            raise DuplicateNameError("Product name already exists for another product.")
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self._invalidate_cache(product_id)
        logger.info(f"Product #{product_id} updated ({', '.join(sorted(changed))})")

        if old_stock != product_data.stock:
            self._append_history(product_id, old_stock, product_data.stock)

        return 1

    def delete(self, product_id: int) -> bool:
        """
        Delete a product together with its history.

        Returns:
            True if deleted, False if not found
        """
        product = self.get_by_id(product_id)

        if not product:
            return False

        self.db.delete(product)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self._invalidate_cache(product_id)
        logger.info(f"Product #{product_id} deleted")

        return True

    def history(self, product_id: int) -> List[InventoryHistory]:
        """Stock history of a product, newest first."""
        return (
            self.db.query(InventoryHistory)
            .filter(InventoryHistory.product_id == product_id)
            .order_by(InventoryHistory.change_date.desc(), InventoryHistory.id.desc())
            .all()
        )

    def _append_history(self, product_id: int, old_stock: int, new_stock: int) -> None:
        """Record a stock change. Failures are logged and handed to a retry task."""
        change_date = datetime.now(timezone.utc)
        entry = InventoryHistory(
            product_id=product_id,
            old_quantity=old_stock,
            new_quantity=new_stock,
            change_date=change_date,
            user_info=settings.HISTORY_USER_INFO,
        )
        self.db.add(entry)
        try:
            self.db.commit()
            return
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error inserting inventory history for product #{product_id}: {e}")

        try:
            record_stock_change.delay(
                product_id,
                old_stock,
                new_stock,
                change_date.isoformat(),
                settings.HISTORY_USER_INFO,
            )
        except Exception as e:
            logger.error(f"Could not schedule history retry for product #{product_id}: {e}")

    def _invalidate_cache(self, product_id: int) -> None:
        """Invalidate cache for a product."""
        cache_service.delete(self.CACHE_PREFIX, str(product_id))
