import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from inventory_tracker.tasks.celery_app import celery_app
from inventory_tracker.database import SessionLocal
from inventory_tracker.models.product import Product
from inventory_tracker.models.history import InventoryHistory

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="record_stock_change", max_retries=5)
def record_stock_change(
    self,
    product_id: int,
    old_quantity: int,
    new_quantity: int,
    change_date: str,
    user_info: str = "System/Admin",
) -> dict:
    """
    Background retry of a history append that failed during an update.
    
    The product update itself has already been committed; this task only
    writes the missing history entry. If the product was deleted in the
    meantime there is nothing to record.
    
    Args:
        product_id: Product whose stock changed
        old_quantity: Stock before the update
        new_quantity: Stock after the update
        change_date: ISO-8601 timestamp of the original update
        user_info: Attribution stored with the entry
        
    Returns:
        Dictionary with the outcome
    """
    logger.info(f"Retrying history append for product #{product_id}")
    
    db = SessionLocal()
    
    try:
        if db.get(Product, product_id) is None:
            logger.warning(f"Product #{product_id} no longer exists, dropping history entry")
            return {"status": "dropped", "product_id": product_id}
        
        entry = InventoryHistory(
            product_id=product_id,
            old_quantity=old_quantity,
            new_quantity=new_quantity,
            change_date=datetime.fromisoformat(change_date),
            user_info=user_info,
        )
        db.add(entry)
        db.commit()
        
        logger.info(f"History entry #{entry.id} recorded for product #{product_id}")
        
        return {"status": "recorded", "product_id": product_id, "history_id": entry.id}
        
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error recording history for product #{product_id}: {e}")
        raise self.retry(exc=e, countdown=30)
        
    finally:
        db.close()
