from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.orm import Session, sessionmaker
from typing import Optional

from inventory_tracker.config import get_settings
from inventory_tracker.database import get_db, get_session_factory
from inventory_tracker.services.product_service import (
    ProductService,
    ProductNotFoundError,
    DuplicateNameError
)
from inventory_tracker.services.import_service import ImportService, CSVProcessingError
from inventory_tracker.services.export_service import ExportService, NothingToExportError
from inventory_tracker.schemas.product import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    ProductCreated,
    ProductUpdated,
    MessageResponse
)
from inventory_tracker.schemas.history import HistoryResponse
from inventory_tracker.schemas.imports import ImportSummary

settings = get_settings()

router = APIRouter(prefix="/products", tags=["Products"])


@router.get(
    "",
    response_model=list[ProductResponse],
    summary="List products",
    description="List products with optional search, category filter and sorting."
)
def list_products(
    search: Optional[str] = Query(None, description="Substring of name or brand"),
    category: Optional[str] = Query(None, description="Exact category"),
    sort: str = Query("id", description="One of id, name, stock, category, brand"),
    order: str = Query("asc", description="asc or desc"),
    db: Session = Depends(get_db)
):
    """
    List products.

    Unknown `sort` values fall back to sorting by id.
    """
    service = ProductService(db)
    return service.get_all(search=search, category=category, sort=sort, order=order)


@router.get(
    "/export",
    summary="Export products as CSV",
    response_class=Response,
    responses={200: {"content": {"text/csv": {}}}}
)
def export_products(db: Session = Depends(get_db)):
    """Download every product as a CSV attachment, ordered by name."""
    service = ExportService(db)

    try:
        csv_text = service.export_csv()
    except NothingToExportError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="products.csv"'}
    )


@router.post(
    "/import",
    response_model=ImportSummary,
    response_model_exclude_none=True,
    summary="Import products from CSV",
    description="""
    Upload a CSV file under the form field `csvFile`.

    Rows with a missing name or invalid stock are skipped, as are rows whose
    name already exists. Existing products are never overwritten.
    """
)
def import_products(
    csv_file: Optional[UploadFile] = File(None, alias="csvFile"),
    session_factory: sessionmaker = Depends(get_session_factory)
):
    """
    Import products from an uploaded CSV file.

    Columns: name, unit, category, brand, stock, status, image.
    """
    if csv_file is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No CSV file uploaded."
        )

    service = ImportService(session_factory, max_workers=settings.IMPORT_MAX_WORKERS)

    try:
        return service.import_csv(csv_file.file)
    except CSVProcessingError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Error processing CSV file.", "error": str(e)}
        )
    finally:
        csv_file.file.close()


@router.post(
    "",
    response_model=ProductCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new product"
)
def create_product(
    product_data: ProductCreate,
    db: Session = Depends(get_db)
):
    """
    Create a new product.

    - **name**: Product name, unique (required)
    - **stock**: Stock quantity, must be non-negative (required)
    - **unit**, **category**, **brand**, **status**, **image**: optional
    """
    service = ProductService(db)

    try:
        product = service.create(product_data)
    except DuplicateNameError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    return ProductCreated(message="Product added successfully.", id=product.id)


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Get product by ID",
    description="Get a single product. Results are cached in Redis."
)
def get_product(
    product_id: int,
    db: Session = Depends(get_db)
):
    """Get a product by ID."""
    service = ProductService(db)
    product_data = service.get_by_id_cached(product_id)

    if not product_data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found."
        )

    return product_data


@router.put(
    "/{product_id}",
    response_model=ProductUpdated,
    summary="Update a product",
    description="Replace all product fields. Stock changes are recorded in the history."
)
def update_product(
    product_id: int,
    product_data: ProductUpdate,
    db: Session = Depends(get_db)
):
    """
    Update a product.

    The request carries the complete field set. A stock change appends an
    entry to the product's inventory history.
    """
    service = ProductService(db)

    try:
        changes = service.update(product_id, product_data)
    except DuplicateNameError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except ProductNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found."
        )

    if changes > 0:
        return ProductUpdated(message="Product updated successfully.", changes=changes)
    return ProductUpdated(message="No changes made.", changes=0)


@router.delete(
    "/{product_id}",
    response_model=MessageResponse,
    summary="Delete a product",
    description="Delete a product and its inventory history."
)
def delete_product(
    product_id: int,
    db: Session = Depends(get_db)
):
    """Delete a product."""
    service = ProductService(db)
    deleted = service.delete(product_id)

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found."
        )

    return MessageResponse(message="Product deleted successfully.")


@router.get(
    "/{product_id}/history",
    response_model=list[HistoryResponse],
    summary="Get inventory history",
    description="Stock changes of a product, newest first."
)
def get_product_history(
    product_id: int,
    db: Session = Depends(get_db)
):
    """Get the stock change history of a product."""
    service = ProductService(db)
    return service.history(product_id)
