from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from pydantic import ValidationError
from concurrent.futures import Future, ThreadPoolExecutor, wait
from collections import deque
from typing import BinaryIO, Iterator, Optional, Tuple
import codecs
import csv
import logging
import re

from inventory_tracker.models.product import Product
from inventory_tracker.schemas.imports import ImportSummary, SkippedProduct
from inventory_tracker.schemas.product import ProductCreate

logger = logging.getLogger(__name__)

REASON_INVALID = "Missing Name or Invalid Stock"
REASON_TOO_LONG = "Invalid Field Value"
REASON_DUPLICATE = "Duplicate Name"
REASON_DATABASE = "Database Error"

DEFAULT_STATUS = "In Stock"

# Leading integer, the way "12", " 7 " or "3.9" are read as stock
_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


class CSVProcessingError(Exception):
    """Exception raised when the uploaded file cannot be read as CSV."""
    pass


def parse_stock(raw: Optional[str]) -> Optional[int]:
    """
    Parse a stock cell.

    Blank cells mean 0. Returns None when a value is present but is not an
    integer.
    """
    if raw is None or not raw.strip():
        return 0
    match = _INT_PREFIX.match(raw)
    if not match:
        return None
    return int(match.group(1))


def normalize_row(row: dict) -> Tuple[Optional[dict], Optional[SkippedProduct]]:
    """
    Turn a raw CSV row into product fields.

    Returns ``(fields, None)`` for a usable row and ``(None, skipped)`` for
    a rejected one.
    """
    # Extra cells beyond the header arrive under a None key as a list
    row = {
        (key or "").strip().lower(): value
        for key, value in row.items()
        if key is not None
    }

    name = (row.get("name") or "").strip()
    stock = parse_stock(row.get("stock"))

    if not name or stock is None or stock < 0:
        return None, SkippedProduct(name=name or "Invalid Name", reason=REASON_INVALID)

    fields = {
        "name": name,
        "unit": row.get("unit") or "",
        "category": row.get("category") or "",
        "brand": row.get("brand") or "",
        "stock": stock,
        "status": row.get("status") or DEFAULT_STATUS,
        "image": row.get("image") or "",
    }

    # Same limits as the API, so imported rows stay readable through it
    try:
        fields = ProductCreate(**fields).model_dump()
    except ValidationError as e:
        logger.info(f"Rejected CSV row '{name[:50]}': {e.error_count()} invalid field(s)")
        return None, SkippedProduct(name=name, reason=REASON_TOO_LONG)
    return fields, None


class ImportService:
    """
    Bulk import of products from a CSV upload.

    The file is read row by row. Each accepted row is checked for a
    duplicate name and inserted by a worker thread using its own session,
    so slow inserts overlap with reading the rest of the file.
    At most ``window`` rows are held in memory; the reader pauses until
    the oldest one settles, so large files are never buffered whole.

    The summary is only built once every dispatched row has settled.
    Per-row database failures skip that row; a failure to read the file
    itself aborts the import with ``CSVProcessingError``.
    """

    def __init__(self, session_factory: sessionmaker, max_workers: int = 4):
        self.session_factory = session_factory
        self.max_workers = max_workers
        # Rows read ahead of the oldest unsettled one
        self.window = max_workers * 2

    def import_csv(self, stream: BinaryIO) -> ImportSummary:
        """
        Import products from a binary CSV stream.

        Args:
            stream: Uploaded file opened in binary mode (UTF-8, optional BOM)

        Returns:
            Summary with added/skipped counts and the skipped rows

        Raises:
            CSVProcessingError: If the stream cannot be decoded or parsed
        """
        summary = ImportSummary()
        # Rows in file order: Futures for dispatched rows, SkippedProduct for rejected ones
        pending = deque()
        read_error = None

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="csv-import") as executor:
            try:
                for fields, rejected in map(normalize_row, self._read_rows(stream)):
                    # Stop reading until the oldest row settles once the window is full
                    if len(pending) >= self.window:
                        self._settle(pending.popleft(), summary)
                    if rejected is not None:
                        pending.append(rejected)
                    else:
                        pending.append(executor.submit(self._insert_row, fields))
            except (csv.Error, UnicodeDecodeError, OSError) as e:
                read_error = e
            finally:
                # Completion barrier: nothing is reported until every row settles
                wait([item for item in pending if isinstance(item, Future)])

        if read_error is not None:
            logger.error(f"Error processing CSV file: {read_error}")
            raise CSVProcessingError(str(read_error)) from read_error

        while pending:
            self._settle(pending.popleft(), summary)

        logger.info(f"CSV import finished: {summary.added} added, {summary.skipped} skipped")
        return summary

    def _settle(self, item, summary: ImportSummary) -> None:
        """Fold one row outcome into the summary, waiting for it if still running."""
        skipped = item.result() if isinstance(item, Future) else item
        if skipped is None:
            summary.added += 1
        else:
            summary.skipped += 1
            summary.skipped_products.append(skipped)

    def _read_rows(self, stream: BinaryIO) -> Iterator[dict]:
        """Lazily decode and parse the stream, one row at a time."""
        lines = codecs.iterdecode(stream, "utf-8-sig")
        yield from csv.DictReader(lines)

    def _insert_row(self, fields: dict) -> Optional[SkippedProduct]:
        """
        Insert one product unless its name is taken.

        Returns None when the row was added, otherwise the skipped entry.
        """
        session = self.session_factory()
        try:
            existing = session.query(Product.id).filter(Product.name == fields["name"]).first()
            if existing:
                return SkippedProduct(**fields, reason=REASON_DUPLICATE)

            session.add(Product(**fields))
            session.commit()
            return None

        except IntegrityError:
            # Another row with the same name was inserted after our check
            session.rollback()
            return SkippedProduct(**fields, reason=REASON_DUPLICATE)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"DB error while importing '{fields['name']}': {e}")
            return SkippedProduct(name=fields["name"], reason=REASON_DATABASE)
        finally:
            session.close()
