"""Tests for CSV import."""
import io
import threading
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from inventory_tracker.models.product import Product
from inventory_tracker.services.import_service import (
    CSVProcessingError,
    ImportService,
    normalize_row,
    parse_stock,
)


def _upload(client, text, filename="products.csv"):
    return client.post(
        "/api/products/import",
        files={"csvFile": (filename, text.encode("utf-8"), "text/csv")}
    )


def test_import_products(client):
    """Test importing well-formed rows and skipping rows without a name."""
    csv_text = (
        "name,unit,category,brand,stock,status,image\n"
        "Hammer,pcs,Tools,Acme,5,In Stock,\n"
        "Nails,box,Tools,Acme,100,,\n"
        ",pcs,Tools,Acme,3,,\n"
        "Saw,pcs,Tools,,7,Low,/img/saw.png\n"
        "   ,kg,Food,,1,,\n"
    )

    response = _upload(client, csv_text)

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "CSV import finished."
    assert data["added"] == 3
    assert data["skipped"] == 2
    assert [p["reason"] for p in data["skippedProducts"]] == ["Missing Name or Invalid Stock"] * 2
    assert all(p["name"] == "Invalid Name" for p in data["skippedProducts"])

    products = {p["name"]: p for p in client.get("/api/products").json()}
    assert set(products) == {"Hammer", "Nails", "Saw"}
    assert products["Nails"]["status"] == "In Stock"
    assert products["Saw"]["image"] == "/img/saw.png"
    assert products["Hammer"]["image"] == ""


def test_import_skips_existing_names(client, make_product):
    """Test that rows duplicating a stored name are skipped untouched."""
    product_id = make_product("Hammer", stock=1, brand="Original")

    response = _upload(client, "name,stock,brand\nHammer,50,Imported\nWrench,2,\n")

    data = response.json()
    assert data["added"] == 1
    assert data["skipped"] == 1
    skipped = data["skippedProducts"][0]
    assert skipped["name"] == "Hammer"
    assert skipped["reason"] == "Duplicate Name"
    assert skipped["stock"] == 50

    hammer = client.get(f"/api/products/{product_id}").json()
    assert hammer["stock"] == 1
    assert hammer["brand"] == "Original"


def test_import_duplicate_rows_within_file(client):
    """Test that the same new name twice in one file is inserted once."""
    csv_text = "name,stock\n" + "Bolt,1\n" * 6

    data = _upload(client, csv_text).json()

    assert data["added"] == 1
    assert data["skipped"] == 5
    assert {p["reason"] for p in data["skippedProducts"]} == {"Duplicate Name"}
    assert [p["name"] for p in client.get("/api/products").json()] == ["Bolt"]


def test_import_invalid_stock(client):
    """Test stock parsing: blanks default to 0, garbage and negatives are rejected."""
    csv_text = (
        "name,stock\n"
        "Blank,\n"
        "Decimal,3.9\n"
        "Garbage,lots\n"
        "Negative,-4\n"
    )

    data = _upload(client, csv_text).json()

    assert data["added"] == 2
    assert [p["name"] for p in data["skippedProducts"]] == ["Garbage", "Negative"]

    stock = {p["name"]: p["stock"] for p in client.get("/api/products").json()}
    assert stock == {"Blank": 0, "Decimal": 3}


def test_import_handles_quoted_fields_and_bom(client):
    """Test quoted commas, embedded newlines, header case and a UTF-8 BOM."""
    csv_text = '\ufeffName , Stock,Brand\n"Paint, white",4,"Say ""hi"""\n"Two\nLines",1,\n'

    data = _upload(client, csv_text).json()

    assert data["added"] == 2
    names = {p["name"] for p in client.get("/api/products").json()}
    assert names == {"Paint, white", "Two\nLines"}


def test_import_without_file(client):
    """Test that the upload field is required."""
    response = client.post("/api/products/import")

    assert response.status_code == 400
    assert response.json()["message"] == "No CSV file uploaded."


def test_import_wrong_field_name(client):
    """Test that a file under another field name counts as missing."""
    response = client.post(
        "/api/products/import",
        files={"file": ("products.csv", b"name,stock\nA,1\n", "text/csv")}
    )

    assert response.status_code == 400


def test_import_unreadable_file(client):
    """Test that a file that is not UTF-8 text aborts the import."""
    response = client.post(
        "/api/products/import",
        files={"csvFile": ("products.csv", b"name,stock\n\xff\xfe\xfa,1\n", "text/csv")}
    )

    assert response.status_code == 500
    data = response.json()
    assert data["message"] == "Error processing CSV file."
    assert "error" in data


def test_import_grows_store_by_added_count(client, make_product):
    """Test that the store grows by exactly the number of added rows."""
    make_product("Existing")
    rows = "".join(f"Item {i},{i}\n" for i in range(25))

    data = _upload(client, "name,stock\n" + rows + ",1\n").json()

    assert data["added"] == 25
    assert data["skipped"] == 1
    assert len(client.get("/api/products").json()) == 26


def test_parse_stock():
    """Test the integer prefix rules for stock cells."""
    assert parse_stock("12") == 12
    assert parse_stock(" 7 ") == 7
    assert parse_stock("3.9") == 3
    assert parse_stock("") == 0
    assert parse_stock(None) == 0
    assert parse_stock("n/a") is None


def test_normalize_row_defaults():
    """Test defaults for optional columns."""
    fields, rejected = normalize_row({"name": " Glue ", "stock": "2"})

    assert rejected is None
    assert fields == {
        "name": "Glue",
        "unit": "",
        "category": "",
        "brand": "",
        "stock": 2,
        "status": "In Stock",
        "image": "",
    }


def test_normalize_row_ignores_extra_cells():
    """Test that cells beyond the header do not break normalization."""
    fields, rejected = normalize_row({"name": "Glue", "stock": "2", None: ["x", "y"]})

    assert rejected is None
    assert fields["name"] == "Glue"


def test_barrier_waits_for_slow_rows(db_session, session_factory):
    """Test that the summary includes rows still running when the file ends."""
    release = threading.Event()
    service = ImportService(session_factory, max_workers=2)
    original_insert = service._insert_row

    def slow_insert(fields):
        release.wait(timeout=5)
        return original_insert(fields)

    timer = threading.Timer(0.2, release.set)
    timer.start()
    with patch.object(service, "_insert_row", side_effect=slow_insert):
        summary = service.import_csv(io.BytesIO(b"name,stock\nA,1\nB,2\nC,3\n"))
    timer.cancel()

    assert summary.added == 3
    assert db_session.query(Product).count() == 3


def test_row_database_error_is_skipped(db_session, session_factory):
    """Test that a storage fault on one row does not abort the import."""
    real_factory = session_factory

    def factory():
        session = real_factory()
        original_commit = session.commit

        def commit():
            if any(getattr(obj, "name", None) == "Broken" for obj in session.new):
                raise OperationalError("INSERT INTO products", {}, Exception("disk I/O error"))
            original_commit()

        session.commit = commit
        return session

    service = ImportService(factory, max_workers=2)
    summary = service.import_csv(io.BytesIO(b"name,stock\nGood,1\nBroken,2\nFine,3\n"))

    assert summary.added == 2
    assert summary.skipped == 1
    assert summary.skipped_products[0].name == "Broken"
    assert summary.skipped_products[0].reason == "Database Error"


def test_stream_error_waits_for_dispatched_rows(db_session, session_factory):
    """Test that a read error mid-stream still lets earlier rows finish."""
    def chunks():
        yield b"name,stock\n"
        yield b"First,1\n"
        raise OSError("connection reset")

    service = ImportService(session_factory, max_workers=2)

    with pytest.raises(CSVProcessingError):
        service.import_csv(chunks())

    assert db_session.query(Product).filter(Product.name == "First").count() == 1


def test_import_rejects_over_long_fields(client):
    """Test that values longer than the API allows are skipped, keeping the store readable."""
    long_name = "N" * 300
    csv_text = (
        "name,stock,status,image\n"
        f"{long_name},1,,\n"
        f"Sticker,2,{'S' * 80},\n"
        "Tape,3,Low,\n"
    )

    data = _upload(client, csv_text).json()

    assert data["added"] == 1
    assert data["skipped"] == 2
    assert [p["name"] for p in data["skippedProducts"]] == [long_name, "Sticker"]
    assert {p["reason"] for p in data["skippedProducts"]} == {"Invalid Field Value"}

    response = client.get("/api/products")
    assert response.status_code == 200
    assert [p["name"] for p in response.json()] == ["Tape"]


def test_normalize_row_rejects_over_long_unit():
    """Test the unit length limit on a single row."""
    fields, rejected = normalize_row({"name": "Glue", "stock": "1", "unit": "u" * 65})

    assert fields is None
    assert rejected.reason == "Invalid Field Value"


def test_reader_pauses_while_rows_are_in_flight(db_session, session_factory):
    """Test that the reader stays within its window while inserts are blocked."""
    total_rows = 200
    release = threading.Event()
    read = {"rows": 0, "while_blocked": None}

    def rows():
        yield b"name,stock\n"
        for i in range(total_rows):
            read["rows"] += 1
            yield f"Item {i},1\n".encode("utf-8")

    service = ImportService(session_factory, max_workers=2)
    original_insert = service._insert_row

    def blocked_insert(fields):
        release.wait(timeout=5)
        return original_insert(fields)

    def unblock():
        read["while_blocked"] = read["rows"]
        release.set()

    timer = threading.Timer(0.3, unblock)
    timer.start()
    with patch.object(service, "_insert_row", side_effect=blocked_insert):
        summary = service.import_csv(rows())
    timer.cancel()

    assert read["while_blocked"] <= service.window + 2
    assert summary.added == total_rows
    assert db_session.query(Product).count() == total_rows
