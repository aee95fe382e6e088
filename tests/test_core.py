import json
import logging
from datetime import date
from decimal import Decimal

import pytest

from app.core.context import clear_context, set_actor_id, set_request_id
from app.core.errors import domain_status_code
from app.core.logging import JsonFormatter, RequestContextFilter
from app.db.url import normalize_database_url
from app.services import audit
from app.services.blob_store import LocalBlobStore, safe_file_name
from app.services.errors import BackendError, ConflictError, InsufficientFundsError, NotFoundError, ValidationError


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("postgres://u:p@db:5432/app", "postgresql+asyncpg://u:p@db:5432/app"),
        ("postgresql+psycopg://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
        ("postgresql://u:p@db/app?sslmode=require", "postgresql+asyncpg://u:p@db/app?ssl=require"),
        ("postgresql+asyncpg://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
        ("", ""),
    ],
)
def test_normalize_database_url(raw, expected) -> None:
    assert normalize_database_url(raw) == expected


def test_domain_errors_map_to_http_statuses() -> None:
    assert domain_status_code(InsufficientFundsError("x")) == 422
    assert domain_status_code(ValidationError("x")) == 422
    assert domain_status_code(ConflictError("x")) == 409
    assert domain_status_code(NotFoundError("x")) == 404
    assert domain_status_code(BackendError("x")) == 502


def test_record_audit_collapses_nested_changes(monkeypatch) -> None:
    captured = []

    class _Logger:
        def info(self, message, extra=None):
            captured.append((message, extra))

    monkeypatch.setattr(audit, "get_audit_logger", lambda: _Logger())

    entry = audit.record_audit(
        actor_id="user-1",
        action="loan.payment_recorded",
        resource_type="prospect",
        resource_id="p-1",
        old_value={"terms": {"principal_balance": Decimal("100")}, "notes": "a"},
        new_value={"terms": {"principal_balance": Decimal("90"), "closing_date": date(2026, 1, 2)}, "notes": "a"},
    )

    assert entry["changed_fields"] == ["terms"]
    assert entry["summary"] == "loan.payment_recorded: terms"
    assert captured[0][1]["audit"] is entry


def test_json_formatter_includes_request_context() -> None:
    set_request_id("req-9")
    set_actor_id("user-7")
    record = logging.LogRecord("app.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    RequestContextFilter().filter(record)

    payload = json.loads(JsonFormatter().format(record))
    clear_context()

    assert payload["message"] == "hello world"
    assert (payload["request_id"], payload["actor_id"]) == ("req-9", "user-7")


@pytest.mark.asyncio
async def test_local_blob_store_writes_and_deletes(tmp_path) -> None:
    store = LocalBlobStore(str(tmp_path), "https://files.test/")

    url = await store.put("HKF-ML1234/KYC/kyc-doc-1-risk.pdf", b"%PDF")

    assert url == "https://files.test/HKF-ML1234/KYC/kyc-doc-1-risk.pdf"
    assert (tmp_path / "HKF-ML1234/KYC/kyc-doc-1-risk.pdf").read_bytes() == b"%PDF"

    await store.delete("HKF-ML1234/KYC/kyc-doc-1-risk.pdf")
    assert not (tmp_path / "HKF-ML1234/KYC/kyc-doc-1-risk.pdf").exists()


@pytest.mark.asyncio
async def test_local_blob_store_rejects_escaping_paths(tmp_path) -> None:
    store = LocalBlobStore(str(tmp_path), "https://files.test")

    with pytest.raises(ValidationError):
        await store.put("../outside.txt", b"x")


def test_safe_file_name_strips_directories_and_blocks_scripts() -> None:
    assert safe_file_name("../../etc/passwd.pdf") == "passwd.pdf"
    assert safe_file_name(None) == "upload.bin"
    with pytest.raises(ValidationError):
        safe_file_name("index.html")
