"""FTP transport — CSV order upload and catalog file download.

A session is connect, login, optional passive mode, then the transfer.
Per-integration options: ``upload_directory`` (default ``/orders``),
``download_directory`` (default ``/products``), ``filename_pattern``
(default ``order_{order_id}_{timestamp}.csv``) and ``passive_mode``
(default true).
"""

import csv
import ftplib
import io
import posixpath
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

import structlog

from dropship.dropship_order.dropship_order import DropshipOrder
from dropship.errors import ConfigurationError, PermanentTransportError
from dropship.settings import get_settings
from dropship.supplier.integration import SupplierIntegration
from dropship.transport import get_ftp_factory
from dropship.transport.payload import order_csv
from dropship.transport.retry import as_transport_error, call_with_retry

logger = structlog.get_logger(__name__)

DEFAULT_FILENAME_PATTERN = "order_{order_id}_{timestamp}.csv"


@contextmanager
def ftp_session(integration: SupplierIntegration) -> Iterator[ftplib.FTP]:
    if not integration.ftp_host or not integration.ftp_username or not integration.ftp_password:
        raise ConfigurationError("FTP configuration incomplete: host, username and password are required")

    ftp = get_ftp_factory()()
    try:
        ftp.connect(integration.ftp_host, integration.ftp_port or 21, timeout=get_settings().api_timeout_seconds)
        ftp.login(integration.ftp_username, integration.ftp_password)
        if integration.option("passive_mode", True):
            ftp.set_pasv(True)
        yield ftp
    finally:
        try:
            ftp.quit()
        except ftplib.all_errors:
            ftp.close()


def order_filename(integration: SupplierIntegration, dropship_order: DropshipOrder, now: datetime | None = None) -> str:
    pattern = integration.option("filename_pattern", DEFAULT_FILENAME_PATTERN)
    timestamp = (now or datetime.now(UTC)).strftime("%Y%m%d%H%M%S")
    return pattern.replace("{order_id}", str(dropship_order.id)).replace("{timestamp}", timestamp)


def submit_order(integration: SupplierIntegration, dropship_order: DropshipOrder) -> dict:
    """Upload the order as a CSV sheet into the upload directory."""
    upload_dir = integration.option("upload_directory", "/orders")
    filename = order_filename(integration, dropship_order)
    content = order_csv(dropship_order).encode("utf-8")

    def _upload() -> None:
        try:
            with ftp_session(integration) as ftp:
                ftp.cwd(upload_dir)
                ftp.storbinary(f"STOR {filename}", io.BytesIO(content))
        except ftplib.all_errors as exc:
            raise as_transport_error(exc, "FTP upload failed") from exc

    call_with_retry(_upload)
    upload_path = posixpath.join(upload_dir, filename)
    logger.info(
        "Order uploaded to supplier FTP",
        dropship_order_id=str(dropship_order.id),
        upload_path=upload_path,
    )
    return {
        "method": "ftp",
        "supplier_order_id": None,
        "estimated_delivery": None,
        "response": {"filename": filename, "upload_path": upload_path},
    }


def _modified(ftp: ftplib.FTP, name: str) -> str:
    try:
        return ftp.voidcmd(f"MDTM {name}")[4:].strip()
    except ftplib.error_perm:
        return ""


def parse_catalog_csv(text: str) -> list[dict]:
    """Header row plus records; rows whose width differs from the header are skipped."""
    reader = csv.reader(io.StringIO(text))
    headers = next(reader, None)
    if not headers:
        raise PermanentTransportError("Invalid CSV file - no headers found")
    headers = [h.strip() for h in headers]
    return [dict(zip(headers, row, strict=True)) for row in reader if len(row) == len(headers)]


def fetch_products(integration: SupplierIntegration) -> list[dict]:
    """Download and parse the most recently modified CSV in the download directory."""
    download_dir = integration.option("download_directory", "/products")

    def _download() -> tuple[str, bytes]:
        try:
            with ftp_session(integration) as ftp:
                csv_files = [name for name in ftp.nlst(download_dir) if name.lower().endswith(".csv")]
                if not csv_files:
                    raise PermanentTransportError(f"No CSV files found in FTP directory {download_dir}")
                latest = max(csv_files, key=lambda name: (_modified(ftp, name), name))
                buffer = io.BytesIO()
                ftp.retrbinary(f"RETR {latest}", buffer.write)
                return latest, buffer.getvalue()
        except ftplib.all_errors as exc:
            raise as_transport_error(exc, "FTP download failed") from exc

    filename, raw = call_with_retry(_download)
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise PermanentTransportError(f"Catalog file {filename} is not valid UTF-8: {exc}") from exc
    records = parse_catalog_csv(text)
    logger.info(
        "Fetched supplier catalog from FTP",
        integration_id=str(integration.id),
        filename=filename,
        products=len(records),
    )
    return records
