"""Transport adapter registry — the clients outbound traffic goes through.

Provides process-wide access to the HTTP client, the FTP session factory
and the email adapter. Defaults are a plain ``httpx.Client``, ``ftplib.FTP``
and the in-memory email adapter; production wiring and tests swap them with
the ``set_*`` functions.
"""

import ftplib
from collections.abc import Callable

import httpx

from dropship.transport.email_port import EmailPort

_http_client: httpx.Client | None = None
_ftp_factory: Callable[[], ftplib.FTP] | None = None
_email_adapter: EmailPort | None = None


def get_http_client() -> httpx.Client:
    """Return the shared HTTP client, creating it on first use."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.Client(follow_redirects=True)
    return _http_client


def set_http_client(client: httpx.Client) -> None:
    global _http_client
    _http_client = client


def reset_http_client() -> None:
    global _http_client
    if _http_client is not None:
        _http_client.close()
    _http_client = None


def get_ftp_factory() -> Callable[[], ftplib.FTP]:
    """Return a callable producing unconnected FTP sessions."""
    return _ftp_factory or ftplib.FTP


def set_ftp_factory(factory: Callable[[], ftplib.FTP]) -> None:
    global _ftp_factory
    _ftp_factory = factory


def reset_ftp_factory() -> None:
    global _ftp_factory
    _ftp_factory = None


def get_email_adapter() -> EmailPort:
    global _email_adapter
    if _email_adapter is None:
        from dropship.transport.fake_email import FakeEmailAdapter

        _email_adapter = FakeEmailAdapter()
    return _email_adapter


def set_email_adapter(adapter: EmailPort) -> None:
    global _email_adapter
    _email_adapter = adapter


def reset_email_adapter() -> None:
    global _email_adapter
    _email_adapter = None


def reset_transports() -> None:
    """Reset every adapter singleton (useful for testing)."""
    reset_http_client()
    reset_ftp_factory()
    reset_email_adapter()
