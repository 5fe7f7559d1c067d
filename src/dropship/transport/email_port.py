"""Email port: the outbound mail interface used for supplier orders and admin alerts."""

from abc import ABC, abstractmethod


class EmailPort(ABC):
    """Abstract interface for email delivery adapters."""

    @abstractmethod
    def send(
        self,
        to: str,
        subject: str,
        body: str,
        attachments: dict[str, str] | None = None,
    ) -> dict:
        """Hand a message to the mail system.

        ``attachments`` maps file names to text content (CSV order sheets).

        Returns:
            dict with keys: message_id, status ("queued" or "failed"), error (optional)
        """
        ...
