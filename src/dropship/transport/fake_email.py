"""In-memory email adapter, the default until a real mail adapter is registered."""

from uuid import uuid4

from dropship.transport.email_port import EmailPort


class FakeEmailAdapter(EmailPort):
    """Keeps every message in ``sent_emails`` for inspection."""

    def __init__(self):
        self.sent_emails: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Mail server unavailable"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Mail server unavailable"):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def send(
        self,
        to: str,
        subject: str,
        body: str,
        attachments: dict[str, str] | None = None,
    ) -> dict:
        if not self.should_succeed:
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        message_id = f"mail-{uuid4().hex[:12]}"
        self.sent_emails.append(
            {
                "message_id": message_id,
                "to": to,
                "subject": subject,
                "body": body,
                "attachments": dict(attachments or {}),
            }
        )
        return {"message_id": message_id, "status": "queued"}

    def messages_to(self, address: str) -> list[dict]:
        return [m for m in self.sent_emails if m["to"] == address]

    def reset(self):
        self.sent_emails.clear()
        self.should_succeed = True
        self.failure_reason = "Mail server unavailable"
