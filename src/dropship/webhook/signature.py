"""HMAC-SHA256 webhook signatures.

Both directions sign the canonical JSON form of the document (sorted keys,
compact separators) so that key order and whitespace on the wire never
affect verification. An inbound payload carries its signature in a
top-level ``signature`` field, which is excluded before signing.
"""

import hashlib
import hmac
import json

SIGNATURE_FIELD = "signature"


def canonical_json(document: dict) -> str:
    return json.dumps(document, sort_keys=True, separators=(",", ":"), default=str)


def sign(document: dict, secret: str) -> str:
    unsigned = {k: v for k, v in document.items() if k != SIGNATURE_FIELD}
    return hmac.new(secret.encode("utf-8"), canonical_json(unsigned).encode("utf-8"), hashlib.sha256).hexdigest()


def verify(payload: dict, secret: str) -> bool:
    """Constant-time check of ``payload["signature"]`` against ``secret``."""
    provided = payload.get(SIGNATURE_FIELD)
    if not isinstance(provided, str) or not provided:
        return False
    return hmac.compare_digest(sign(payload, secret), provided)
