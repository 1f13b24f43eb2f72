"""HMAC-signed cookie values (``<token>.<signature>``)."""

import hashlib
import hmac


def _signature(value: str, secret: str) -> str:
    return hmac.new(secret.encode(), value.encode(), hashlib.sha256).hexdigest()


def sign(value: str, secret: str) -> str:
    return f"{value}.{_signature(value, secret)}"


def unsign(signed: str | None, secret: str) -> str | None:
    """The original value, or None if the signature does not match."""
    if not signed or "." not in signed:
        return None
    value, signature = signed.rsplit(".", 1)
    if not hmac.compare_digest(signature, _signature(value, secret)):
        return None
    return value
