"""ID generation utilities."""

import secrets
import string
import uuid


def generate_nanoid(length: int = 21) -> str:
    """Generate a URL-safe random ID of the given length."""
    alphabet = string.ascii_letters + string.digits + "_-"
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_request_id() -> str:
    """Generate a request ID for error tracking."""
    return generate_nanoid(21)


def generate_vm_name(prefix: str = "vbrowser") -> str:
    """Generate a provider-safe instance name.

    The name doubles as the browser container's password, so it must be
    unguessable as well as unique.
    """
    return f"{prefix}-{uuid.uuid4().hex}"
