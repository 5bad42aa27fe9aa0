"""
Common utility functions and helpers.
"""
from typing import Any, Union
import hashlib
import re


def generate_hash(data: Union[str, bytes]) -> str:
    """
    Generate SHA256 hash of text or raw bytes.

    Args:
        data: Text (encoded as UTF-8) or bytes to hash

    Returns:
        Hex digest of hash
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def slugify_email(email: str) -> str:
    """
    Build an organization slug from the local part of an email address.

    Lower-cases the part before ``@`` and replaces every character outside
    ``[a-z0-9]`` with a hyphen, so ``"Jane.Doe@x.com"`` becomes ``"jane-doe"``.
    """
    local_part = email.split('@')[0].lower()
    return re.sub(r'[^a-z0-9]', '-', local_part)


def slugify(name: str) -> str:
    """Lower-case *name* and collapse non-alphanumeric runs into single hyphens."""
    slug = re.sub(r'[^a-z0-9]+', '-', name.lower())
    return slug.strip('-') or 'organization'


def clamp(value: Any, lo: float, hi: float, default: float) -> float:
    """Parse *value* as float clamped to [lo, hi]; *default* when it is not numeric."""
    if isinstance(value, bool):
        return default
    try:
        return max(lo, min(hi, float(value)))
    except (TypeError, ValueError):
        return default

