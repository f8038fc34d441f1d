"""Indicator classification and strict validation.

``classify`` is best-effort shape detection and never fails: anything that
is not recognisably an IP, URL, hash or email is called a domain.
``validate`` is the hard gate applied before an indicator is stored.
"""

import re
from urllib.parse import urlparse

_IPV4_SHAPE = re.compile(r"^(?:[0-9]{1,3}\.){3}[0-9]{1,3}$")
_URL_PREFIX = re.compile(r"^https?://", re.IGNORECASE)
_HASH_SHAPE = re.compile(r"^(?:[a-fA-F0-9]{32}|[a-fA-F0-9]{40}|[a-fA-F0-9]{64})$")
_EMAIL_SHAPE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_DOMAIN_LABEL = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")
_TLD = re.compile(r"^[a-zA-Z]{2,63}$")

# md5, sha1, sha256
HASH_LENGTHS = (32, 40, 64)

MIN_INDICATOR_LENGTH = 3
MAX_DOMAIN_LENGTH = 253
MAX_EMAIL_LENGTH = 254


def classify(value: str) -> str:
    """Detect the indicator type from its shape."""
    value = value.strip()
    if _IPV4_SHAPE.match(value):
        return "ip"
    if _URL_PREFIX.match(value):
        return "url"
    if _HASH_SHAPE.match(value):
        return "hash"
    if _EMAIL_SHAPE.match(value):
        return "email"
    return "domain"


def is_valid_ipv4(value: str) -> bool:
    if not _IPV4_SHAPE.match(value):
        return False
    return all(int(octet) <= 255 for octet in value.split("."))


def is_valid_domain(value: str) -> bool:
    if not value or len(value) > MAX_DOMAIN_LENGTH or ".." in value:
        return False
    labels = value.split(".")
    if len(labels) < 2:
        return False
    if not all(_DOMAIN_LABEL.match(label) for label in labels):
        return False
    return bool(_TLD.match(labels[-1]))


def is_valid_hash(value: str) -> bool:
    return len(value) in HASH_LENGTHS and bool(_HASH_SHAPE.match(value))


def is_valid_url(value: str) -> bool:
    if any(ch.isspace() for ch in value):
        return False
    try:
        parsed = urlparse(value)
        host = parsed.hostname
    except ValueError:
        return False
    return parsed.scheme.lower() in ("http", "https") and bool(host)


def is_valid_email(value: str) -> bool:
    if len(value) > MAX_EMAIL_LENGTH or not _EMAIL_SHAPE.match(value):
        return False
    return is_valid_domain(value.rsplit("@", 1)[1])


_VALIDATORS = {
    "ip": is_valid_ipv4,
    "domain": is_valid_domain,
    "hash": is_valid_hash,
    "url": is_valid_url,
    "email": is_valid_email,
}


def validate(value: str, indicator_type: str | None = None) -> bool:
    """Check ``value`` against the strict pattern for ``indicator_type``.

    With no type given the value is classified first. Unknown types never
    validate.
    """
    if not value or len(value) < MIN_INDICATOR_LENGTH:
        return False
    checker = _VALIDATORS.get(indicator_type or classify(value))
    if checker is None:
        return False
    return checker(value)
