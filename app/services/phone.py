"""Mobile-money phone normalization: local 07X... or 2507X... -> canonical 2507XXXXXXXX."""

import re

from app.core.exceptions import BadRequestError

NETWORK_PREFIXES = ("78", "79")
COUNTRY_PREFIX = "25"

_STRIP_RE = re.compile(r"[\s\-()]")
_LOCAL_RE = re.compile(r"^0(?P<subscriber>\d{9})$")
_INTERNATIONAL_RE = re.compile(r"^\+?25(?P<local>0\d{9})$")


def normalize(raw_phone: str | None) -> str:
    """Return canonical international form (no '+'); raise BadRequestError otherwise."""
    if raw_phone is None:
        raise BadRequestError("Phone number is required", details={"phone": raw_phone})
    cleaned = _STRIP_RE.sub("", str(raw_phone))
    m = _INTERNATIONAL_RE.match(cleaned)
    local = m.group("local") if m else cleaned
    m = _LOCAL_RE.match(local)
    if not m or not m.group("subscriber").startswith(NETWORK_PREFIXES):
        raise BadRequestError(f"Invalid phone number: {raw_phone!r}", details={"phone": raw_phone})
    return f"{COUNTRY_PREFIX}{local}"
