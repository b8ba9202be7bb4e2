import re

from storefront.errors import ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def require_positive_int(v, name: str = "value") -> int:
    if isinstance(v, bool) or not isinstance(v, (int, float)) or int(v) != v:
        raise ValidationError(f"{name} must be an integer")
    if v < 1:
        raise ValidationError(f"{name} must be >= 1")
    return int(v)


def require_email(v: str) -> str:
    if not v or not EMAIL_RE.match(v):
        raise ValidationError("Invalid email format.")
    return v
