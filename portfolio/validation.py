"""
Field validation and normalization for projects, contacts and credentials.

These are plain functions called explicitly by the services before
anything is persisted. Each collects every field problem it finds and
raises a single ``ValidationError`` listing them.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Optional

from portfolio.errors import ValidationError

CATEGORIES = ("web", "ai", "mobile", "desktop", "game", "embedded", "other")
DEFAULT_CATEGORY = "web"
CONTACT_STATUSES = ("new", "reviewed", "archived")

TITLE_MAX = 100
DESCRIPTION_MIN = 50
DESCRIPTION_MAX = 2000
MESSAGE_MIN = 10
MESSAGE_MAX = 2000
PHONE_MAX = 20
PASSWORD_MIN = 6
PASSWORD_MAX_BYTES = 72

URL_PATTERN = re.compile(
    r"^(https?://)?([\da-z.-]+)\.([a-z.]{2,6})[/\w .-]*/?$", re.IGNORECASE
)
EMAIL_PATTERN = re.compile(r"^\w+([.-]\w+)*@\w+([.-]\w+)*(\.\w{2,3})+$")
PHONE_PATTERN = re.compile(r"^[0-9+\-\s]+$")

PROJECT_FIELDS = (
    "title",
    "description",
    "tags",
    "category",
    "featured",
    "github",
    "live",
)

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off", ""}


class _Errors:
    def __init__(self):
        self.items: list[dict[str, str]] = []

    def add(self, field: str, message: str) -> None:
        self.items.append({"field": field, "message": message})

    def raise_if_any(self) -> None:
        if self.items:
            raise ValidationError(self.items, message=self.items[0]["message"])


def split_tags(value: Any) -> list[str]:
    """
    Normalizes tag input into a list of non-empty trimmed strings.

    Accepts a list, a comma-separated string, or a list of comma-separated
    strings (repeated multipart fields).
    """
    if value is None:
        return []
    if isinstance(value, str):
        pieces: Iterable[Any] = [value]
    else:
        pieces = value
    tags: list[str] = []
    for piece in pieces:
        for tag in str(piece).split(","):
            tag = tag.strip()
            if tag:
                tags.append(tag)
    return tags


def parse_bool(value: Any) -> Optional[bool]:
    """Parses a form/query boolean. Returns None when the value is unrecognized."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return None


def _clean_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def validate_category(value: Any, field: str = "category") -> str:
    category = str(value).strip().lower()
    if category not in CATEGORIES:
        raise ValidationError.for_field(
            field, f"Category must be one of: {', '.join(CATEGORIES)}"
        )
    return category


def validate_contact_status(value: Any, field: str = "status") -> str:
    status = str(value).strip().lower()
    if status not in CONTACT_STATUSES:
        raise ValidationError.for_field(
            field, f"Status must be one of: {', '.join(CONTACT_STATUSES)}"
        )
    return status


def normalize_project_fields(
    raw: Mapping[str, Any], *, partial: bool = False
) -> dict[str, Any]:
    """
    Normalizes only the project fields present in `raw`.

    Absent keys stay absent so the result can be merged onto an existing
    record for a partial update. With `partial`, a blank category or
    featured value also counts as absent instead of resetting the stored
    value to its default. Values that cannot be parsed are reported but
    no length/shape invariants are checked here; see `validate_project`.
    """
    errors = _Errors()
    fields: dict[str, Any] = {}
    for name in PROJECT_FIELDS:
        if name not in raw or raw[name] is None:
            continue
        value = raw[name]
        if partial and name in ("category", "featured") and not str(value).strip():
            continue
        if name in ("title", "description"):
            fields[name] = str(value).strip()
        elif name == "tags":
            fields[name] = split_tags(value)
        elif name == "category":
            text = str(value).strip().lower()
            fields[name] = text or DEFAULT_CATEGORY
        elif name == "featured":
            parsed = parse_bool(value)
            if parsed is None:
                errors.add("featured", "Featured must be true or false")
            else:
                fields[name] = parsed
        else:
            fields[name] = _clean_optional_str(value)
    errors.raise_if_any()
    return fields


def validate_project(fields: Mapping[str, Any]) -> None:
    """
    Checks a complete set of project fields against the record invariants.

    Raises:
        ValidationError: Listing every field that violates an invariant.
    """
    errors = _Errors()

    title = fields.get("title") or ""
    if not title:
        errors.add("title", "Title is required")
    elif len(title) > TITLE_MAX:
        errors.add("title", f"Title cannot exceed {TITLE_MAX} characters")

    description = fields.get("description") or ""
    if not description:
        errors.add("description", "Description is required")
    elif len(description) < DESCRIPTION_MIN:
        errors.add(
            "description",
            f"Description should be at least {DESCRIPTION_MIN} characters",
        )
    elif len(description) > DESCRIPTION_MAX:
        errors.add(
            "description",
            f"Description cannot exceed {DESCRIPTION_MAX} characters",
        )

    if not fields.get("tags"):
        errors.add("tags", "At least one tag is required")

    if fields.get("category", DEFAULT_CATEGORY) not in CATEGORIES:
        errors.add("category", f"Category must be one of: {', '.join(CATEGORIES)}")

    for name in ("github", "live"):
        url = fields.get(name)
        if url and not URL_PATTERN.match(url):
            errors.add(name, "Please enter a valid URL")

    errors.raise_if_any()


def validate_contact(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Validates a public contact submission and returns the normalized fields."""
    errors = _Errors()

    email = (_clean_optional_str(raw.get("email")) or "").lower()
    if not email:
        errors.add("email", "Email is required")
    elif not EMAIL_PATTERN.match(email):
        errors.add("email", "Please enter a valid email")

    phone = _clean_optional_str(raw.get("phone"))
    if phone is not None:
        if len(phone) > PHONE_MAX:
            errors.add("phone", "Phone number too long")
        elif not PHONE_PATTERN.match(phone):
            errors.add("phone", "Phone number contains invalid characters")

    message = (_clean_optional_str(raw.get("message")) or "")
    if len(message) < MESSAGE_MIN:
        errors.add("message", f"Message must be at least {MESSAGE_MIN} characters")
    elif len(message) > MESSAGE_MAX:
        errors.add("message", f"Message cannot exceed {MESSAGE_MAX} characters")

    errors.raise_if_any()
    return {"email": email, "phone": phone, "message": message}


def validate_credentials(
    username: Any, password: Any, *, check_length: bool = False
) -> tuple[str, str]:
    username = _clean_optional_str(username) or ""
    password = "" if password is None else str(password)
    if not username or not password:
        raise ValidationError(
            [
                {"field": name, "message": "Username and password required"}
                for name, value in (("username", username), ("password", password))
                if not value
            ],
            message="Username and password required",
        )
    if check_length and len(password) < PASSWORD_MIN:
        raise ValidationError.for_field(
            "password", f"Password must be at least {PASSWORD_MIN} characters"
        )
    # bcrypt only accepts up to 72 bytes of input
    if check_length and len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValidationError.for_field(
            "password", f"Password cannot exceed {PASSWORD_MAX_BYTES} bytes"
        )
    return username, password
