import re
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from options_platform.errors import ValidationError

_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_QUOTED_HANDLER = re.compile(r"""on\w+\s*=\s*["'][^"']*["']""", re.IGNORECASE)
_BARE_HANDLER = re.compile(r"on\w+\s*=\s*[^\s>]*", re.IGNORECASE)
_JS_SCHEME = re.compile(r"javascript:", re.IGNORECASE)


def sanitize_html(html: str) -> str:
    """Strip script blocks, inline event handlers and javascript: URLs."""
    cleaned = _SCRIPT_BLOCK.sub("", html)
    cleaned = _QUOTED_HANDLER.sub("", cleaned)
    cleaned = _BARE_HANDLER.sub("", cleaned)
    return _JS_SCHEME.sub("", cleaned)


class EmailNotification(BaseModel):
    subject: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=10000)

    @field_validator("subject", "message", mode="before")
    @classmethod
    def strip_whitespace(cls, value):
        return value.strip() if isinstance(value, str) else value


def first_error(exc: PydanticValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Validation failed"
    err = errors[0]
    location = ".".join(str(part) for part in err.get("loc", ()))
    return f"{location}: {err.get('msg')}" if location else err.get("msg", "Validation failed")


def validate_and_sanitize_email_content(subject: str, message: str) -> dict:
    try:
        content = EmailNotification(subject=subject, message=message)
    except PydanticValidationError as exc:
        raise ValidationError(first_error(exc)) from exc
    return {
        "subject": sanitize_html(content.subject),
        "message": sanitize_html(content.message),
    }


def validate_recipients(user_ids: Optional[List[str]]) -> List[str]:
    if not user_ids:
        raise ValidationError("At least one recipient is required")
    try:
        return [str(UUID(str(user_id))) for user_id in user_ids]
    except ValueError as exc:
        raise ValidationError(f"Invalid recipient id: {exc}") from exc
