"""Input validation utilities for navguard.

Address-bar text goes through ``validate_url`` before anything navigates to
it. The result is either a canonical, markup-free http(s) URL or a
``ValidationError`` carrying an ``ErrorCode``; there is no partial answer.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from protocols import describe_allowed, is_protocol_allowed
from sanitizer import sanitize
from urlcanon import SCHEME_RE, parse_url, reject_control_characters

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    INVALID_TYPE = "INVALID_TYPE"
    EMPTY_URL = "EMPTY_URL"
    MALFORMED_URL = "MALFORMED_URL"
    PROTOCOL_NOT_ALLOWED = "PROTOCOL_NOT_ALLOWED"
    INVALID_HOSTNAME = "INVALID_HOSTNAME"


class ValidationError(ValueError):
    """A URL was refused. ``code`` says why, ``message`` is human readable."""

    def __init__(self, message: str, code: ErrorCode):
        super().__init__(message)
        self.message = message
        self.code = code

    def to_dict(self):
        return {"code": self.code.value, "message": self.message}


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    sanitized: str
    protocol: str

    def to_dict(self):
        return {"valid": self.valid, "sanitized": self.sanitized, "protocol": self.protocol}


@dataclass(frozen=True)
class BatchItemResult:
    url: object
    result: Optional[ValidationResult] = None
    error: Optional[ValidationError] = None

    def to_dict(self):
        return {
            "url": self.url if isinstance(self.url, str) else None,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error.to_dict() if self.error else None,
        }


def _reject(message: str, code: ErrorCode, raw) -> ValidationError:
    logger.debug("Rejected URL %.100r: %s (%s)", raw, message, code.value)
    return ValidationError(message, code)


def validate_url(raw_url) -> ValidationResult:
    """Validate and normalize a user-supplied URL.

    Bare hosts such as ``example.com`` are assumed to be https. Markup is
    stripped before parsing and again from the canonical form, so query or
    fragment content cannot smuggle tags through.

    Raises ValidationError on any failure.
    """
    if not isinstance(raw_url, str):
        raise _reject("URL must be a string", ErrorCode.INVALID_TYPE, raw_url)

    raw = raw_url.strip()
    if not raw:
        raise _reject("URL cannot be empty", ErrorCode.EMPTY_URL, raw_url)

    # The sanitizer rewrites control characters, so look for them first.
    try:
        reject_control_characters(raw)
    except ValueError as e:
        raise _reject(f"Invalid URL format: {e}", ErrorCode.MALFORMED_URL, raw_url) from e

    cleaned = sanitize(raw)

    if not SCHEME_RE.match(cleaned):
        cleaned = "https://" + cleaned

    try:
        parsed = parse_url(cleaned)
    except ValueError as e:
        raise _reject(f"Invalid URL format: {e}", ErrorCode.MALFORMED_URL, raw_url) from e

    if not is_protocol_allowed(parsed.protocol):
        raise _reject(
            f"Protocol '{parsed.protocol}' not allowed. "
            f"Only {describe_allowed()} are permitted.",
            ErrorCode.PROTOCOL_NOT_ALLOWED,
            raw_url,
        )

    if " " in parsed.hostname:
        raise _reject(
            "Invalid hostname: spaces not allowed", ErrorCode.INVALID_HOSTNAME, raw_url
        )

    return ValidationResult(
        valid=True,
        sanitized=sanitize(parsed.geturl()),
        protocol=parsed.protocol,
    )


def _validate_item(raw_url) -> BatchItemResult:
    try:
        return BatchItemResult(url=raw_url, result=validate_url(raw_url))
    except ValidationError as error:
        return BatchItemResult(url=raw_url, error=error)


def validate_many(raw_urls, max_workers: Optional[int] = None):
    """Validate each URL independently, preserving input order.

    One bad entry never affects the others. With ``max_workers`` > 1 the
    entries are validated on a thread pool.
    """
    if not isinstance(raw_urls, (list, tuple)):
        raise TypeError("URLs must be an array (list or tuple)")

    if max_workers and max_workers > 1 and len(raw_urls) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(_validate_item, raw_urls))
    return [_validate_item(raw_url) for raw_url in raw_urls]
