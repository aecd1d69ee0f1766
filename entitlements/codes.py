"""
Voucher Code Generation

Codes look like ``VOUCHER_7KQ2ZD`` or ``VOUCHER_7KQ2ZD_MAY``:
prefix, separator, random body, and an optional suffix.

Uniqueness is not checked here; callers dedup (see bulk_issuer).
"""

import secrets
from dataclasses import dataclass
from typing import Optional

from config import settings

DEFAULT_CHARSET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


@dataclass(frozen=True)
class CodeTemplate:
    """Shape of a generated voucher code"""
    prefix: str
    body_length: int = settings.CODE_BODY_LENGTH
    charset: str = settings.CODE_CHARSET or DEFAULT_CHARSET
    suffix: Optional[str] = None
    separator: str = settings.CODE_SEPARATOR

    def __post_init__(self):
        if self.body_length < 1:
            raise ValueError("body_length must be at least 1")
        if not self.charset:
            raise ValueError("charset must not be empty")

    @property
    def distinct_bodies(self) -> int:
        """Number of distinct codes this template can produce"""
        return len(set(self.charset)) ** self.body_length


def random_body(length: int, charset: str = DEFAULT_CHARSET) -> str:
    """Draw ``length`` characters uniformly from ``charset``"""
    return "".join(secrets.choice(charset) for _ in range(length))


def generate_code(template: CodeTemplate) -> str:
    """Produce a single random code from a template"""
    code = f"{template.prefix}{template.separator}{random_body(template.body_length, template.charset)}"
    if template.suffix:
        code = f"{code}{template.separator}{template.suffix}"
    return code
