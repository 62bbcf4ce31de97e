from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime

import dns.exception
import dns.resolver
import pandas as pd

"""Row validation helpers: email syntax, email domain liveness, birth dates, ages."""

__all__ = [
    "ValidationError",
    "active_email_domain",
    "age_on",
    "missing_fields",
    "parse_birthdate",
    "parse_datetime",
    "valid_email_address",
]


class ValidationError(Exception):
    """Missing or malformed required field; the row is skipped without remote calls."""


# Drupal's valid_email_address pattern
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9_\-\.\+\^!#\$%&*+\/\=\?\`\|\{\}~\']+"
    r"@((?:(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9\-]*[a-zA-Z0-9])\.?)+"
    r"|(\[([0-9]{1,3}(\.[0-9]{1,3}){3}|[0-9a-fA-F]{1,4}(\:[0-9a-fA-F]{1,4}){7})\]))$"
)


def valid_email_address(email: str) -> bool:
    return _EMAIL_RE.match(email) is not None


def active_email_domain(email: str) -> bool:
    """True when the address's domain has an MX record, or failing that an A record."""
    _, sep, domain = email.rpartition("@")
    if not sep or not domain:
        return False
    for rdtype in ("MX", "A"):
        try:
            dns.resolver.resolve(domain.strip("[]"), rdtype)
        except dns.exception.DNSException:
            continue
        return True
    return False


def parse_birthdate(value: str) -> date:
    """Parse a spreadsheet date cell; raises ValidationError when unparseable."""
    return parse_datetime(value).date()


def parse_datetime(value: str) -> datetime:
    try:
        stamp = pd.to_datetime(value)
    except (ValueError, TypeError, OverflowError) as e:
        raise ValidationError(f"invalid date {value!r}: {e}") from e
    if pd.isna(stamp):
        raise ValidationError(f"invalid date {value!r}")
    return stamp.to_pydatetime()


def age_on(birthdate: date, today: date) -> int:
    """Whole years between ``birthdate`` and ``today`` (birthday counts on the day)."""
    had_birthday = (today.month, today.day) >= (birthdate.month, birthdate.day)
    return today.year - birthdate.year - (0 if had_birthday else 1)


def missing_fields(values: Mapping[str, str], required: Iterable[str]) -> list[str]:
    return [f for f in required if not values.get(f)]
