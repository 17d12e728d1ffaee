"""
Field-level normalization for CSV cells.

None of these raise: an unusable value degrades to a documented default
(False / parse time / 0 / Pending) so one bad cell never costs the row.
"""
from __future__ import annotations

import math
import re
import unicodedata
from datetime import datetime, timezone
from typing import Iterable, Optional

from dateutil import parser as date_parser

from app.schemas.record import UNKNOWN_PARTNER, FinalGrade

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")
_DATE_PARTS = re.compile(r"[/\s]")

PASS_TOKENS = frozenset({"pass", "passed", "reussi", "succes", "aprobado", "bestanden"})
FAIL_TOKENS = frozenset({"fail", "failed", "echoue", "echec", "suspenso", "nicht bestanden"})


def fold_text(value: str) -> str:
    """Lower-case and strip diacritics: 'Réussi' -> 'reussi'."""
    decomposed = unicodedata.normalize("NFKD", value.strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def fold_tokens(tokens: Iterable[str]) -> frozenset[str]:
    return frozenset(fold_text(t) for t in tokens)


def parse_bool(value: str, truthy: frozenset[str]) -> bool:
    if not value:
        return False
    return fold_text(value) in truthy


def _to_naive(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_date(value: str, now: datetime) -> Optional[datetime]:
    """
    DD/MM/YYYY is recognised when the first slash component exceeds 12,
    otherwise month-first. Unparseable values fall back to ``now``.
    """
    if not value:
        return None

    candidate = value
    if "/" in value:
        parts = _DATE_PARTS.split(value)
        try:
            first = int(parts[0])
        except ValueError:
            first = None
        if first is not None and 12 < first <= 31 and len(parts) >= 3:
            candidate = " ".join([f"{parts[2]}-{parts[1]}-{parts[0]}", *parts[3:]]).strip()

    try:
        return _to_naive(date_parser.parse(candidate))
    except (ValueError, OverflowError):
        return now


def parse_int(value: str) -> int:
    """Reads the leading number once symbols are stripped: '12.5.3' -> 13, '1-2' -> 1."""
    if not value:
        return 0
    match = _LEADING_NUMBER.match(_NON_NUMERIC.sub("", value))
    if not match:
        return 0
    number = float(match.group())
    if math.isnan(number) or math.isinf(number):
        return 0
    return math.floor(number + 0.5)


def parse_grade(value: str) -> FinalGrade:
    if not value:
        return FinalGrade.PENDING
    s = fold_text(value)
    if s in PASS_TOKENS or "pass" in s:
        return FinalGrade.PASS
    if s in FAIL_TOKENS:
        return FinalGrade.FAIL
    return FinalGrade.PENDING


def resolve_partner(raw_code: str, raw_name: str) -> tuple[str, str]:
    """
    'HEDERA-FR - Paris' keeps only the 'HEDERA-FR' prefix as the code.
    A missing side mirrors the other; both missing -> UNKNOWN.
    """
    code = raw_code.strip()
    if " - " in code:
        code = code.split(" - ")[0].strip()
    name = raw_name.strip()

    if not code and name:
        code = name
    if not name and code:
        name = code

    return code or UNKNOWN_PARTNER, name or UNKNOWN_PARTNER
