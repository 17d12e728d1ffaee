"""
Record Parser — raw CSV text → DeveloperRecord candidates.

Steps:
  1. Strip BOM, split lines, drop blanks
  2. Infer delimiter (comma / semicolon / tab) from the header line
  3. Resolve canonical fields to header indices (exact, then fuzzy)
  4. Parse rows in fixed-size chunks, reporting progress after each

Structural problems raise ParseError before any row is read.
Row-level problems never raise (see normalizers).
"""
from __future__ import annotations

import re
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Callable, Iterable, Iterator, Optional

import structlog

from app.core.config import get_settings
from app.ingestion.normalizers import (
    fold_tokens,
    parse_bool,
    parse_date,
    parse_grade,
    parse_int,
    resolve_partner,
)
from app.schemas.record import PLACEHOLDER_EMAIL_DOMAIN, DeveloperRecord

logger = structlog.get_logger()

ProgressCallback = Callable[[int], None]

BOM = "\ufeff"
_LINE_BREAK = re.compile(r"\r\n|\n|\r")
_WHITESPACE = re.compile(r"\s+")

# Registry exports have a code column and only a handful of columns
REGISTRY_MAX_COLUMNS = 5


class ParseError(ValueError):
    """Structural failure: the whole file is rejected."""


class WrongFileTypeError(ParseError):
    """The upload looks like a different export (e.g. the community registry)."""


# ═══════════════════════════════════════════════════════════════
# Column synonyms: exact matches are tried before substring matches
# ═══════════════════════════════════════════════════════════════
COLUMN_SYNONYMS: dict[str, tuple[str, ...]] = {
    "email": ("email",),
    "first_name": ("first name", "firstname"),
    "last_name": ("last name", "lastname"),
    "phone": ("phone number", "phone"),
    "country": ("country",),
    "membership": ("accepted membership", "membership", "is member", "member status", "membership status"),
    "marketing": ("accepted marketing", "marketing"),
    "wallet": ("wallet address", "wallet"),
    "partner_code": ("code", "partner code"),
    "partner_name": ("partner", "community", "partner name"),
    "percentage": ("percentage completed", "percentage"),
    "created_at": ("created at", "start date"),
    "completed_at": ("completed at", "completion date"),
    "final_score": ("final score",),
    "final_grade": ("final grade", "grade"),
    "ca_status": ("ca status",),
}

MISSING = -1


@dataclass(frozen=True)
class ColumnMap:
    email: int
    first_name: int
    last_name: int
    phone: int
    country: int
    membership: int
    marketing: int
    wallet: int
    partner_code: int
    partner_name: int
    percentage: int
    created_at: int
    completed_at: int
    final_score: int
    final_grade: int
    ca_status: int

    def resolved(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) != MISSING}


@dataclass(frozen=True)
class ParsedChunk:
    records: list[DeveloperRecord]
    skipped_rows: int
    progress: int  # 0-100


# ═══════════════════════════════════════════════════════════════
# Line-level helpers
# ═══════════════════════════════════════════════════════════════

def split_lines(text: str) -> list[str]:
    if text.startswith(BOM):
        text = text[1:]
    return [line for line in _LINE_BREAK.split(text) if line.strip()]


def detect_delimiter(header_line: str) -> str:
    commas = header_line.count(",")
    semis = header_line.count(";")
    tabs = header_line.count("\t")

    if semis > commas and semis > tabs:
        return ";"
    if tabs > commas and tabs > semis:
        return "\t"
    return ","


def split_line(line: str, delimiter: str) -> list[str]:
    """
    Quote-aware split. `""` is a literal quote; the delimiter is
    ordinary text while inside quotes.
    """
    result: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    n = len(line)

    while i < n:
        ch = line[i]
        if ch == '"' and i + 1 < n and line[i + 1] == '"':
            current.append('"')
            i += 2
            continue
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == delimiter and not in_quotes:
            result.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    result.append("".join(current).strip())

    return [_unwrap(v) for v in result]


def _unwrap(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def normalize_header(header: str) -> str:
    return _WHITESPACE.sub(" ", header.lower()).strip()


# ═══════════════════════════════════════════════════════════════
# Column resolution
# ═══════════════════════════════════════════════════════════════

def find_column(headers: list[str], candidates: Iterable[str]) -> int:
    wanted = [c.lower() for c in candidates]

    for idx, header in enumerate(headers):
        if header in wanted:
            return idx

    for idx, header in enumerate(headers):
        if not header:
            continue
        if any(header in c or c in header for c in wanted):
            return idx

    return MISSING


def resolve_columns(headers: list[str]) -> ColumnMap:
    found = {name: find_column(headers, synonyms) for name, synonyms in COLUMN_SYNONYMS.items()}

    # A file with only one of code / partner uses it for both
    if found["partner_code"] == MISSING and found["partner_name"] != MISSING:
        found["partner_code"] = found["partner_name"]
    if found["partner_name"] == MISSING and found["partner_code"] != MISSING:
        found["partner_name"] = found["partner_code"]

    if found["email"] == MISSING:
        if found["partner_code"] != MISSING and len(headers) < REGISTRY_MAX_COLUMNS:
            raise WrongFileTypeError(
                "It looks like you uploaded a Community Registry file. Use Admin Settings > Registry."
            )
        raise ParseError(f"Column 'Email' not found. Found: {', '.join(headers)}")

    return ColumnMap(**found)


# ═══════════════════════════════════════════════════════════════
# Parser
# ═══════════════════════════════════════════════════════════════

class RecordParser:
    """
    One parser per uploaded file. Construction validates structure;
    iter_chunks() / parse() read the rows.
    """

    def __init__(
        self,
        text: str,
        *,
        chunk_size: Optional[int] = None,
        truthy_tokens: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ):
        settings = get_settings()
        self.chunk_size = max(1, chunk_size or settings.ingest_chunk_size)
        self.truthy = fold_tokens(truthy_tokens if truthy_tokens is not None else settings.truthy_tokens)
        self.now = now or datetime.now()
        self.stamp = int(self.now.timestamp() * 1000)
        self.batch_id = f"batch_{self.stamp}"

        self.lines = split_lines(text)
        if len(self.lines) < 2:
            raise ParseError("File is empty or missing data rows.")

        self.delimiter = detect_delimiter(self.lines[0])
        self.headers = [normalize_header(h) for h in split_line(self.lines[0], self.delimiter)]
        self.columns = resolve_columns(self.headers)

        logger.info(
            "columns_resolved",
            batch_id=self.batch_id,
            delimiter=repr(self.delimiter),
            columns=self.columns.resolved(),
            data_rows=self.total_rows,
        )

    @property
    def total_rows(self) -> int:
        return len(self.lines) - 1

    def iter_chunks(self) -> Iterator[ParsedChunk]:
        """Yields after every chunk_size lines — the caller's scheduling point."""
        current = 1
        while current < len(self.lines):
            end = min(current + self.chunk_size, len(self.lines))
            records: list[DeveloperRecord] = []
            skipped = 0

            for line_no in range(current, end):
                cols = split_line(self.lines[line_no], self.delimiter)
                if len(cols) < 2:
                    skipped += 1
                    continue
                records.append(self._build_record(line_no, cols))

            current = end
            progress = round((current - 1) / self.total_rows * 100)
            logger.debug("parse_chunk_complete", batch_id=self.batch_id, rows=len(records), progress=progress)
            yield ParsedChunk(records=records, skipped_rows=skipped, progress=progress)

    def parse(self, on_progress: Optional[ProgressCallback] = None) -> list[DeveloperRecord]:
        records: list[DeveloperRecord] = []
        for chunk in self.iter_chunks():
            records.extend(chunk.records)
            if on_progress:
                on_progress(chunk.progress)
        return records

    def _build_record(self, line_no: int, cols: list[str]) -> DeveloperRecord:
        m = self.columns

        def get(idx: int) -> str:
            if idx == MISSING or idx >= len(cols):
                return ""
            return cols[idx]

        partner_code, partner_name = resolve_partner(get(m.partner_code), get(m.partner_name))
        completed_raw = get(m.completed_at)

        return DeveloperRecord(
            id=f"row_{line_no}_{self.stamp}",
            email=get(m.email) or f"unknown_{line_no}@{PLACEHOLDER_EMAIL_DOMAIN}",
            first_name=get(m.first_name),
            last_name=get(m.last_name),
            phone=get(m.phone),
            country=get(m.country) or "Unknown",
            accepted_membership=parse_bool(get(m.membership), self.truthy),
            accepted_marketing=parse_bool(get(m.marketing), self.truthy),
            wallet_address=get(m.wallet),
            partner_code=partner_code,
            partner_name=partner_name,
            percentage_completed=parse_int(get(m.percentage)),
            created_at=parse_date(get(m.created_at), self.now),
            completed_at=parse_date(completed_raw, self.now) if completed_raw else None,
            final_score=parse_int(get(m.final_score)),
            final_grade=parse_grade(get(m.final_grade)),
            ca_status=get(m.ca_status),
            ingestion_batch_id=self.batch_id,
        )


def parse_csv(
    text: str,
    on_progress: Optional[ProgressCallback] = None,
    **options,
) -> list[DeveloperRecord]:
    return RecordParser(text, **options).parse(on_progress)


