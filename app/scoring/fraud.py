"""
Fraud detectors.

Each detector looks at one signal and returns the flags it raises.
Detectors never mutate records; the engine unions their output.

Pass 1 (per record, with a dataset-wide wallet table):
  - Velocity      → Bot Activity / Speed Run
  - Wallet reuse  → Sybil
  - Email         → Email Alias / Disposable Email

Pass 2 (whole dataset, after Pass 1):
  - Name / email-local-part roots shared by 3+ records → Batch Pattern
"""
from __future__ import annotations

import re
from collections import Counter, defaultdict
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from app.schemas.record import PLACEHOLDER_EMAIL_DOMAIN, DeveloperRecord, FinalGrade, RiskFlag


# ═══════════════════════════════════════════════════════════════
# Thresholds
# ═══════════════════════════════════════════════════════════════
SPEED_RUN_MAX_HOURS = 4.0
BOT_ACTIVITY_MAX_HOURS = 0.5

WALLET_MIN_LENGTH = 5           # addresses of this length or shorter are ignored
WALLET_PLACEHOLDERS = frozenset({"", "n/a", "none"})

BATCH_PATTERN_MIN_RECORDS = 3
BATCH_ROOT_MIN_LENGTH = 3       # roots of this length or shorter are ignored

_WHITESPACE = re.compile(r"\s+")
_TRAILING_NOISE = re.compile(r"[\d._\-]+$")


# ═══════════════════════════════════════════════════════════════
# Velocity
# ═══════════════════════════════════════════════════════════════
def detect_velocity(
    grade: FinalGrade,
    duration: Optional[float],
    data_error: bool,
) -> list[RiskFlag]:
    """Only certified, positive, trustworthy durations are judged."""
    if grade != FinalGrade.PASS or data_error or duration is None:
        return []
    if not 0 < duration < SPEED_RUN_MAX_HOURS:
        return []
    if duration < BOT_ACTIVITY_MAX_HOURS:
        return [RiskFlag.BOT_ACTIVITY]
    return [RiskFlag.SPEED_RUN]


# ═══════════════════════════════════════════════════════════════
# Wallet reuse (Sybil)
# ═══════════════════════════════════════════════════════════════
def normalize_wallet(address: Optional[str]) -> Optional[str]:
    if not address or len(address) <= WALLET_MIN_LENGTH:
        return None
    wallet = address.strip().lower()
    if wallet in WALLET_PLACEHOLDERS:
        return None
    return wallet


def build_wallet_index(records: Iterable[DeveloperRecord]) -> Mapping[str, int]:
    """Read-only wallet → occurrence count, built once per ingestion."""
    counts: Counter[str] = Counter()
    for record in records:
        wallet = normalize_wallet(record.wallet_address)
        if wallet:
            counts[wallet] += 1
    return MappingProxyType(dict(counts))


def detect_sybil(wallet_address: Optional[str], wallet_index: Mapping[str, int]) -> list[RiskFlag]:
    wallet = normalize_wallet(wallet_address)
    if wallet and wallet_index.get(wallet, 0) > 1:
        return [RiskFlag.SYBIL]
    return []


# ═══════════════════════════════════════════════════════════════
# Email forensics
# ═══════════════════════════════════════════════════════════════
def split_email(email: Optional[str]) -> tuple[str, str]:
    if not email:
        return "", ""
    local, _, domain = email.strip().lower().partition("@")
    return local, domain


def detect_email_flags(email: Optional[str], disposable_domains: Iterable[str]) -> list[RiskFlag]:
    local, domain = split_email(email)
    flags: list[RiskFlag] = []
    if "+" in local:
        flags.append(RiskFlag.EMAIL_ALIAS)
    if domain and domain in {d.lower() for d in disposable_domains}:
        flags.append(RiskFlag.DISPOSABLE_EMAIL)
    return flags


# ═══════════════════════════════════════════════════════════════
# Batch registration patterns
# ═══════════════════════════════════════════════════════════════
def normalize_root(value: Optional[str]) -> str:
    """'John Doe 02' → 'johndoe'; 'jdoe_17' → 'jdoe'."""
    if not value:
        return ""
    return _TRAILING_NOISE.sub("", _WHITESPACE.sub("", value.lower()))


def name_root(record: DeveloperRecord) -> str:
    return normalize_root(f"{record.first_name}{record.last_name}")


def email_root(record: DeveloperRecord) -> str:
    """Addresses filled in by the parser for blank cells have no root."""
    local, domain = split_email(record.email)
    if domain == PLACEHOLDER_EMAIL_DOMAIN:
        return ""
    return normalize_root(local)


def _clustered_ids(groups: Mapping[str, set[str]]) -> set[str]:
    flagged: set[str] = set()
    for ids in groups.values():
        if len(ids) >= BATCH_PATTERN_MIN_RECORDS:
            flagged |= ids
    return flagged


def find_batch_pattern_ids(records: Iterable[DeveloperRecord]) -> frozenset[str]:
    """Name roots and email roots are grouped independently."""
    by_name: defaultdict[str, set[str]] = defaultdict(set)
    by_email: defaultdict[str, set[str]] = defaultdict(set)

    for record in records:
        root = name_root(record)
        if len(root) > BATCH_ROOT_MIN_LENGTH:
            by_name[root].add(record.id)
        root = email_root(record)
        if len(root) > BATCH_ROOT_MIN_LENGTH:
            by_email[root].add(record.id)

    return frozenset(_clustered_ids(by_name) | _clustered_ids(by_email))


def merge_flags(existing: Iterable[RiskFlag], new: Iterable[RiskFlag]) -> list[RiskFlag]:
    """Order-preserving union."""
    merged = list(existing)
    for flag in new:
        if flag not in merged:
            merged.append(flag)
    return merged
