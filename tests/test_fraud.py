"""
Unit tests for the AM/PM fix and the individual fraud detectors.
"""
from datetime import datetime, timedelta

import pytest

from app.schemas.record import DeveloperRecord, FinalGrade, RiskFlag
from app.scoring.fraud import (
    build_wallet_index,
    detect_email_flags,
    detect_sybil,
    detect_velocity,
    find_batch_pattern_ids,
    merge_flags,
    normalize_root,
    normalize_wallet,
)
from app.scoring.time_correction import correct_completion, duration_hours

T0 = datetime(2024, 3, 1, 9, 0)
DISPOSABLE = ["yopmail.com", "mailinator.com"]


def _record(rid: str, **kwargs) -> DeveloperRecord:
    defaults = {"id": rid, "email": f"{rid}@example.com", "created_at": T0}
    defaults.update(kwargs)
    return DeveloperRecord(**defaults)


class TestTimeCorrection:
    def test_completion_before_creation_gets_12h(self):
        completed = T0 - timedelta(hours=2)
        assert correct_completion(T0, completed) == completed + timedelta(hours=12)

    def test_ordered_timestamps_unchanged(self):
        completed = T0 + timedelta(hours=3)
        assert correct_completion(T0, completed) == completed

    def test_equal_timestamps_unchanged(self):
        assert correct_completion(T0, T0) == T0

    def test_shift_applied_once_only(self):
        completed = T0 - timedelta(hours=30)
        assert correct_completion(T0, completed) == completed + timedelta(hours=12)

    def test_missing_side_returns_completion(self):
        assert correct_completion(None, T0) == T0
        assert correct_completion(T0, None) is None

    def test_unparseable_strings_returned_untouched(self):
        assert correct_completion("garbage", "2024-03-01T08:00:00") == "2024-03-01T08:00:00"

    def test_iso_strings(self):
        assert correct_completion("2024-03-01T09:00:00", "2024-03-01T02:00:00") == datetime(2024, 3, 1, 14, 0)

    def test_duration_hours(self):
        assert duration_hours(T0, T0 + timedelta(minutes=90)) == 1.5
        assert duration_hours(T0, None) is None


class TestVelocity:
    def test_bot_activity(self):
        assert detect_velocity(FinalGrade.PASS, 0.3, False) == [RiskFlag.BOT_ACTIVITY]

    def test_speed_run(self):
        assert detect_velocity(FinalGrade.PASS, 2.0, False) == [RiskFlag.SPEED_RUN]

    def test_boundary_half_hour_is_speed_run(self):
        assert detect_velocity(FinalGrade.PASS, 0.5, False) == [RiskFlag.SPEED_RUN]

    def test_four_hours_is_not_flagged(self):
        assert detect_velocity(FinalGrade.PASS, 4.0, False) == []

    def test_slow_completion(self):
        assert detect_velocity(FinalGrade.PASS, 10.0, False) == []

    def test_only_passed_records(self):
        assert detect_velocity(FinalGrade.FAIL, 1.0, False) == []
        assert detect_velocity(FinalGrade.PENDING, 1.0, False) == []

    def test_data_error_suppresses(self):
        assert detect_velocity(FinalGrade.PASS, 1.0, True) == []

    def test_zero_or_missing_duration(self):
        assert detect_velocity(FinalGrade.PASS, 0.0, False) == []
        assert detect_velocity(FinalGrade.PASS, None, False) == []


class TestSybil:
    def test_normalize_wallet(self):
        assert normalize_wallet("  0xABCDEF  ") == "0xabcdef"
        assert normalize_wallet("0x1") is None
        assert normalize_wallet("12345") is None
        assert normalize_wallet("") is None
        assert normalize_wallet(None) is None

    def test_shared_wallet_flags_both(self):
        records = [
            _record("a", wallet_address="0xDEADBEEF01"),
            _record("b", wallet_address=" 0xdeadbeef01 "),
            _record("c", wallet_address="0xCAFEBABE99"),
        ]
        index = build_wallet_index(records)

        assert detect_sybil("0xDEADBEEF01", index) == [RiskFlag.SYBIL]
        assert detect_sybil("0xCAFEBABE99", index) == []

    def test_short_wallets_are_ignored(self):
        index = build_wallet_index([_record("a", wallet_address="n/a"), _record("b", wallet_address="n/a")])
        assert dict(index) == {}
        assert detect_sybil("n/a", index) == []

    def test_index_is_read_only(self):
        index = build_wallet_index([_record("a", wallet_address="0xDEADBEEF01")])
        with pytest.raises(TypeError):
            index["x"] = 1  # type: ignore[index]


class TestEmailForensics:
    def test_alias(self):
        assert detect_email_flags("jane+cert3@gmail.com", DISPOSABLE) == [RiskFlag.EMAIL_ALIAS]

    def test_disposable(self):
        assert detect_email_flags("bot@YOPMAIL.com", DISPOSABLE) == [RiskFlag.DISPOSABLE_EMAIL]

    def test_both(self):
        assert detect_email_flags("a+b@mailinator.com", DISPOSABLE) == [
            RiskFlag.EMAIL_ALIAS,
            RiskFlag.DISPOSABLE_EMAIL,
        ]

    def test_clean(self):
        assert detect_email_flags("jane@company.io", DISPOSABLE) == []
        assert detect_email_flags("", DISPOSABLE) == []


class TestBatchPattern:
    def test_normalize_root(self):
        assert normalize_root("John Doe 1") == "johndoe"
        assert normalize_root("John Doe 02") == "johndoe"
        assert normalize_root("johndoe_02") == "johndoe"
        assert normalize_root("dev.user-7.") == "dev.user"
        assert normalize_root("") == ""

    def test_three_shared_name_roots(self):
        records = [_record(f"r{i}", first_name="Alex", last_name=f"Tester {i}") for i in (1, 2, 3)]
        records.append(_record("other", first_name="Maria", last_name="Lopez"))
        assert find_batch_pattern_ids(records) == {"r1", "r2", "r3"}

    def test_name_split_across_fields(self):
        records = [
            _record("a", first_name="John Doe", last_name="1"),
            _record("b", first_name="John", last_name="Doe 2"),
            _record("c", first_name="John", last_name="Doe 3"),
        ]
        assert find_batch_pattern_ids(records) == {"a", "b", "c"}

    def test_placeholder_emails_are_not_grouped(self):
        records = [_record(f"r{i}", email=f"unknown_{i}@noemail.com") for i in (1, 2, 3)]
        assert find_batch_pattern_ids(records) == frozenset()

    def test_two_matches_are_not_enough(self):
        records = [_record(f"r{i}", first_name="Alex", last_name=f"Tester {i}") for i in (1, 2)]
        assert find_batch_pattern_ids(records) == frozenset()

    def test_short_roots_are_ignored(self):
        records = [_record(f"r{i}", first_name="Al", last_name=str(i)) for i in (1, 2, 3)]
        assert find_batch_pattern_ids(records) == frozenset()

    def test_email_roots(self):
        records = [_record(f"r{i}", email=f"cryptodev{i:02d}@gmail.com") for i in (1, 2, 3)]
        assert find_batch_pattern_ids(records) == {"r1", "r2", "r3"}

    def test_short_email_roots_are_ignored(self):
        records = [_record(f"r{i}", email=f"dev{i}@gmail.com") for i in (1, 2, 3)]
        assert find_batch_pattern_ids(records) == frozenset()


class TestMergeFlags:
    def test_preserves_order_and_dedupes(self):
        merged = merge_flags([RiskFlag.SYBIL], [RiskFlag.SPEED_RUN, RiskFlag.SYBIL])
        assert merged == [RiskFlag.SYBIL, RiskFlag.SPEED_RUN]
