"""Decoding backend documents into typed records."""

from datetime import datetime, timezone

import pytest

from booths import BOOTH_NUMBERS, format_booth, is_valid_booth
from models import (
    AuthUser,
    RecordDecodeError,
    Result,
    UserProfile,
    decode_household,
    decode_profile,
    parse_timestamp,
)


class TestParseTimestamp:
    def test_zulu_string_with_nanoseconds(self):
        dt = parse_timestamp("2024-03-05T15:37:05.123456789Z")
        assert dt == datetime(2024, 3, 5, 15, 37, 5, 123456, tzinfo=timezone.utc)

    def test_seconds_mapping(self):
        dt = parse_timestamp({"seconds": 1_700_000_000, "nanoseconds": 0})
        assert dt == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)

    def test_naive_datetime_becomes_utc(self):
        assert parse_timestamp(datetime(2024, 1, 1)).tzinfo is timezone.utc

    def test_empty_is_none(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None

    def test_other_types_rejected(self):
        with pytest.raises(TypeError):
            parse_timestamp(12345)


class TestDecodeHousehold:
    def test_camel_case_document(self):
        rec = decode_household("doc1", {
            "createdAt": "2024-03-05T15:37:05Z",
            "householdName": "Ravi",
            "phoneNumber": "9876543210",
            "issues": "Roads",
            "boothNumber": "012",
            "boothNumberField": "013",
            "areaRegion": "Ward 4",
            "userId": "u1",
            "userName": "Anil",
            "userPhone": "+919800000000",
        })
        assert rec.id == "doc1"
        assert rec.created_at == datetime(2024, 3, 5, 15, 37, 5, tzinfo=timezone.utc)
        assert rec.booth_number == "012"
        assert rec.booth_number_field == "013"
        assert rec.area_region == "Ward 4"

    def test_legacy_snake_case_aliases(self):
        rec = decode_household("doc2", {
            "household_name": "Old",
            "household_phone": "9999999999",
            "concerns": "Drainage",
            "booth_number": "005",
        })
        assert rec.household_name == "Old"
        assert rec.phone_number == "9999999999"
        assert rec.issues == "Drainage"
        assert rec.booth_number == "005"
        assert rec.created_at is None

    def test_camel_case_wins_over_alias(self):
        rec = decode_household("doc3", {"issues": "new", "concerns": "old"})
        assert rec.issues == "new"

    def test_missing_fields_are_empty(self):
        rec = decode_household("doc4", {})
        assert rec.household_name == ""
        assert rec.user_phone == ""

    def test_numeric_phone_is_text(self):
        assert decode_household("doc5", {"phoneNumber": 9876543210}).phone_number == "9876543210"

    def test_wrong_type_raises(self):
        with pytest.raises(RecordDecodeError) as exc:
            decode_household("doc6", {"issues": ["a", "b"]})
        assert exc.value.field_name == "issues"
        assert exc.value.doc_id == "doc6"

    def test_bad_timestamp_raises(self):
        with pytest.raises(RecordDecodeError):
            decode_household("doc7", {"createdAt": "yesterday"})


class TestDecodeProfile:
    def test_defaults_to_booth_user(self):
        profile = decode_profile("u1", {"mobile_number": "+91999", "booth_number": "001"})
        assert profile == UserProfile(uid="u1", mobile_number="+91999", booth_number="001")
        assert not profile.is_admin

    def test_admin_role(self):
        assert decode_profile("u2", {"role": "admin"}).is_admin


class TestSessionUser:
    def test_round_trip_through_session(self):
        user = AuthUser(uid="u1", phone_number="+91999", display_name="A", id_token="tok")
        assert AuthUser.from_session(user.to_session()) == user

    def test_missing_uid_is_anonymous(self):
        assert AuthUser.from_session({}) is None
        assert AuthUser.from_session({"phone_number": "+91"}) is None

    def test_token_not_in_repr(self):
        assert "secret-token" not in repr(AuthUser(uid="u", id_token="secret-token"))


class TestResult:
    def test_success_and_fail(self):
        assert Result.success(3).ok and Result.success(3).value == 3
        res = Result.fail("nope")
        assert not res.ok and res.error == "nope"


class TestBooths:
    def test_range(self):
        assert len(BOOTH_NUMBERS) == 188
        assert BOOTH_NUMBERS[0] == "001"
        assert BOOTH_NUMBERS[-1] == "188"

    @pytest.mark.parametrize("raw,expected", [("5", "005"), (" 42 ", "042"), ("188", "188"), ("007", "007")])
    def test_format_pads(self, raw, expected):
        assert format_booth(raw) == expected

    @pytest.mark.parametrize("raw", ["0", "189", "abc", ""])
    def test_out_of_range_left_alone(self, raw):
        assert format_booth(raw) == raw

    def test_validity(self):
        assert is_valid_booth("001")
        assert not is_valid_booth("1")
        assert not is_valid_booth("189")
