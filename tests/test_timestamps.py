"""Tests for scheduled time parsing and recurrence renewal."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from chime.scheduling.timestamps import (
    InvalidTimestampError,
    advance_scheduled_time,
    format_display_time,
    normalize_scheduled_time,
    offset_token,
    parse_scheduled_time,
)


class TestOffsetToken:
    def test_explicit_offset(self):
        assert offset_token("2026-01-01T10:00:00+08:00") == "+08:00"

    def test_negative_offset(self):
        assert offset_token("2026-01-01T10:00:00-05:30") == "-05:30"

    def test_zulu(self):
        assert offset_token("2026-01-01T02:00:00Z") == "Z"

    def test_naive(self):
        assert offset_token("2026-01-01T10:00:00") is None

    def test_shorthand_tail_is_not_an_offset(self):
        assert offset_token("2026-01-01-10:00") is None

    def test_offset_without_colon(self):
        assert offset_token("2026-01-01T10:00:00-0500") == "-0500"


class TestNormalizeScheduledTime:
    def test_iso_passes_through(self):
        value = "2026-01-01T10:00:00+08:00"
        assert normalize_scheduled_time(value) == value

    def test_shorthand_gets_default_offset(self):
        assert (
            normalize_scheduled_time("2026-03-05-07:30") == "2026-03-05T07:30:00+08:00"
        )

    def test_shorthand_custom_offset(self):
        assert (
            normalize_scheduled_time("2026-03-05-07:30", "-04:00")
            == "2026-03-05T07:30:00-04:00"
        )

    def test_strips_whitespace(self):
        assert (
            normalize_scheduled_time("  2026-01-01T10:00:00Z ")
            == "2026-01-01T10:00:00Z"
        )

    @pytest.mark.parametrize(
        "raw",
        ["", "tomorrow", "2026-01-01", "2026-13-01T10:00:00+08:00", "2026-02-30-10:00"],
    )
    def test_rejects_bad_input(self, raw):
        with pytest.raises(InvalidTimestampError):
            normalize_scheduled_time(raw)


class TestParseScheduledTime:
    def test_explicit_offset(self):
        parsed = parse_scheduled_time("2026-01-01T10:00:00+08:00")
        assert parsed == datetime(2026, 1, 1, 2, 0, tzinfo=UTC)

    def test_naive_uses_default_offset(self):
        parsed = parse_scheduled_time("2026-01-01T10:00:00")
        assert parsed.utcoffset() == timedelta(hours=8)
        assert parsed == datetime(2026, 1, 1, 2, 0, tzinfo=UTC)

    def test_naive_uses_given_offset(self):
        parsed = parse_scheduled_time("2026-01-01T10:00:00", "+00:00")
        assert parsed == datetime(2026, 1, 1, 10, 0, tzinfo=UTC)

    def test_zulu(self):
        parsed = parse_scheduled_time("2026-01-01T10:00:00Z")
        assert parsed == datetime(2026, 1, 1, 10, 0, tzinfo=UTC)

    def test_shorthand(self):
        parsed = parse_scheduled_time("2026-01-01-10:00")
        assert parsed == datetime(2026, 1, 1, 2, 0, tzinfo=UTC)

    def test_fractional_seconds(self):
        parsed = parse_scheduled_time("2026-01-01T10:00:00.250000+08:00")
        assert parsed.microsecond == 250000

    @pytest.mark.parametrize("value", ["", "garbage", None, 12345])
    def test_invalid(self, value):
        with pytest.raises(InvalidTimestampError):
            parse_scheduled_time(value)


class TestAdvanceScheduledTime:
    def test_adds_interval(self):
        assert (
            advance_scheduled_time("2026-01-01T10:00:00+08:00", 60)
            == "2026-01-01T10:01:00+08:00"
        )

    def test_crosses_day_boundary(self):
        assert (
            advance_scheduled_time("2026-12-31T23:30:00+08:00", 3600)
            == "2027-01-01T00:30:00+08:00"
        )

    def test_preserves_negative_offset(self):
        assert (
            advance_scheduled_time("2026-01-01T22:00:00-05:00", 7200)
            == "2026-01-02T00:00:00-05:00"
        )

    def test_preserves_zulu_token(self):
        assert (
            advance_scheduled_time("2026-01-01T10:00:00Z", 86400)
            == "2026-01-02T10:00:00Z"
        )

    def test_naive_gains_default_offset(self):
        assert (
            advance_scheduled_time("2026-01-01T10:00:00", 30)
            == "2026-01-01T10:00:30+08:00"
        )

    def test_shorthand_is_canonicalized(self):
        assert (
            advance_scheduled_time("2026-01-01-10:00", 60)
            == "2026-01-01T10:01:00+08:00"
        )

    def test_preserves_offset_without_colon(self):
        assert (
            advance_scheduled_time("2026-01-01T10:00:00-0500", 60)
            == "2026-01-01T10:01:00-0500"
        )

    def test_keeps_fractional_seconds(self):
        previous = "2026-01-01T10:00:00.500+08:00"
        following = advance_scheduled_time(previous, 60)
        assert following == "2026-01-01T10:01:00.500+08:00"
        delta = parse_scheduled_time(following) - parse_scheduled_time(previous)
        assert delta == timedelta(seconds=60)

    def test_renewed_instant_is_interval_later(self):
        previous = "2026-06-15T08:15:00+05:30"
        following = advance_scheduled_time(previous, 90061)
        delta = parse_scheduled_time(following) - parse_scheduled_time(previous)
        assert delta == timedelta(seconds=90061)
        assert following.endswith("+05:30")

    @pytest.mark.parametrize("interval", [0, -5, 1.5, True, "60"])
    def test_rejects_bad_interval(self, interval):
        with pytest.raises(ValueError):
            advance_scheduled_time("2026-01-01T10:00:00+08:00", interval)

    def test_rejects_bad_time(self):
        with pytest.raises(InvalidTimestampError):
            advance_scheduled_time("nope", 60)


class TestFormatDisplayTime:
    def test_renders_in_own_offset(self):
        assert (
            format_display_time("2026-01-01T10:00:00+08:00") == "2026-01-01 10:00:00"
        )

    def test_naive(self):
        moment = datetime(2026, 1, 1, 10, 0, tzinfo=timezone(timedelta(hours=8)))
        assert format_display_time("2026-01-01T10:00:00") == moment.strftime(
            "%Y-%m-%d %H:%M:%S"
        )
