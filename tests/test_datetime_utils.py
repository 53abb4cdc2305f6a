from datetime import date, datetime, timedelta, timezone

import pytest

from app.utils.datetime_utils import (
    candidate_month_days,
    delivery_window,
    from_epoch_millis,
    get_zone,
    is_birthday_on,
    is_valid_location,
    local_now,
    next_occurrence_of_local_time,
    to_epoch_millis,
    to_utc,
)
from app.utils.errors import InvalidLocationError

UTC = timezone.utc


class TestEpochConversion:
    """Test conversion between datetimes and epoch milliseconds."""

    def test_to_epoch_millis(self):
        assert to_epoch_millis(datetime(1970, 1, 1, 0, 0, 1, tzinfo=UTC)) == 1000

    def test_naive_datetime_is_treated_as_utc(self):
        naive = datetime(2024, 6, 10, 13, 0)
        assert to_utc(naive) == datetime(2024, 6, 10, 13, 0, tzinfo=UTC)
        assert to_epoch_millis(naive) == to_epoch_millis(naive.replace(tzinfo=UTC))

    def test_from_epoch_millis_is_aware_utc(self):
        dt = from_epoch_millis(1718024400000)
        assert dt == datetime(2024, 6, 10, 13, 0, tzinfo=UTC)
        assert dt.tzinfo is not None


class TestZoneResolution:
    """Test IANA location lookup."""

    def test_known_location(self):
        assert get_zone("Australia/Melbourne").key == "Australia/Melbourne"
        assert is_valid_location("Asia/Bangkok")

    @pytest.mark.parametrize("location", ["Mars/Olympus_Mons", "", "not a zone"])
    def test_unknown_location_raises(self, location):
        with pytest.raises(InvalidLocationError):
            get_zone(location)
        assert not is_valid_location(location)

    def test_invalid_location_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            local_now("Nowhere/Special")


class TestLocalOccurrence:
    """Test resolution of a local wall-clock time to a UTC instant."""

    def test_new_york_summer_offset(self):
        now = datetime(2024, 6, 10, 12, 0, tzinfo=UTC)
        due = next_occurrence_of_local_time("America/New_York", 9, 0, now)
        assert due == datetime(2024, 6, 10, 13, 0, tzinfo=UTC)

    def test_new_york_winter_offset(self):
        now = datetime(2024, 1, 10, 12, 0, tzinfo=UTC)
        due = next_occurrence_of_local_time("America/New_York", 9, 0, now)
        assert due == datetime(2024, 1, 10, 14, 0, tzinfo=UTC)

    def test_uses_the_local_date_not_the_utc_date(self):
        # 02:00 UTC on 10 June is still 9 June in New York
        now = datetime(2024, 6, 10, 2, 0, tzinfo=UTC)
        due = next_occurrence_of_local_time("America/New_York", 9, 0, now)
        assert due == datetime(2024, 6, 9, 13, 0, tzinfo=UTC)

    def test_past_occurrence_is_returned_unchanged(self):
        now = datetime(2024, 6, 10, 20, 0, tzinfo=UTC)
        due = next_occurrence_of_local_time("America/New_York", 9, 0, now)
        assert due < now

    def test_location_ahead_of_utc(self):
        # Kiritimati is UTC+14: local 09:00 on 10 June is 19:00 UTC on 9 June
        now = datetime(2024, 6, 9, 12, 0, tzinfo=UTC)
        due = next_occurrence_of_local_time("Pacific/Kiritimati", 9, 0, now)
        assert due == datetime(2024, 6, 9, 19, 0, tzinfo=UTC)

    def test_wall_time_in_dst_gap_uses_offset_before_transition(self):
        # London skips 01:00-02:00 on 31 March 2024
        now = datetime(2024, 3, 31, 0, 0, tzinfo=UTC)
        due = next_occurrence_of_local_time("Europe/London", 1, 30, now)
        assert due == datetime(2024, 3, 31, 1, 30, tzinfo=UTC)

    def test_ambiguous_wall_time_resolves_to_first_occurrence(self):
        # London repeats 01:00-02:00 on 27 October 2024, first pass is BST
        now = datetime(2024, 10, 27, 0, 0, tzinfo=UTC)
        due = next_occurrence_of_local_time("Europe/London", 1, 30, now)
        assert due == datetime(2024, 10, 27, 0, 30, tzinfo=UTC)

    def test_delivery_window_spans_until_local_midnight(self):
        now = datetime(2024, 6, 10, 12, 0, tzinfo=UTC)
        start, end = delivery_window(
            "America/New_York", 9, 0, timedelta(minutes=900), now
        )
        assert start == datetime(2024, 6, 10, 13, 0, tzinfo=UTC)
        assert end == datetime(2024, 6, 11, 4, 0, tzinfo=UTC)


class TestBirthdayMatching:
    """Test calendar matching of birth dates, including 29 February."""

    def test_same_month_and_day(self):
        assert is_birthday_on(date(1990, 6, 10), date(2024, 6, 10))
        assert not is_birthday_on(date(1990, 6, 10), date(2024, 6, 11))

    def test_leap_day_birthday_in_leap_year(self):
        assert is_birthday_on(date(2000, 2, 29), date(2024, 2, 29))
        assert not is_birthday_on(date(2000, 2, 29), date(2024, 2, 28))

    def test_leap_day_birthday_celebrated_on_28_february(self):
        assert is_birthday_on(date(2000, 2, 29), date(2023, 2, 28))
        assert not is_birthday_on(date(2000, 2, 29), date(2023, 3, 1))

    def test_candidate_month_days_cover_neighbouring_dates(self):
        month_days = candidate_month_days(datetime(2024, 6, 10, 12, 0, tzinfo=UTC))
        assert month_days == {(6, 9), (6, 10), (6, 11)}

    def test_candidate_month_days_include_leap_day_in_non_leap_year(self):
        month_days = candidate_month_days(datetime(2023, 3, 1, 12, 0, tzinfo=UTC))
        assert (2, 28) in month_days
        assert (2, 29) in month_days
        assert (3, 1) in month_days

    def test_candidate_month_days_across_new_year(self):
        month_days = candidate_month_days(datetime(2024, 12, 31, 23, 0, tzinfo=UTC))
        assert month_days == {(12, 30), (12, 31), (1, 1)}
