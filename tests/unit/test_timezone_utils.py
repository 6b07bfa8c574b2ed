from datetime import date, datetime, time

import pytz

from booking_engine.core.timezone_utils import (
    get_schedule_now,
    get_schedule_today_and_time,
    utc_now,
)


class TestScheduleClock:
    def test_naive_reference_is_treated_as_utc(self):
        local = get_schedule_now(datetime(2026, 3, 2, 16, 30))

        assert local.date() == date(2026, 3, 3)
        assert local.hour == 0

    def test_today_and_time_are_local(self):
        today, now_time = get_schedule_today_and_time(
            datetime(2026, 3, 2, 6, 15, 42, 123456, tzinfo=pytz.UTC)
        )

        assert today == date(2026, 3, 2)
        assert now_time == time(14, 15, 42)
        assert now_time.tzinfo is None

    def test_utc_now_normalizes_aware_values(self):
        shanghai = pytz.timezone("Asia/Shanghai").localize(datetime(2026, 3, 2, 8, 0))

        assert utc_now(shanghai) == datetime(2026, 3, 2, 0, 0, tzinfo=pytz.UTC)
        assert utc_now().tzinfo is not None
