import asyncio
from datetime import datetime
from zoneinfo import ZoneInfo

from pricebot.scheduler import DailyScheduler

BNE = ZoneInfo("Australia/Brisbane")


async def _noop():
    return None


def test_next_run_is_today_before_fire_time():
    s = DailyScheduler(_noop, 11, 0)
    nxt = s.next_run_time(datetime(2026, 10, 18, 9, 15, tzinfo=BNE))
    assert nxt == datetime(2026, 10, 18, 11, 0, tzinfo=BNE)


def test_next_run_is_tomorrow_after_fire_time():
    s = DailyScheduler(_noop, 11, 0)
    nxt = s.next_run_time(datetime(2026, 10, 18, 11, 0, 1, tzinfo=BNE))
    assert nxt == datetime(2026, 10, 19, 11, 0, tzinfo=BNE)


def test_fire_time_is_wall_clock_in_its_timezone_across_dst():
    # Sydney enters DST on 2026-10-04; the job still fires at 11:00 local
    syd = ZoneInfo("Australia/Sydney")
    s = DailyScheduler(_noop, 11, 0, tz="Australia/Sydney")
    before = s.next_run_time(datetime(2026, 10, 2, 12, 0, tzinfo=syd))
    after = s.next_run_time(datetime(2026, 10, 4, 12, 0, tzinfo=syd))
    assert (before.hour, after.hour) == (11, 11)
    assert before.utcoffset() != after.utcoffset()


def test_describe():
    assert DailyScheduler(_noop, 11, 0).describe() == "11:00 AM Brisbane time daily"


def test_fire_invokes_callback_once():
    calls = []

    async def cb():
        calls.append(1)

    asyncio.run(DailyScheduler(cb, 11, 0)._fire())
    assert calls == [1]


def test_overlapping_runs_are_allowed():
    job = DailyScheduler(_noop, 11, 0)._sched.get_job(DailyScheduler.JOB_ID)
    assert job.max_instances > 1
    assert job.coalesce is False


def test_start_and_shutdown_inside_event_loop():
    async def go():
        s = DailyScheduler(_noop, 11, 0)
        s.start()
        running = s.running
        s.shutdown()
        return running, s.running

    assert asyncio.run(go()) == (True, False)
