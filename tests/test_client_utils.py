import asyncio

from socketio import exceptions as sio_exceptions

from quizlive.shared.client_utils import backoff_delay, make_client_stats, with_reconnect


def test_backoff_never_decreases_and_stays_bounded():
    for jitter in (0.0, 0.05, 0.099):
        delays = [backoff_delay(n, base_delay_s=0.5, max_delay_s=10.0, jitter=jitter) for n in range(1, 12)]
        assert delays == sorted(delays)
        assert max(delays) == 10.0


def test_backoff_random_jitter_stays_under_cap():
    assert all(backoff_delay(n, 1.0, 32.0) <= 32.0 for n in range(1, 30))


def test_with_reconnect_backs_off_until_a_connection_holds():
    stats = make_client_stats()
    attempts = []
    sleeps = []
    state = {"stop": False}

    async def connect():
        attempts.append(len(attempts))
        if len(attempts) <= 3:
            raise sio_exceptions.ConnectionError("refused")
        state["stop"] = True

    async def fake_sleep(delay):
        sleeps.append(delay)

    asyncio.run(with_reconnect(
        connect, stats, should_stop=lambda: state["stop"],
        base_delay_s=1.0, max_delay_s=3.0, sleep=fake_sleep,
    ))

    assert len(attempts) == 4
    assert stats["reconnect_count"] == 3
    assert sleeps == sorted(sleeps)
    assert all(delay <= 3.0 for delay in sleeps)


def test_with_reconnect_does_not_run_when_already_stopped():
    calls = []

    async def connect():
        calls.append(1)

    asyncio.run(with_reconnect(connect, make_client_stats(), should_stop=lambda: True))
    assert calls == []
