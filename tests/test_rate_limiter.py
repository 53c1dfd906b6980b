import asyncio

import pytest

from pr_review_server.embeddings.rate_limiter import TokenBucket, bucket_from_interval


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.mark.asyncio
async def test_first_acquire_does_not_wait():
    clock = FakeClock()
    bucket = TokenBucket(rate=5.0, clock=clock, sleep=clock.sleep)

    assert await bucket.acquire() == 0.0
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_consecutive_acquires_are_spaced_by_interval():
    clock = FakeClock()
    bucket = TokenBucket(rate=4.0, clock=clock, sleep=clock.sleep)

    for _ in range(4):
        await bucket.acquire()

    assert clock.sleeps == pytest.approx([0.25, 0.25, 0.25])
    assert clock.now == pytest.approx(0.75)


@pytest.mark.asyncio
async def test_elapsed_time_refills_tokens():
    clock = FakeClock()
    bucket = TokenBucket(rate=5.0, clock=clock, sleep=clock.sleep)

    await bucket.acquire()
    clock.now += 1.0
    assert await bucket.acquire() == 0.0


@pytest.mark.asyncio
async def test_capacity_allows_burst():
    clock = FakeClock()
    bucket = TokenBucket(rate=1.0, capacity=3, clock=clock, sleep=clock.sleep)

    for _ in range(3):
        assert await bucket.acquire() == 0.0
    assert await bucket.acquire() == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_concurrent_callers_share_the_bucket():
    clock = FakeClock()
    bucket = TokenBucket(rate=8.0, clock=clock, sleep=clock.sleep)

    await asyncio.gather(*(bucket.acquire() for _ in range(5)))

    # Five admissions need four refills regardless of how many tasks compete
    assert clock.now == pytest.approx(0.5)


def test_invalid_parameters_rejected():
    with pytest.raises(ValueError):
        TokenBucket(rate=0)
    with pytest.raises(ValueError):
        TokenBucket(rate=1.0, capacity=0.5)


def test_bucket_from_interval():
    status = bucket_from_interval(0.2).status()
    assert status.rate == pytest.approx(5.0)
    assert status.capacity == 1.0
