import pytest

from poolwatch.utils.backoff import Backoff, jitter, next_backoff

def test_next_backoff_caps():
    assert next_backoff(1, 4) == 2
    assert next_backoff(2, 4) == 4
    assert next_backoff(4, 4) == 4

def test_jitter_bounds():
    for _ in range(50):
        assert 0.8 <= jitter(1.0) <= 1.2

@pytest.mark.asyncio
async def test_backoff_progression_and_reset():
    b = Backoff(initial=0.001, cap=0.004)
    used = [await b.sleep() for _ in range(4)]
    assert used == [0.001, 0.002, 0.004, 0.004]
    b.reset()
    assert b.peek() == 0.001
