"""
Ring Buffer Tests
Bounded FIFO used for program log history.
"""

import pytest

from slotwatch.services.ring_buffer import RingBuffer


class TestRingBuffer:

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            RingBuffer(0)

    def test_keeps_order_below_capacity(self):
        buf = RingBuffer(3)
        buf.append(1)
        buf.append(2)
        assert buf.to_list() == [1, 2]
        assert len(buf) == 2
        assert buf.latest() == [2]

    def test_evicts_oldest_when_full(self):
        buf = RingBuffer(3)
        for i in range(1, 6):
            buf.append(i)
        assert buf.to_list() == [3, 4, 5]
        assert len(buf) == 3
        assert buf.latest(2) == [5, 4]
        assert list(buf) == [3, 4, 5]

    def test_clear(self):
        buf = RingBuffer(2)
        buf.append("a")
        buf.clear()
        assert not buf
        assert buf.latest() == []
        buf.append("b")
        assert buf.to_list() == ["b"]
