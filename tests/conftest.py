import pytest

from harness import MIB, Pacer
from memory_report import MemoryInfoSource, MemoryReporter


class FakeMemorySource(MemoryInfoSource):
    """Scripted counters. Each sample consumes the next (total, free) pair; the last one repeats."""

    def __init__(self, max_bytes=512 * MIB, samples=((64 * MIB, 16 * MIB),), events=None):
        self.max_bytes = max_bytes
        self.samples = list(samples)
        self.calls = []
        self.events = events if events is not None else []
        self._current = None

    def max_memory(self):
        self.calls.append('max')
        return self.max_bytes

    def total_memory(self):
        self.calls.append('total')
        self.events.append('sample')
        self._current = self.samples.pop(0) if len(self.samples) > 1 else self.samples[0]
        return self._current[0]

    def free_memory(self):
        self.calls.append('free')
        return self._current[1]


class FakeBlock:
    def __init__(self, nbytes):
        self.nbytes = nbytes

    def __len__(self):
        return self.nbytes


class RecordingAllocator:
    """Hands out size-only blocks; raises MemoryError on the call numbered fail_on (1-based)."""

    def __init__(self, fail_on=None, events=None):
        self.requests = []
        self.fail_on = fail_on
        self.events = events if events is not None else []

    def __call__(self, nbytes):
        self.requests.append(nbytes)
        self.events.append(('alloc', nbytes))
        if self.fail_on is not None and len(self.requests) == self.fail_on:
            raise MemoryError(f"refusing {nbytes} bytes")
        return FakeBlock(nbytes)


class NoDelayPacer(Pacer):
    def __init__(self, events=None, cancel_after=None):
        super().__init__()
        self.requested = []
        self.events = events if events is not None else []
        self.cancel_after = cancel_after

    def wait(self, seconds):
        self.requested.append(seconds)
        self.events.append('wait')
        if self.cancel_after is not None and len(self.requested) >= self.cancel_after:
            self.cancel()
        return self.cancelled


@pytest.fixture
def events():
    return []


@pytest.fixture
def source(events):
    return FakeMemorySource(events=events)


@pytest.fixture
def reporter(source):
    return MemoryReporter(source)


@pytest.fixture
def allocator(events):
    return RecordingAllocator(events=events)


@pytest.fixture
def pacer(events):
    return NoDelayPacer(events=events)
