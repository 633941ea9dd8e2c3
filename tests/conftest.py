import logging
from unittest import mock

import pytest


class ReadOnlySource:
    # A source with no readinto method; read may be limited to *limit* bytes
    # per call to simulate a trickling network stream
    def __init__(self, data, limit=None):
        self._pos = 0
        self._data = data
        self._limit = limit
        self.reads = 0

    def read(self, n=-1):
        self.reads += 1
        if n == -1:
            n = len(self._data) - self._pos
        if self._limit is not None:
            n = min(n, self._limit)
        result = self._data[self._pos:self._pos + n]
        self._pos += len(result)
        return result


class StutteringSource:
    # A readinto source that returns None (no data available yet) before every
    # real read
    def __init__(self, data):
        self._pos = 0
        self._data = data
        self._stutter = False
        self.reads = 0

    def readinto(self, b):
        self.reads += 1
        self._stutter = not self._stutter
        if self._stutter:
            return None
        result = self._data[self._pos:self._pos + len(b)]
        b[:len(result)] = result
        self._pos += len(result)
        return len(result)


class TricklingSource:
    # A readinto source that fills at most *limit* bytes of the buffer per call
    def __init__(self, data, limit):
        self._pos = 0
        self._data = data
        self._limit = limit
        self.reads = 0

    def readinto(self, b):
        self.reads += 1
        n = min(len(b), self._limit)
        result = self._data[self._pos:self._pos + n]
        b[:len(result)] = result
        self._pos += len(result)
        return len(result)


class FailingSource:
    # A readinto source that produces *data* then raises *exc*
    def __init__(self, data=b'', exc=None):
        self._data = data
        self._exc = OSError('device unplugged') if exc is None else exc
        self.reads = 0

    def readinto(self, b):
        self.reads += 1
        if self._data:
            n = min(len(b), len(self._data))
            b[:n] = self._data[:n]
            self._data = self._data[n:]
            return n
        raise self._exc


class RecordingSink:
    # A sink that copies everything written to it; if *fail_after* is not
    # None, writes beyond that many calls raise *exc*
    def __init__(self, fail_after=None, exc=None):
        self.chunks = []
        self.writes = 0
        self._fail_after = fail_after
        self._exc = OSError('disk full') if exc is None else exc

    def write(self, b):
        self.writes += 1
        if self._fail_after is not None and self.writes > self._fail_after:
            raise self._exc
        self.chunks.append(bytes(b))
        return len(b)

    def getvalue(self):
        return b''.join(self.chunks)


class ShortSink(RecordingSink):
    # A sink that only ever accepts half of what it's given
    def write(self, b):
        self.writes += 1
        half = len(b) // 2
        self.chunks.append(bytes(b[:half]))
        return half


class SilentSink(RecordingSink):
    # A sink whose write method returns nothing, like many file-likes
    def write(self, b):
        super().write(b)


@pytest.fixture()
def data(request):
    return b"ABCDEFG\x00" * 100000


@pytest.fixture(autouse=True)
def no_configs(request):
    # Ensure configuration files on the test machine can't affect results
    with \
        mock.patch('copybench.bench.CONFIG_LOCATIONS', ()), \
        mock.patch('copybench.fetch.CONFIG_LOCATIONS', ()):
        yield


@pytest.fixture(autouse=True)
def reset_loggers(request):
    # Each main() adds a handler bound to the (captured) stderr of the test
    # that called it; remove them so later tests don't write to stale streams
    yield
    for name in ('bench', 'fetch'):
        logger = logging.getLogger(name)
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
