# copybench: comparing strategies for copying bytes between streams
#
# Copyright (c) 2026 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2026 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

import threading
from collections import deque
from contextlib import contextmanager

from . import lang
from .transfer import COPY_BUFSIZE


class BufferPool:
    """
    A pool of fixed-size transfer buffers, each a :class:`bytearray` of
    *bufsize* bytes, intended to be passed to
    :func:`~copybench.transfer.copy_pooled`.

    Buffers are obtained with :meth:`acquire` and handed back with
    :meth:`release` (or both at once with the :meth:`buffer` context
    manager). A new buffer is only allocated when no idle buffer is available,
    so a process performing many sequential copies allocates a single buffer.
    The content of an acquired buffer is undefined; it may hold data from a
    prior transfer.

    If *max_idle* is not :data:`None`, at most that many idle buffers are
    retained; buffers released beyond that limit are discarded.

    Both :meth:`acquire` and :meth:`release` may be called concurrently from
    multiple threads. For example::

        >>> from copybench.pool import BufferPool
        >>> pool = BufferPool(16)
        >>> with pool.buffer() as buf:
        ...     len(buf)
        16
        >>> pool.allocated, pool.outstanding, len(pool)
        (1, 0, 1)
    """
    def __init__(self, bufsize=COPY_BUFSIZE, *, max_idle=None):
        if bufsize < 1:
            raise ValueError(lang._('bufsize must be a positive integer'))
        if max_idle is not None and max_idle < 0:
            raise ValueError(lang._('max_idle must not be negative'))
        self._bufsize = bufsize
        self._max_idle = max_idle
        self._lock = threading.Lock()
        self._idle = deque()
        # Buffers currently on loan, keyed by id(); the values keep the
        # buffers alive so ids cannot be re-used while they're outstanding
        self._loaned = {}
        self._allocated = 0

    def __repr__(self):
        return (
            f'<{self.__class__.__name__} bufsize={self._bufsize} '
            f'idle={len(self)} outstanding={self.outstanding}>')

    def __len__(self):
        with self._lock:
            return len(self._idle)

    @property
    def bufsize(self):
        """
        The size of the buffers issued by the pool.
        """
        return self._bufsize

    @property
    def allocated(self):
        """
        The total number of buffers the pool has allocated over its lifetime.
        """
        with self._lock:
            return self._allocated

    @property
    def outstanding(self):
        """
        The number of buffers currently acquired and not yet released.
        """
        with self._lock:
            return len(self._loaned)

    def acquire(self):
        """
        Return a transfer buffer of :attr:`bufsize` bytes, re-using an idle
        buffer if one is available.
        """
        with self._lock:
            try:
                buf = self._idle.pop()
            except IndexError:
                buf = bytearray(self._bufsize)
                self._allocated += 1
            self._loaned[id(buf)] = buf
            return buf

    def release(self, buf):
        """
        Return *buf*, which must have been obtained from :meth:`acquire`, to
        the pool. Raises :exc:`RuntimeError` if *buf* is not currently on loan
        from this pool.
        """
        with self._lock:
            if self._loaned.get(id(buf)) is not buf:
                raise RuntimeError(lang._(
                    'Attempt to release a buffer not acquired from this pool'))
            del self._loaned[id(buf)]
            if self._max_idle is None or len(self._idle) < self._max_idle:
                self._idle.append(buf)

    @contextmanager
    def buffer(self):
        """
        A context manager which acquires a buffer on entry, and releases it on
        exit regardless of whether an exception occurred.
        """
        buf = self.acquire()
        try:
            yield buf
        finally:
            self.release(buf)
