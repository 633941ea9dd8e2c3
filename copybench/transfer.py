# copybench: comparing strategies for copying bytes between streams
#
# Copyright (c) 2026 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2026 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

"""
Routines for copying bytes from one file-like object to another with bounded
memory, along with the "read everything" strategies they are compared against.
"""

import io

from . import lang


COPY_BUFSIZE = 32 * 1024


class CopyError(OSError):
    """
    Base class of the errors raised by :func:`copy_bytes`. The *transferred*
    attribute records how many bytes were written to the target before the
    failure; the target is left holding that prefix of the data.
    """
    def __init__(self, msg, transferred=0):
        super().__init__(msg)
        self.transferred = transferred


class ReadError(CopyError):
    "Raised when the source of a copy fails"


class WriteError(CopyError):
    "Raised when the target of a copy fails, or accepts a short write"


def copy_bytes(source, target, *, buffer=None):
    """
    Copy all bytes from *source* to *target*, returning the number of bytes
    copied.

    The *target* must implement a ``write`` method, and the *source* must at
    the very least implement a ``read`` method, but preferably a ``readinto``
    method (which will permit a single static buffer to be used during the
    transfer). End of input is signalled by the source returning 0 (or an
    empty :class:`bytes` string). A source returning :data:`None` (no data
    available yet) is simply read again.

    If *buffer* is specified, it must be a writable bytes-like object which
    will be used as the transfer buffer; its capacity is its size in bytes,
    whatever its item type. Otherwise a buffer of :data:`COPY_BUFSIZE` bytes is
    allocated for the duration of the call. In either case, no more than one
    buffer's worth of data is held at once.

    Failures of the *source* raise :exc:`ReadError` and failures of the
    *target* (including writes which accept fewer bytes than given) raise
    :exc:`WriteError`, with the original exception as the cause. Nothing is
    retried.
    """
    if buffer is None:
        buffer = bytearray(COPY_BUFSIZE)
    with memoryview(buffer) as view:
        if view.readonly:
            raise TypeError(lang._('transfer buffer must be writable'))
        if not view.nbytes:
            raise ValueError(lang._('transfer buffer must not be empty'))
        # Cache methods to avoid repeated lookup, and to discover if we can use
        # the transfer buffer directly
        write = target.write
        try:
            readinto = source.readinto
        except AttributeError:
            return _copy_read_write(source.read, write, view.nbytes)
        # Sources fill the buffer byte-wise, so slices of it must be too
        with view.cast('B') as buf:
            return _copy_readinto_write(readinto, write, buf)


def copy_pooled(source, target, pool):
    """
    As :func:`copy_bytes`, but the transfer buffer is borrowed from *pool*, a
    :class:`~copybench.pool.BufferPool`, for the duration of the copy. The
    buffer is returned to the *pool* whether the copy succeeds or fails.
    """
    with pool.buffer() as buf:
        return copy_bytes(source, target, buffer=buf)


def read_all(source):
    """
    Read the entirety of *source* into memory and return it as :class:`bytes`.
    Peak memory use is proportional to the size of the data.
    """
    try:
        return source.read()
    except Exception as exc:
        raise ReadError(lang._('reading data: {exc}').format(exc=exc)) from exc


def read_buffered(source, *, buffer=None):
    """
    Read the entirety of *source* into an in-memory buffer with
    :func:`copy_bytes` (passing *buffer* along), and return it as
    :class:`bytes`.
    """
    result = io.BytesIO()
    copy_bytes(source, result, buffer=buffer)
    return result.getvalue()


def _read_failed(exc, transferred):
    return ReadError(
        lang._('reading from source: {exc}').format(exc=exc), transferred)


def _write_failed(exc, transferred):
    return WriteError(
        lang._('writing to target: {exc}').format(exc=exc), transferred)


def _short_write(written, expected, transferred):
    return WriteError(
        lang._('writing to target: short write ({written} of {expected} '
               'bytes)').format(written=written, expected=expected),
        transferred)


def _copy_read_write(read, write, bufsize):
    transferred = 0
    while True:
        try:
            buf = read(bufsize)
        except Exception as exc:
            raise _read_failed(exc, transferred) from exc
        if buf is None:
            continue
        if not buf:
            return transferred
        try:
            written = write(buf)
        except Exception as exc:
            raise _write_failed(exc, transferred) from exc
        if written is not None and written < len(buf):
            raise _short_write(written, len(buf), transferred + written)
        transferred += len(buf)


def _copy_readinto_write(readinto, write, buf):
    transferred = 0
    while True:
        try:
            n = readinto(buf)
        except Exception as exc:
            raise _read_failed(exc, transferred) from exc
        if n is None:
            continue
        if not n:
            return transferred
        with buf[:n] as read_buf:
            try:
                written = write(read_buf)
            except Exception as exc:
                raise _write_failed(exc, transferred) from exc
        if written is not None and written < n:
            raise _short_write(written, n, transferred + written)
        transferred += n
