# copybench: comparing strategies for copying bytes between streams
#
# Copyright (c) 2026 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2026 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

"""
Retrieves the body of a URL and writes it to stdout (or a file), either by
streaming it through a fixed-size transfer buffer, or by reading the whole
body into memory first.
"""

import io
import os
import sys
import logging
import argparse
from importlib import resources
from importlib.metadata import version

import httpx

from . import lang
from .pool import BufferPool
from .transfer import copy_bytes, copy_pooled, read_all
from .config import (
    CONFIG_LOCATIONS,
    ConfigArgumentParser,
    duration,
    size,
)


class ResponseReader(io.RawIOBase):
    """
    A read-only, non-seekable file-like wrapper around a streaming
    :class:`httpx.Response`, suitable as the source of
    :func:`~copybench.transfer.copy_bytes`.

    The response delivers its body as a sequence of chunks of arbitrary size.
    This class re-blocks them with an internal buffer such that
    :meth:`readinto` (and thus :meth:`read`) never returns more bytes than
    requested, and returns as soon as any bytes are available rather than
    waiting for the request to be filled. For example::

        >>> import httpx
        >>> response = httpx.Response(200, content=iter([b'abc', b'defgh']))
        >>> body = ResponseReader(response)
        >>> body.read(2)
        b'ab'
        >>> body.read(4)
        b'c'
        >>> body.read(4)
        b'defg'
    """
    def __init__(self, response):
        self._chunks = response.iter_bytes()
        self._buffer = bytearray()

    def readable(self):
        return True

    def readinto(self, b):
        while not self._buffer:
            try:
                self._buffer.extend(next(self._chunks))
            except StopIteration:
                return 0
        to_read = min(len(b), len(self._buffer))
        b[:to_read] = self._buffer[:to_read]
        del self._buffer[:to_read]
        return to_read


def fetch(client, url, target, *, stream=True, pool=None):
    """
    Retrieve *url* with *client*, an :class:`httpx.Client`, and write the
    body of the response to *target*, returning the number of bytes written.

    If *stream* is :data:`True` (the default), the body is copied to *target*
    through a transfer buffer drawn from *pool* (a
    :class:`~copybench.pool.BufferPool`) or, if *pool* is :data:`None`, a
    buffer allocated for the transfer. Otherwise, the entire body is read into
    memory before being written.

    Raises :exc:`httpx.HTTPStatusError` if the server responds with an error
    status, or :exc:`~copybench.transfer.ReadError` or
    :exc:`~copybench.transfer.WriteError` if the transfer fails.
    """
    with client.stream('GET', url) as response:
        response.raise_for_status()
        if stream:
            source = ResponseReader(response)
            if pool is None:
                return copy_bytes(source, target)
            else:
                return copy_pooled(source, target, pool)
        else:
            body = read_all(response)
            target.write(body)
            return len(body)


def make_client(conf):
    """
    Construct the :class:`httpx.Client` used by :func:`main` from the script's
    configuration *conf*.
    """
    return httpx.Client(
        timeout=conf.timeout.total_seconds(), follow_redirects=True)


def get_parser():
    """
    Returns the command line parser for the application, pre-configured with
    defaults from the application's configuration file(s). See
    :func:`~copybench.config.ConfigArgumentParser` for more information.
    """
    parser = ConfigArgumentParser(
        description=__doc__,
        template=resources.files('copybench') / 'default.conf')
    parser.add_argument(
        '--version', action='version', version=version('copybench'))
    parser.add_argument(
        '-v', '--verbose', dest='log_level',
        action='store_const', const=logging.INFO,
        help=lang._("Print more output"))
    parser.add_argument(
        '-q', '--quiet', dest='log_level',
        action='store_const', const=logging.CRITICAL,
        help=lang._("Print no output"))
    parser.add_argument(
        '-o', '--output', type=argparse.FileType('wb'), metavar='FILE',
        default=None,
        help=lang._("Write the body to FILE instead of stdout"))

    http = parser.add_argument_group(lang._('fetch'), section='fetch')
    http.add_argument(
        'url', key='url', nargs='?', metavar='URL',
        help=lang._("The URL to retrieve; default: %(default)s"))
    http.add_argument(
        '--stream', key='stream', action='store_true',
        help=lang._(
            "Copy the body to the output through a transfer buffer"))
    http.add_argument(
        '--no-stream', dest='stream', key='stream', action='store_false',
        help=lang._(
            "Read the entire body into memory before writing it to the "
            "output"))
    http.add_argument(
        '--timeout', key='timeout', type=duration, metavar='DURATION',
        help=lang._(
            "The maximum time to wait for each network operation; default: "
            "%(default)s"))
    http.add_argument(
        '-b', '--bufsize', key='bufsize', type=size, metavar='SIZE',
        help=lang._(
            "The size of the transfer buffer used when streaming; default: "
            "%(default)s"))

    defaults = parser.read_configs(CONFIG_LOCATIONS)
    parser.set_defaults(log_level=logging.WARNING)
    parser.set_defaults_from(defaults)
    return parser


def main(args=None):
    """
    The main entry point for the :program:`copybench-fetch` application. Takes
    *args*, the sequence of command line arguments to parse. Returns the exit
    code of the application (0 for a normal exit, and non-zero otherwise).

    If ``DEBUG=1`` is found in the application's environment, top-level
    exceptions will be printed with a full back-trace. ``DEBUG=2`` will launch
    PDB in port-mortem mode.
    """
    try:
        debug = int(os.environ['DEBUG'])
    except (KeyError, ValueError):
        debug = 0
    lang.init()

    try:
        conf = get_parser().parse_args(args)
        conf.logger = logging.getLogger('fetch')
        conf.logger.addHandler(logging.StreamHandler(sys.stderr))
        conf.logger.setLevel(logging.DEBUG if debug else conf.log_level)
        output = sys.stdout.buffer if conf.output is None else conf.output
        try:
            pool = BufferPool(conf.bufsize)
            with make_client(conf) as client:
                conf.logger.info(lang._('Retrieving %s'), conf.url)
                written = fetch(
                    client, conf.url, output, stream=conf.stream, pool=pool)
            output.flush()
            conf.logger.info(lang._('Wrote %d bytes'), written)
        finally:
            if conf.output is not None:
                conf.output.close()
    except Exception as e:
        if not debug:
            print(str(e), file=sys.stderr)
            return 1
        elif debug == 1:
            raise
        else:
            import pdb
            pdb.post_mortem()
            return 1
    else:
        return 0
