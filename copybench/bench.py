# copybench: comparing strategies for copying bytes between streams
#
# Copyright (c) 2026 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2026 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

"""
Compares the latency and memory use of several strategies for copying the
content of one file to another: reading the whole file into memory, streaming
it into an in-memory buffer, streaming it through a fixed-size transfer buffer,
and streaming it through a transfer buffer borrowed from a pool.
"""

import os
import sys
import logging
import tempfile
import tracemalloc
from time import perf_counter
from pathlib import Path
from collections import namedtuple
from importlib import resources
from importlib.metadata import version

from . import lang
from .pool import BufferPool
from .transfer import (
    COPY_BUFSIZE,
    copy_bytes,
    copy_pooled,
    read_all,
    read_buffered,
)
from .config import (
    CONFIG_LOCATIONS,
    ConfigArgumentParser,
    names,
    size,
    sizes,
)


FILLER = b'the quick brown fox jumps over the lazy dog\n'


def _readall(source, target, pool):
    data = read_all(source)
    target.write(data)
    return len(data)


def _buffered(source, target, pool):
    data = read_buffered(source, buffer=bytearray(pool.bufsize))
    target.write(data)
    return len(data)


def _copy(source, target, pool):
    return copy_bytes(source, target, buffer=bytearray(pool.bufsize))


def _pooled(source, target, pool):
    return copy_pooled(source, target, pool)


# Each strategy is called with the source and target files, and the pool
# which also dictates the transfer buffer size for the non-pooled strategies
STRATEGIES = {
    'readall':  _readall,
    'buffered': _buffered,
    'copy':     _copy,
    'pooled':   _pooled,
}


def strategies(s):
    """
    Convert the string *s*, a white-space and/or comma separated list of
    strategy names, to a :class:`tuple` of names, checking each is a key of
    :data:`STRATEGIES`.
    """
    result = names(s)
    if not result:
        raise ValueError(f'no strategies in {s!r}')
    for name in result:
        if name not in STRATEGIES:
            raise ValueError(f'unknown strategy {name!r}')
    return result


class BenchResult(namedtuple('BenchResult', (
    'strategy', 'size', 'iterations', 'elapsed', 'peak'))):
    """
    Records the outcome of :func:`run_benchmark`: the name of the *strategy*
    tested, the *size* of the file copied, the number of *iterations* timed,
    the total *elapsed* time (in seconds) of those iterations, and the *peak*
    number of bytes allocated during a single traced copy.
    """
    __slots__ = ()

    @property
    def per_op(self):
        """
        The mean time (in seconds) taken by each copy.
        """
        return self.elapsed / self.iterations

    @property
    def throughput(self):
        """
        The mean number of bytes copied per second.
        """
        if self.elapsed:
            return self.size * self.iterations / self.elapsed
        else:
            return 0.0


def make_source(path, size):
    """
    Create (or truncate) the file at *path* (a :class:`~pathlib.Path`) and fill
    it with exactly *size* bytes of repeated lines of text.
    """
    chunk = FILLER * max(1, COPY_BUFSIZE // len(FILLER))
    with path.open('wb') as f:
        remaining = size
        while remaining > 0:
            remaining -= f.write(chunk[:remaining])


def copy_file(copy, source_path, target_path, pool):
    """
    Open *source_path* and *target_path* (truncating the latter), both
    unbuffered, and copy the former to the latter with the strategy function
    *copy*. Returns the number of bytes copied.
    """
    with \
        source_path.open('rb', buffering=0) as source, \
        target_path.open('wb', buffering=0) as target:

        return copy(source, target, pool)


def run_benchmark(strategy, source_path, target_path, *, iterations, pool):
    """
    Copy *source_path* to *target_path* (both :class:`~pathlib.Path` objects)
    *iterations* times with the named *strategy*, timing the copies. Then
    perform one more copy under :mod:`tracemalloc` to determine the peak
    allocation of the strategy. The *pool* (a
    :class:`~copybench.pool.BufferPool`) is used by the "pooled" strategy, and
    its :attr:`~copybench.pool.BufferPool.bufsize` determines the transfer
    buffer size of the other streaming strategies.

    Returns a :class:`BenchResult`. Raises :exc:`RuntimeError` if any copy
    produces a target that differs in size from the source.
    """
    if iterations < 1:
        raise ValueError(lang._('iterations must be a positive integer'))
    copy = STRATEGIES[strategy]
    expected = source_path.stat().st_size

    def check(copied):
        actual = target_path.stat().st_size
        if copied != expected or actual != expected:
            raise RuntimeError(lang._(
                '{strategy} copied {actual} bytes instead of {expected}'
            ).format(strategy=strategy, actual=actual, expected=expected))

    elapsed = 0.0
    for i in range(iterations):
        start = perf_counter()
        copied = copy_file(copy, source_path, target_path, pool)
        elapsed += perf_counter() - start
        check(copied)

    was_tracing = tracemalloc.is_tracing()
    if was_tracing:
        tracemalloc.reset_peak()
    else:
        tracemalloc.start()
    try:
        baseline = tracemalloc.get_traced_memory()[0]
        copied = copy_file(copy, source_path, target_path, pool)
        peak = tracemalloc.get_traced_memory()[1] - baseline
    finally:
        if not was_tracing:
            tracemalloc.stop()
    check(copied)
    return BenchResult(strategy, expected, iterations, elapsed, peak)


def format_size(n):
    """
    Return a short :class:`str` representation of the size *n* (in bytes),
    using the largest binary suffix that represents it exactly. This is the
    inverse of :func:`~copybench.config.size`:

        >>> format_size(1024)
        '1KB'
        >>> format_size(1536)
        '1536B'
    """
    for power, suffix in reversed(
            list(enumerate(['KB', 'MB', 'GB', 'TB'], start=1))):
        scale = 2 ** (10 * power)
        if n and not n % scale:
            return f'{n // scale}{suffix}'
    return f'{n}B'


def format_results(results):
    """
    Format the sequence of :class:`BenchResult` *results* as a plain text
    table, returned as a :class:`str`.
    """
    headings = (
        lang._('Strategy'), lang._('Size'), lang._('Iterations'),
        lang._('Time/op'), lang._('MB/s'), lang._('Peak alloc'))
    rows = [
        (
            result.strategy,
            format_size(result.size),
            str(result.iterations),
            f'{result.per_op * 1000000:.1f}µs',
            f'{result.throughput / 1048576:.1f}',
            format_size(result.peak),
        )
        for result in results
    ]
    widths = [
        max(len(row[col]) for row in [headings] + rows)
        for col in range(len(headings))
    ]
    lines = [
        ' '.join(
            cell.ljust(width) if col == 0 else cell.rjust(width)
            for col, (cell, width) in enumerate(zip(row, widths))
        ).rstrip()
        for row in [headings, ['-' * width for width in widths]] + rows
    ]
    return '\n'.join(lines)


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

    bench = parser.add_argument_group(lang._('bench'), section='bench')
    bench.add_argument(
        '-s', '--sizes', key='sizes', type=sizes, metavar='SIZES',
        help=lang._(
            "The sizes of the files to copy, separated by commas or spaces, "
            "each with an optional suffix (KB, MB, GB); default: "
            "%(default)s"))
    bench.add_argument(
        '--strategies', key='strategies', type=strategies, metavar='NAMES',
        help=lang._(
            "The strategies to compare, separated by commas or spaces; any of "
            "{names}; default: %(default)s").format(names=', '.join(STRATEGIES)))
    bench.add_argument(
        '-n', '--iterations', key='iterations', type=int, metavar='NUM',
        help=lang._(
            "The number of timed copies of each file with each strategy; "
            "default: %(default)s"))
    bench.add_argument(
        '-b', '--bufsize', key='bufsize', type=size, metavar='SIZE',
        help=lang._(
            "The size of the transfer buffer used by the streaming "
            "strategies; default: %(default)s"))
    bench.add_argument(
        '--tmp-dir', key='tmp_dir', type=Path, metavar='PATH', default=None,
        help=lang._(
            "The directory in which to create the files copied; defaults to "
            "the system's temporary directory"))

    defaults = parser.read_configs(CONFIG_LOCATIONS)
    parser.set_defaults(log_level=logging.WARNING)
    parser.set_defaults_from(defaults)
    return parser


def run_benchmarks(conf):
    """
    Given the script's configuration in *conf*, an :class:`argparse.Namespace`,
    create a source file of each of the configured sizes in a temporary
    directory and benchmark each of the configured strategies against it.
    Returns a :class:`list` of :class:`BenchResult`.
    """
    pool = BufferPool(conf.bufsize)
    results = []
    with tempfile.TemporaryDirectory(dir=conf.tmp_dir) as tmp:
        tmp = Path(tmp)
        target = tmp / 'target'
        for file_size in conf.sizes:
            source = tmp / f'source-{file_size}'
            conf.logger.info(
                lang._('Creating %s source file'), format_size(file_size))
            make_source(source, file_size)
            for strategy in conf.strategies:
                conf.logger.info(
                    lang._('Copying %s with %s %d times'),
                    format_size(file_size), strategy, conf.iterations)
                result = run_benchmark(
                    strategy, source, target,
                    iterations=conf.iterations, pool=pool)
                conf.logger.debug(
                    lang._('%s took %.6f secs, peak %d bytes'),
                    strategy, result.elapsed, result.peak)
                results.append(result)
            source.unlink()
    conf.logger.info(
        lang.ngettext(
            'Pool allocated %d buffer of %d bytes',
            'Pool allocated %d buffers of %d bytes',
            pool.allocated),
        pool.allocated, pool.bufsize)
    return results


def main(args=None):
    """
    The main entry point for the :program:`copybench` application. Takes
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
        conf.logger = logging.getLogger('bench')
        conf.logger.addHandler(logging.StreamHandler(sys.stderr))
        conf.logger.setLevel(logging.DEBUG if debug else conf.log_level)
        print(format_results(run_benchmarks(conf)))
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
