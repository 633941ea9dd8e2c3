# copybench: comparing strategies for copying bytes between streams
#
# Copyright (c) 2026 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2026 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

import os
import re
import datetime as dt
from pathlib import Path
from decimal import Decimal
from contextlib import suppress
from configparser import ConfigParser
from argparse import ArgumentParser
from copy import deepcopy

from . import lang


# The locations to attempt to read the configuration from
XDG_CONFIG_HOME = Path(os.environ.get('XDG_CONFIG_HOME', '~/.config'))
CONFIG_LOCATIONS = (
    Path('/etc/copybench/config'),
    Path('/usr/local/etc/copybench/config'),
    Path(XDG_CONFIG_HOME / 'copybench.conf'),
    Path('~/.copybench.conf'),
)


class ConfigArgumentParser(ArgumentParser):
    """
    A variant of :class:`~argparse.ArgumentParser` that links arguments to
    specified keys in a :class:`~configparser.ConfigParser` instance.

    Typical usage is to construct an instance of :class:`ConfigArgumentParser`,
    define the parameters and parameter groups on it, associating them with
    configuration section and key names as appropriate, then call
    :meth:`read_configs` to parse a set of configuration files. These will be
    checked against the (optional) *template* configuration passed to the
    initializer, which defines the set of valid sections and keys expected.

    The resulting :class:`~configparser.ConfigParser` forms the "base"
    configuration, prior to argument parsing. This is passed to
    :meth:`set_defaults_from` to set the argument defaults. At this point,
    :meth:`~argparse.ArgumentParser.parse_args` may be called to parse the
    command line arguments, knowing that defaults in the help will be drawn
    from the "base" configuration. For example::

        >>> from pathlib import Path
        >>> from copybench.config import *
        >>> parser = ConfigArgumentParser()
        >>> bench = parser.add_argument_group('bench', section='bench')
        >>> bench.add_argument('--iterations', type=int, key='iterations',
        ... help="the number of copies to time (default: %(default)s)")
        >>> Path('defaults.conf').write_text('''
        ... [bench]
        ... iterations = 10
        ... ''')
        >>> defaults = parser.read_configs(['defaults.conf'])
        >>> parser.set_defaults_from(defaults)
        >>> parser.get_default('iterations')
        '10'
        >>> config = parser.parse_args(['--iterations', '1000'])
        >>> config.iterations
        1000

    Note that, after the call to :meth:`set_defaults_from`, the parser's idea
    of the defaults has been drawn from the file-based configuration (and thus
    will be reflected in printed ``--help``), but this is still overridden by
    the arguments passed to the command line.
    """
    def __init__(self, *args, template=None, **kwargs):
        super().__init__(*args, **kwargs)
        if template is not None:
            self._template = self._get_config_parser()
            self._template.read(template)
        else:
            self._template = None
        self._config_map = {}

    def _get_config_parser(self):
        """
        Generate and return a new :class:`~configparser.ConfigParser` with
        appropriate configuration (interpolation, delimiters, etc.) for the
        desired parsing behaviour.
        """
        return ConfigParser(
            delimiters=('=',), empty_lines_in_values=False,
            interpolation=None, strict=False)

    def add_argument(self, *args, section=None, key=None, **kwargs):
        """
        Adds *section* and *key* parameters. These link the new argument to the
        specified configuration entry.

        The default for the argument can be specified directly as usual, or can
        be read from the configuration (see :meth:`read_configs` and
        :meth:`set_defaults_from`).
        """
        return self._add_config_action(
            *args, method=super().add_argument, section=section, key=key,
            **kwargs)

    def add_argument_group(self, title=None, description=None, section=None):
        """
        Adds a new argument group object and returns it.

        The new argument group will likewise accept *section* and *key*
        parameters on its :meth:`add_argument` method. The *section* parameter
        will default to the value of the *section* parameter passed to this
        method (but may be explicitly overridden).
        """
        group = super().add_argument_group(title=title, description=description)
        def add_argument(*args, section=section, key=None,
                         _add_arg=group.add_argument, **kwargs):
            return self._add_config_action(
                *args, method=_add_arg, section=section, key=key, **kwargs)
        group.add_argument = add_argument
        return group

    def _add_config_action(self, *args, method, section, key, **kwargs):
        assert callable(method), 'method must be a callable'
        if (section is None) != (key is None):
            raise ValueError('section and key must be specified together')
        if kwargs.get('action') in ('store_true', 'store_false'):
            type = boolean
        else:
            type = kwargs.get('type', str)
        action = method(*args, **kwargs)
        if key is not None:
            with suppress(KeyError):
                if self._config_map[action.dest] != (section, key, type):
                    raise ValueError(
                        'section and key must match for all equivalent dest '
                        'values')
            self._config_map[action.dest] = (section, key, type)
        return action

    def read_configs(self, paths):
        """
        Constructs a :class:`~configparser.ConfigParser` instance, and reads
        the configuration files specified by *paths*, a list of
        :class:`~pathlib.Path`-like objects, into it.

        The method will check the configuration for valid section and key
        names, raising :exc:`ValueError` on invalid items. It will also resolve
        any (non-empty) configuration values that have the type
        :class:`~pathlib.Path` relative to the path of the configuration file
        in which they were defined.

        The return value is the configuration parser instance.
        """
        if self._template is None:
            config = self._get_config_parser()
        else:
            config = deepcopy(self._template)
        valid = {config.default_section: set()}
        for section, keys in config.items():
            valid.setdefault(section, set()).update(keys)

        # Figure out which configuration items represent paths. These will need
        # special handling when loading configuration files as the values will
        # be resolved relative to the containing configuration file
        path_items = self.of_type(Path)

        # Attempt to load each of the specified locations; these are done
        # strictly in order to permit the customary hierarchy of configuration
        # files (/etc, ~) to override each other
        to_read = [Path(p) for p in paths]
        while to_read:
            path = to_read.pop(0).expanduser()
            if not config.read(path):
                continue
            # If a template was provided upon construction, validate sections
            # and keys against those in the template
            if self._template is not None:
                for section, keys in config.items():
                    if section not in valid:
                        raise ValueError(lang._(
                            '{path}: invalid section [{section}]'
                        ).format(path=path, section=section))
                    for key in set(keys) - valid[section]:
                        raise ValueError(lang._(
                            '{path}: invalid key {key} in [{section}]'
                        ).format(path=path, key=key, section=section))
            # Resolve paths relative to the configuration file just loaded
            for section, key in path_items:
                if section in config and config[section].get(key):
                    value = Path(config[section][key]).expanduser()
                    if not value.is_absolute():
                        value = (path.parent / value).resolve()
                    config[section][key] = str(value)
        return config

    def set_defaults_from(self, config):
        """
        Sets defaults for all arguments from their associated configuration
        entries in *config*. Blank entries are ignored, leaving the default
        specified when the argument was added.
        """
        kwargs = {
            dest:
                config.getboolean(section, key)
                if type is boolean else
                config[section][key]
            for dest, (section, key, type) in self._config_map.items()
            if section in config
            and config[section].get(key)
        }
        return super().set_defaults(**kwargs)

    def of_type(self, type):
        """
        Return a set of (section, key) tuples listing all configuration items
        which were defined as being of the specified *type* (with the *type*
        keyword passed to :meth:`add_argument`.
        """
        return {
            (section, key)
            for section, key, item_type in self._config_map.values()
            if item_type is type
        }


def boolean(s):
    """
    Convert the string *s* to a :class:`bool`. A typical set of case
    insensitive strings are accepted: "yes", "y", "true", "t", and "1" are
    converted to :data:`True`, while "no", "n", "false", "f", and "0" convert
    to :data:`False`. Other values will result in :exc:`ValueError`.
    """
    try:
        return {
            'n':     False,
            'no':    False,
            'f':     False,
            'false': False,
            '0':     False,
            'y':     True,
            'yes':   True,
            't':     True,
            'true':  True,
            '1':     True,
        }[str(s).strip().lower()]
    except KeyError:
        raise ValueError(f'invalid boolean value: {s}')


def size(s):
    """
    Convert the string *s*, which must contain a number followed by an optional
    suffix (KB for kilo-bytes, MB for mega-bytes, etc.), and return the
    absolute integer value (scale the number in the string by the suffix
    given). Suffixes are binary, so "1KB" is 1024 bytes.
    """
    s = s.strip()
    for power, suffix in enumerate(['KB', 'MB', 'GB', 'TB'], start=1):
        if s.endswith(suffix):
            n = Decimal(s[:-len(suffix)])
            result = int(n * 2 ** (10 * power))
            break
    else:
        if s.endswith('B'):
            result = int(s[:-1])
        else:
            # No recognized suffix; attempt straight conversion
            result = int(s)
    return result


def names(s):
    """
    Convert the string *s*, containing white-space and/or comma separated
    words, into a :class:`tuple` of those words. For example:

        >>> names('readall, copy pooled')
        ('readall', 'copy', 'pooled')
    """
    return tuple(word for word in re.split(r'[\s,]+', s) if word)


def sizes(s):
    """
    Convert the string *s*, containing white-space and/or comma separated
    sizes (see :func:`size`) into a :class:`tuple` of integers. For example:

        >>> sizes('1KB, 10KB 1MB')
        (1024, 10240, 1048576)

    If the string contains no sizes, :exc:`ValueError` is raised.
    """
    result = tuple(size(item) for item in names(s))
    if not result:
        raise ValueError(f'no sizes in {s!r}')
    return result


_SPANS = {
    span: re.compile(fr'(?:(?P<num>[+-]?\d+)\s*{suffix}\b)')
    for span, suffix in [
        ('microseconds', '(micro|u|µ)s(ec(ond)?s?)?'),
        ('milliseconds', '(milli|m)s(ec(ond)?s?)?'),
        ('seconds',      's(ec(ond)?s?)?'),
        ('minutes',      'm(i(n(ute)?s?)?)?'),
        ('hours',        'h((ou)?rs?)?'),
    ]
}
def duration(s):
    """
    Convert the string *s* to a :class:`~datetime.timedelta`. The string must
    consist of white-space and/or comma separated values which are a number
    followed by a suffix indicating duration. For example:

        >>> duration('1s')
        timedelta(seconds=1)
        >>> duration('5 minutes, 30 seconds')
        timedelta(seconds=330)

    The set of possible durations, and their recognized suffixes is as follows:

    * *Microseconds*: microseconds, microsecond, microsec, micros, micro,
      useconds, usecond, usecs, usec, us, µseconds, µsecond, µsecs, µsec, µs

    * *Milliseconds*: milliseconds, millisecond, millisec, millis, milli,
      mseconds, msecond, msecs, msec, ms

    * *Seconds*: seconds, second, secs, sec, s

    * *Minutes*: minutes, minute, mins, min, mi, m

    * *Hours*: hours, hour, hrs, hr, h

    If conversion fails, :exc:`ValueError` is raised.
    """
    spans = {}
    t = s
    for span, regex in _SPANS.items():
        m = regex.search(t)
        if m:
            spans[span] = spans.get(span, 0) + int(m.group('num'))
            t = (t[:m.start(0)] + t[m.end(0):]).strip(' \t\n,')
            if not t:
                break
    if t:
        raise ValueError(f'invalid duration {s}')
    return dt.timedelta(**spans)
