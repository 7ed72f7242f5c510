"""Option sets for the factorization engine.

Routines like :func:`~blocktensors.linalg.factorizations.tsvd` take an ``options`` dictionary
and read it through a :class:`Config`, which logs the values actually used and warns about
options that were never read (typically typos in the keys).
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import warnings
import numbers
import pprint
import logging
from collections.abc import MutableMapping

logger = logging.getLogger(__name__)

__all__ = ["Config", "asConfig"]

_type_shorthands = {
    'real': numbers.Real,
    'complex': numbers.Complex,
    'int': numbers.Integral,
}


class Config(MutableMapping):
    """Dict-like wrapper around an option dictionary.

    Reading an option with :meth:`get` stores the default if the key is missing, such that
    afterwards the dictionary holds every value that was used. The first read-out of each key is
    logged. Keys that are never read are reported with a warning when the config is deleted.

    Parameters
    ----------
    config : dict
        The option keys and values. Not copied; defaults are written into it.
    name : str
        Descriptive name used in log messages and warnings, e.g. ``'svd'``.

    Attributes
    ----------
    name : str
        Descriptive name.
    options : dict
        The option keys and values.
    unused : set
        The keys of :attr:`options` not read so far.
    """
    def __init__(self, config, name):
        self.options = config
        self.unused = set(config.keys())
        self.name = name

    def __getitem__(self, key):
        val = self.options[key]
        self.log(key, "reading")
        self.unused.discard(key)
        return val

    def __setitem__(self, key, value):
        if key not in self.options:
            self.unused.add(key)
        self.options[key] = value
        self.log(key, "setting")

    def __delitem__(self, key):
        self.log(key, "deleting")
        self.unused.discard(key)
        del self.options[key]

    def __iter__(self):
        return iter(self.options)

    def __len__(self):
        return len(self.options)

    def __str__(self):
        return f"Config, name={self.name!r}, options:\n{pprint.pformat(self.options)}"

    def __repr__(self):
        return f"Config(<{len(self.options):d} options>, {self.name!r})"

    def __del__(self):
        self.warn_unused()

    def warn_unused(self):
        """Warn about the options not read so far, then forget them.

        Called automatically when the config is deleted.
        """
        unused = getattr(self, 'unused', None)
        if not unused:
            return
        if len(unused) > 1:
            msg = f"unused options for config {self.name!s}:\n{sorted(unused)!s}"
        else:
            msg = f"unused option {sorted(unused)!s} for config {self.name!s}"
        warnings.warn(msg)
        unused.clear()

    def get(self, key, default, expect_type=None):
        """Read out `key`, storing `default` first if it is not set.

        Parameters
        ----------
        key : str
            The option to read.
        default :
            Value used (and stored) if `key` is not set.
        expect_type : str | type | sequence of type
            If given, warn unless the value is an instance of one of the types.
            ``None`` values always pass. The shorthands ``'real'``, ``'complex'`` and ``'int'``
            stand for the corresponding :mod:`numbers` ABCs.

        Returns
        -------
        val :
            The value of `key`.
        """
        use_default = key not in self.options
        val = self.options.setdefault(key, default)
        self.log(key, "reading", use_default)
        self.unused.discard(key)
        if expect_type is not None and val is not None:
            self._check_type(key, val, expect_type)
        return val

    def _check_type(self, key, val, expect_type):
        if isinstance(expect_type, str):
            if expect_type not in _type_shorthands:
                raise ValueError(f'Unknown type shorthand: {expect_type!r}')
            expect_type = _type_shorthands[expect_type]
        if isinstance(expect_type, type):
            expect_type = [expect_type]
        expect_type = list(expect_type)
        assert len(expect_type) > 0, 'Expected at least one type'
        for t in expect_type:
            if not isinstance(t, type):
                raise ValueError(f'Not a type: {t}')
        if any(isinstance(val, t) for t in expect_type):
            return
        if len(expect_type) == 1:
            expected = f'Expected {expect_type[0]}'
        else:
            expected = f'Expected one of {", ".join(t.__name__ for t in expect_type)}'
        msg = f'Invalid type for key "{key}". {expected}. Got {type(val).__name__}.'
        warnings.warn(msg, stacklevel=3)

    def touch(self, *keys):
        """Mark `keys` as read, without logging them."""
        for key in keys:
            self.unused.discard(key)

    def log(self, option, action="Option", use_default=False):
        """Log the first read-out of `option`; defaults are logged at DEBUG level."""
        if not (option in self.unused or use_default):
            return
        val = self.options.get(option, "<not set>")
        if use_default:
            logger.debug("%s: %s %r=%r (default)", self.name, action, option, val)
        else:
            logger.info("%s: %s %r=%r", self.name, action, option, val)


def asConfig(config, name):
    """Wrap a dict-like `config` (or ``None``) into a :class:`Config`.

    An existing :class:`Config` is returned as is, such that nested routines share one set of
    unused keys.
    """
    if isinstance(config, Config):
        return config
    if config is None:
        config = {}
    return Config(config, name)
