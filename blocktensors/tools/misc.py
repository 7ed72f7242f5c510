"""Miscellaneous tools, somewhat random mix yet often helpful."""
# Copyright (C) TeNPy Developers, GNU GPLv3

import os
import numpy as np

__all__ = ['inverse_permutation', 'is_permutation', 'find_row_differences',
           'iter_common_sorted_arrays', 'setup_logging']

_not_set = object()  # sentinel


def inverse_permutation(perm):
    """Reverse sorting indices.

    Sort functions return a (1D) permutation `perm` array, such that
    ``sorted_array = old_array[perm]``. This function inverts the permutation `perm`,
    such that ``old_array = sorted_array[inverse_permutation(perm)]``.

    Parameters
    ----------
    perm : 1D array_like
        The permutation to be reversed. *Assumes* that it is a permutation with unique indices.

    Returns
    -------
    inv_perm : 1D array (int)
        The inverse permutation of `perm` such that ``inv_perm[perm[j]] = j = perm[inv_perm[j]]``.
    """
    perm = np.asarray(perm, dtype=np.intp)
    inv_perm = np.empty_like(perm)
    inv_perm[perm] = np.arange(perm.shape[0], dtype=perm.dtype)
    return inv_perm
    # equivalently: return np.argsort(perm) # would be O(N log(N))


def is_permutation(perm, n: int) -> bool:
    """Whether the integers in `perm` are exactly ``0, 1, ..., n - 1`` in some order."""
    perm = list(perm)
    if len(perm) != n:
        return False
    if not all(isinstance(i, (int, np.integer)) and not isinstance(i, bool) for i in perm):
        return False
    return sorted(int(i) for i in perm) == list(range(n))


def find_row_differences(sectors, include_len: bool = False):
    """Return indices where the rows of the 2D array `sectors` change.

    Parameters
    ----------
    sectors : 2D array
        The rows of this array are compared.
    include_len : bool
        If ``len(sectors)`` should be included or not.

    Returns
    -------
    diffs: 1D array
        The indices where rows change, including the first. Equivalent to:
        ``[0] + [i for i in range(1, len(sectors)) if np.any(sectors[i-1] != sectors[i])]``
    """
    len_sectors = len(sectors)
    diff = np.ones(len_sectors + int(include_len), dtype=np.bool_)
    diff[1:len_sectors] = np.any(sectors[1:] != sectors[:-1], axis=1)
    return np.nonzero(diff)[0]  # get the indices of True-values


def iter_common_sorted_arrays(a, b):
    """Yield all ``(i, j)`` such that ``a[i] == b[j]``.

    Both `a` and `b` are 2D arrays whose rows are unique and sorted in ``np.lexsort(a.T)`` order,
    e.g. the :attr:`sectors` of a space. The pairs are yielded in ascending order.
    """
    l_a = len(a)
    l_b = len(b)
    i, j = 0, 0
    while i < l_a and j < l_b:
        a_i = a[i]
        b_j = b[j]
        if np.all(a_i == b_j):
            yield i, j
            i += 1
            j += 1
        elif tuple(a_i[::-1]) < tuple(b_j[::-1]):  # same order as lexsort
            i += 1
        else:
            j += 1


skip_logging_setup = False


def setup_logging(output_filename=None,
                  *,
                  filename=_not_set,
                  to_stdout="INFO",
                  to_file="INFO",
                  format="%(levelname)-8s: %(message)s",
                  datefmt=None,
                  logger_levels={},
                  dict_config=None,
                  capture_warnings=None,
                  skip_setup=None):
    """Configure the :mod:`logging` module.

    The default logging setup is given by the following equivalent `dict_config`
    (here in yaml format for better readability).

    .. code-block :: yaml

        version: 1  # mandatory for logging config
        disable_existing_loggers: False  # keep module-based loggers already defined!
        formatters:
            custom:
                format: "%(levelname)-8s: %(message)s"   # options['format']
        handlers:
            to_stdout:
                class: logging.StreamHandler
                level: INFO         # options['to_stdout']
                formatter: custom
                stream: ext://sys.stdout
            to_file:
                class: logging.FileHandler
                level: INFO         # options['to_file']
                formatter: custom
                filename: output_filename.log   # options['filename']
                mode: a
        root:
            handlers: [to_stdout, to_file]
            level: DEBUG

    .. note ::
        We **remove** any previously configured logging handlers.

    Parameters
    ----------
    output_filename : None | str
        The filename for where results are saved. The log-file name defaults to this, but
        replacing the extension with ``.log``.
    skip_setup: bool
        If True, don't change anything in the logging setup; just return.
        This is useful for testing purposes, where `pytest` handles the logging setup.
        All other options are ignored in this case.
    to_stdout : None | ``"DEBUG" | "INFO" | "WARNING" | "ERROR" | "CRITICAL"``
        If not None, print log with (at least) the given level to stdout.
    to_file : None | ``"DEBUG" | "INFO" | "WARNING" | "ERROR" | "CRITICAL"``
        If not None, save log with (at least) the given level to a file.
    filename : str
        Filename for the logfile.
        If not set, it defaults to `output_filename` with the extension replaced to ".log".
        If ``None``, no log-file will be created, even with `to_file` set.
    logger_levels : dict(str, str)
        Set levels for certain loggers, e.g. ``{'blocktensors.tools.params': 'WARNING'}`` to
        suppress the option read-out logs, or ``{'blocktensors.linalg': 'DEBUG'}``.
    format : str
        Formatting string, `fmt` argument of :class:`logging.Formatter`.
        The style of the formatter is chosen depending on whether the format string
        contains ``'%' '{' '$'``, respectively.
    datefmt : str
        Formatting string for the `asctime` key in the `format`.
    dict_config : dict
        Alternatively, a full configuration dictionary for :func:`logging.config.dictConfig`.
        If used, all other options except `skip_setup` and `capture_warnings` are ignored.
    capture_warnings : bool
        Whether to call :func:`logging.captureWarnings` to include the warnings into the log.
    """
    import logging
    import logging.config
    if filename is _not_set:
        if output_filename is not None:
            root, ext = os.path.splitext(output_filename)
            assert ext != '.log'
            filename = root + '.log'
        else:
            filename = None
    if capture_warnings is None:
        capture_warnings = dict_config is not None or to_stdout or to_file
    if skip_setup is None:
        skip_setup = skip_logging_setup
    if skip_setup:
        return
    if dict_config is None:
        handlers = {}
        if to_stdout:
            handlers['to_stdout'] = {
                'class': 'logging.StreamHandler',
                'level': to_stdout,
                'formatter': 'custom',
                'stream': 'ext://sys.stdout',
            }
        if to_file and filename is not None:
            handlers['to_file'] = {
                'class': 'logging.FileHandler',
                'level': to_file,
                'formatter': 'custom',
                'filename': filename,
                'mode': 'a',
            }
        dict_config = {
            'version': 1,  # mandatory
            'disable_existing_loggers': False,
            'formatters': {
                'custom': {
                    'format': format,
                    'datefmt': datefmt
                }
            },
            'handlers': handlers,
            'root': {
                'handlers': list(handlers.keys()),
                'level': 'DEBUG'
            },
            'loggers': {},
        }
        if '%' not in format:
            if '{' in format:
                assert '$' not in format
                style = '{'
            else:
                assert '$' in format
                style = '$'
            dict_config['formatters']['custom']['style'] = style
        for name, level in logger_levels.items():
            if name == 'root':
                dict_config['root']['level'] = level
            else:
                dict_config['loggers'].setdefault(name, {})['level'] = level
    else:
        dict_config.setdefault('disable_existing_loggers', False)
    # note: dictConfig cleans up previously existing handlers etc
    logging.config.dictConfig(dict_config)
    if capture_warnings:
        logging.captureWarnings(True)
