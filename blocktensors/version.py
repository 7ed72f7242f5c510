"""Access to version of this library.

The version is provided in the standard python format ``major.minor.revision`` as string.

.. autodata :: version
.. autodata :: released
.. autodata :: short_version
.. autodata :: git_revision
.. autodata :: full_version
.. autodata :: version_summary
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import sys
import subprocess
import os

__all__ = [
    "version", "released", "short_version", "git_revision", "full_version", "version_summary"
]

# hard-coded version for people without git...
#: current release version as a string
version = '0.1.0'

#: whether this is a released version or modified
released = False

#: same as version, but with 'v' in front
short_version = 'v' + version


def _get_git_revision(cwd=None):
    """Get revision hash from git.

    Parameters
    ----------
    cwd : str | None
        Directory contained in the git repository to be considered.
        ``None`` defaults to the top directory of the used blocktensors source code.

    Returns
    -------
    revision : str
        Revision hash of the git HEAD, or ``"unknown"``.
    """
    if cwd is None:
        cwd = os.path.dirname(os.path.abspath(__file__))
    try:
        rev = subprocess.check_output(['git', 'rev-parse', 'HEAD'],
                                      cwd=cwd,
                                      stderr=subprocess.STDOUT).decode().strip()
    except (subprocess.SubprocessError, FileNotFoundError):
        # FileNotFound e.g if git is not installed or cwd doesn't exist
        rev = "unknown"
    return rev


#: the hash of the last git commit (if available)
git_revision = _get_git_revision()


def _get_full_version():
    full_version = version
    if not released and git_revision != "unknown":
        full_version += '.dev0+{0!s}'.format(git_revision[:7])
    return full_version


#: if not released additional info with part of git revision
full_version = _get_full_version()


def _get_version_summary():
    import numpy
    import scipy
    import sympy

    summary = ("blocktensors {ver!s},\n"
               "git revision {git_rev!s} using\n"
               "python {python_ver!s}\n"
               "numpy {numpy_ver!s}, scipy {scipy_ver!s}, sympy {sympy_ver!s}")
    return summary.format(ver=full_version,
                          git_rev=git_revision,
                          python_ver=sys.version,
                          numpy_ver=numpy.version.full_version,
                          scipy_ver=scipy.version.full_version,
                          sympy_ver=sympy.__version__)


#: summary of the blocktensors, python, numpy, scipy and sympy versions used
version_summary = _get_version_summary()
