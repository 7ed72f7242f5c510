"""Dense kernels acting on single blocks.

.. rubric:: Submodules

.. autosummary::
    :toctree: .

    abstract_backend
    numpy
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from . import abstract_backend, numpy
from .abstract_backend import Block, BlockBackend
from .numpy import NumpyBlockBackend

__all__ = ['abstract_backend', 'numpy', 'Block', 'BlockBackend', 'NumpyBlockBackend',
           'get_block_backend']

_default_block_backend = None


def get_block_backend() -> BlockBackend:
    """The :class:`BlockBackend` instance used by the tensor engine."""
    global _default_block_backend
    if _default_block_backend is None:
        _default_block_backend = NumpyBlockBackend()
    return _default_block_backend
