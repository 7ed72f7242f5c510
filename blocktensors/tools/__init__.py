r"""A collection of tools: short yet useful functions that are not specific to tensors.

.. rubric:: Submodules

.. autosummary::
    :toctree: .

    params
    misc
    string
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from . import misc, params, string

__all__ = ['misc', 'params', 'string']
