"""Exceptions raised by the block-sparse tensor engine.

All of them are raised synchronously where the problem is detected and before any data is
modified. Space and permutation errors indicate a programming error of the caller;
a :class:`NumericalFailure` requires the caller to choose a remedy (a different algorithm,
a looser tolerance, ...). Nothing is retried automatically.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3
from __future__ import annotations

import numpy as np

__all__ = ['BlockTensorError', 'SpaceMismatch', 'MismatchedSpace', 'InvalidPermutation',
           'NoSuchSector', 'MismatchedCoupledSector', 'NotAnInnerProductSpace',
           'NumericalFailure']


class BlockTensorError(Exception):
    """Common base class for the errors of this package."""
    pass


class SpaceMismatch(BlockTensorError, ValueError):
    """Incompatible codomain/domain, or otherwise incompatible spaces."""
    pass


MismatchedSpace = SpaceMismatch


class InvalidPermutation(BlockTensorError, ValueError):
    """The index partition ``(p1, p2)`` is not a permutation of all indices."""
    pass


class NoSuchSector(BlockTensorError, KeyError):
    """A coupled sector was requested for which a tensor has no block."""

    def __str__(self):
        # KeyError would show the repr of the message
        return Exception.__str__(self)


class MismatchedCoupledSector(BlockTensorError, ValueError):
    """A pair of fusion trees with different coupled sectors does not address a subblock."""
    pass


class NotAnInnerProductSpace(BlockTensorError, TypeError):
    """An operation that needs an inner product was called on a generic space."""
    pass


class NumericalFailure(BlockTensorError, np.linalg.LinAlgError):
    """A dense kernel did not converge on the block of a given coupled sector.

    Attributes
    ----------
    sector : 1D array | None
        The coupled sector whose block could not be decomposed.
    """

    def __init__(self, msg: str, sector=None):
        if sector is not None:
            msg = f'{msg} (coupled sector {np.asarray(sector).tolist()})'
        super().__init__(msg)
        self.sector = sector
