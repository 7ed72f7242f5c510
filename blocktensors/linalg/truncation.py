r"""Truncation of singular values.

A truncated SVD keeps only a subset of the singular values of all blocks. Which ones is decided by
a :class:`TruncationScheme`, a small value object. The schemes are

==========================  ====================================================================
Scheme                      Keeps
==========================  ====================================================================
:class:`NoTruncation`       all values.
:class:`ErrorTolerance`     the largest values, such that the truncation error (see below) of
                            the discarded ones is at most `eta`.
:class:`MaxTotalDim`        the largest values, such that the dimension of the truncated space,
                            i.e. ``sum_c dim(c) * num_kept(c)``, is at most `chi`.
:class:`MaxSpace`           per coupled sector, at most as many values as the multiplicity of
                            that sector in a given space.
:class:`ValueFloor`         all values ``>= eta``.
==========================  ====================================================================

Schemes can be combined by ``scheme_1 & scheme_2`` (see :class:`CombinedTruncation`), which keeps
per coupled sector the smaller of the numbers of values kept by the two schemes.

The schemes that compare values across sectors treat a singular value of a block with coupled
sector `c` as ``dim(c)`` degenerate singular values of the dense map.
Consequently, the :class:`TruncationError` is the p-norm over the union of all discarded values,
each counted ``dim(c)`` times:

.. math ::

    \epsilon = \Big( \sum_c \dim(c) \sum_{\sigma \text{ discarded in } c} \sigma^p \Big)^{1/p}

For ``p = 2``, this is exactly the norm of the difference between the tensor and its truncated
SVD.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3
from __future__ import annotations
from abc import ABCMeta, abstractmethod
from functools import reduce
import operator
import warnings

import numpy as np

from .errors import SpaceMismatch
from .spaces import ElementarySpace
from .symmetries import Symmetry, SectorArray
from ..tools.params import asConfig

__all__ = ['Spectrum', 'TruncationError', 'TruncationScheme', 'NoTruncation', 'ErrorTolerance',
           'MaxTotalDim', 'MaxSpace', 'ValueFloor', 'CombinedTruncation', 'truncate',
           'truncation_from_options']


class Spectrum:
    """The singular values of all blocks of a tensor.

    Parameters
    ----------
    symmetry : Symmetry
        The symmetry of the tensor.
    sectors : 2D array of int
        The coupled sectors.
    values : list of 1D array
        For each of the `sectors`, the singular values of the block, descending.

    Attributes
    ----------
    sector_dims : 1D array of int
        The dimension of each of the :attr:`sectors`.
    lengths : 1D array of int
        The number of values per sector.
    """

    def __init__(self, symmetry: Symmetry, sectors: SectorArray, values: list[np.ndarray]):
        self.symmetry = symmetry
        self.sectors = np.asarray(sectors, dtype=int)
        self.values = [np.asarray(v, dtype=float) for v in values]
        if len(self.values) != len(self.sectors):
            raise ValueError('Need exactly one array of values per sector.')
        self.sector_dims = symmetry.batch_sector_dim(self.sectors)
        self.lengths = np.array([len(v) for v in self.values], dtype=int)

    @property
    def num_sectors(self) -> int:
        return len(self.sectors)

    def ascending(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """All values of all sectors, sorted ascending.

        Returns
        -------
        values : 1D array
            The sorted values.
        weights : 1D array of int
            For each value, the dimension of its sector.
        which : 1D array of int
            For each value, the index of its sector.
        """
        if len(self.values) == 0:
            return np.zeros(0), np.zeros(0, int), np.zeros(0, int)
        values = np.concatenate(self.values)
        weights = np.repeat(self.sector_dims, self.lengths)
        which = np.repeat(np.arange(self.num_sectors), self.lengths)
        piv = np.argsort(values, kind='stable')
        return values[piv], weights[piv], which[piv]


class TruncationError:
    r"""Class representing a truncation error.

    The default initialization represents "no truncation".

    Parameters
    ----------
    eps, p : float
        See below.

    Attributes
    ----------
    eps : float
        The p-norm of the discarded singular values, each counted ``dim(c)`` times.
        For ``p == 2``, this is the norm of the difference between the untruncated and the
        truncated tensor.
    p : float
        The order of the norm.
    """
    def __init__(self, eps: float = 0., p: float = 2):
        self.eps = eps
        self.p = p

    def copy(self):
        """Return a copy of self."""
        return TruncationError(self.eps, self.p)

    @classmethod
    def from_discarded(cls, spectrum: Spectrum, keep: np.ndarray, p: float = 2):
        """Construct the TruncationError of keeping the largest ``keep[i]`` values of sector ``i``."""
        eps_p = 0.
        for d, values, k in zip(spectrum.sector_dims, spectrum.values, keep):
            eps_p += d * np.sum(values[k:] ** p)
        return cls(float(eps_p ** (1. / p)), p)

    def __add__(self, other):
        if self.p != other.p:
            raise ValueError('Can not add truncation errors with different p.')
        eps = (self.eps ** self.p + other.eps ** other.p) ** (1. / self.p)
        return TruncationError(eps, self.p)

    def __repr__(self):
        if self.eps != 0:
            return f'TruncationError(eps={self.eps:.4e}, p={self.p})'
        return 'TruncationError()'


class TruncationScheme(metaclass=ABCMeta):
    """Abstract base class for truncation schemes.

    Attributes
    ----------
    p : float | None
        The order of the norm which the scheme controls, if any. See :attr:`error_p`.
    """
    p = None

    @abstractmethod
    def keep_counts(self, spectrum: Spectrum) -> np.ndarray:
        """How many values to keep in each sector.

        Returns
        -------
        1D array of int
            For each sector of the `spectrum`, the number of (largest) values to keep.
        """
        ...

    @property
    def error_p(self) -> float:
        """The order of the norm for the :class:`TruncationError`"""
        return 2 if self.p is None else self.p

    def __and__(self, other: TruncationScheme) -> CombinedTruncation:
        if not isinstance(other, TruncationScheme):
            return NotImplemented
        return CombinedTruncation(self, other)


class NoTruncation(TruncationScheme):
    """Keep all values."""

    def keep_counts(self, spectrum: Spectrum) -> np.ndarray:
        return spectrum.lengths.copy()

    def __repr__(self):
        return 'NoTruncation()'


class _GlobalCut(TruncationScheme):
    """A scheme that discards the globally smallest values, up to some cut.

    Subclasses mark the cuts at which the scheme is done discarding; the first one is used.
    """

    @abstractmethod
    def _good_cuts(self, values: np.ndarray, weights: np.ndarray) -> np.ndarray:
        """At which cuts the scheme stops discarding.

        Parameters
        ----------
        values, weights : 1D array
            The values sorted ascending and the dimension of their sectors,
            see :meth:`Spectrum.ascending`.

        Returns
        -------
        good : 1D bool array
            ``good[cut]`` for ``0 <= cut <= len(values)`` indicates that the scheme
            stops after discarding ``values[:cut]``. Must be ``True`` for all cuts larger than the
            first good one, in particular for ``cut == len(values)``.
            For a constraint on the kept values (:class:`MaxTotalDim`, :class:`ValueFloor`) the
            first good cut is the first one that satisfies it. For a budget on the discarded
            values (:class:`ErrorTolerance`) a cut is good once discarding ``values[cut]`` as
            well would exceed the budget, so the first good cut is the last affordable one.
        """
        ...

    def keep_counts(self, spectrum: Spectrum) -> np.ndarray:
        values, weights, which = spectrum.ascending()
        good = self._good_cuts(values, weights)
        cut = np.nonzero(good)[0][0]
        return np.bincount(which[cut:], minlength=spectrum.num_sectors).astype(int)


class ErrorTolerance(_GlobalCut):
    """Discard the smallest values as long as their truncation error is at most `eta`.

    Parameters
    ----------
    eta : float
        The (absolute) tolerance for the truncation error.
    p : float
        The order of the norm.
    """

    def __init__(self, eta: float, p: float = 2):
        if eta < 0:
            raise ValueError(f'Invalid eta={eta}')
        self.eta = eta
        self.p = p

    def _good_cuts(self, values: np.ndarray, weights: np.ndarray) -> np.ndarray:
        # good once discarding values[cut] as well would exceed the tolerance
        discarded = np.cumsum(weights * values ** self.p)
        return np.append(discarded > self.eta ** self.p, True)

    def __repr__(self):
        return f'ErrorTolerance({self.eta}, p={self.p})'


class MaxTotalDim(_GlobalCut):
    """Keep the largest values, such that ``sum_c dim(c) * num_kept(c) <= chi``."""

    def __init__(self, chi: int):
        if chi < 0:
            raise ValueError(f'Invalid chi={chi}')
        self.chi = chi

    def _good_cuts(self, values: np.ndarray, weights: np.ndarray) -> np.ndarray:
        discarded_dim = np.concatenate([[0], np.cumsum(weights)])
        kept_dim = discarded_dim[-1] - discarded_dim
        return kept_dim <= self.chi

    def __repr__(self):
        return f'MaxTotalDim({self.chi})'


class ValueFloor(_GlobalCut):
    """Keep only values ``>= eta``."""

    def __init__(self, eta: float):
        self.eta = eta

    def _good_cuts(self, values: np.ndarray, weights: np.ndarray) -> np.ndarray:
        return np.append(values >= self.eta, True)

    def __repr__(self):
        return f'ValueFloor({self.eta})'


class MaxSpace(TruncationScheme):
    """Keep per coupled sector at most as many values as the multiplicity in `space`.

    Sectors that do not appear in `space` are discarded entirely.
    """

    def __init__(self, space: ElementarySpace):
        self.space = space

    def keep_counts(self, spectrum: Spectrum) -> np.ndarray:
        if spectrum.symmetry != self.space.symmetry:
            raise SpaceMismatch('MaxSpace: the space has a different symmetry than the tensor.')
        max_counts = [self.space.sector_multiplicity(c) for c in spectrum.sectors]
        return np.minimum(spectrum.lengths, np.array(max_counts, dtype=int))

    def __repr__(self):
        return f'MaxSpace({self.space!r})'


class CombinedTruncation(TruncationScheme):
    """The intersection of truncation schemes.

    Keeps per sector the smallest of the numbers of values kept by the `schemes`.
    The :attr:`p` is the first one given by any of the `schemes`.
    """

    def __init__(self, *schemes: TruncationScheme):
        flat = []
        for s in schemes:
            if isinstance(s, CombinedTruncation):
                flat.extend(s.schemes)
            else:
                flat.append(s)
        self.schemes = flat
        for s in flat:
            if s.p is not None:
                self.p = s.p
                break

    def keep_counts(self, spectrum: Spectrum) -> np.ndarray:
        keep = spectrum.lengths.copy()
        for s in self.schemes:
            keep = np.minimum(keep, s.keep_counts(spectrum))
        return keep

    def __repr__(self):
        return ' & '.join(repr(s) for s in self.schemes)


def truncate(spectrum: Spectrum, scheme: TruncationScheme
             ) -> tuple[np.ndarray, TruncationError]:
    """Given the singular values of all blocks, determine which values to keep.

    Parameters
    ----------
    spectrum : :class:`Spectrum`
        The singular values, descending within each sector.
    scheme : :class:`TruncationScheme`
        Decides which values to keep.

    Returns
    -------
    keep : 1D array of int
        For every sector, the number of values to keep. These are the ``keep[i]`` largest values,
        i.e. ``spectrum.values[i][:keep[i]]``.
    err : :class:`TruncationError`
        The truncation error of the discarded values.
    """
    keep = np.minimum(scheme.keep_counts(spectrum), spectrum.lengths)
    if np.sum(spectrum.lengths) > 0 and np.sum(keep) == 0:
        warnings.warn(f'{scheme!r} discards all singular values.', stacklevel=2)
    return keep, TruncationError.from_discarded(spectrum, keep, scheme.error_p)


def truncation_from_options(options) -> TruncationScheme:
    """Build a :class:`TruncationScheme` from an option set.

    Options
    -------
    .. cfg:config:: truncation

        chi_max : int
            Keep at most `chi_max` values, counted with the dimension of their sector,
            see :class:`MaxTotalDim`.
        svd_min : float
            Discard all small values ``< svd_min``, see :class:`ValueFloor`.
        trunc_cut : float
            Discard all small values as long as the truncation error is ``<= trunc_cut``,
            see :class:`ErrorTolerance`.
        trunc_p : float
            The norm order for `trunc_cut`. Default 2.
        max_space : :class:`~blocktensors.linalg.spaces.ElementarySpace`
            See :class:`MaxSpace`.

    All constraints are optional. Without any, the result is :class:`NoTruncation`.
    """
    options = asConfig(options, 'truncation')
    chi_max = options.get('chi_max', None, 'int')
    svd_min = options.get('svd_min', None, 'real')
    trunc_cut = options.get('trunc_cut', None, 'real')
    trunc_p = options.get('trunc_p', 2, 'real')
    max_space = options.get('max_space', None, ElementarySpace)
    schemes = []
    if trunc_cut is not None:
        schemes.append(ErrorTolerance(trunc_cut, p=trunc_p))
    if chi_max is not None:
        schemes.append(MaxTotalDim(chi_max))
    if svd_min is not None:
        schemes.append(ValueFloor(svd_min))
    if max_space is not None:
        schemes.append(MaxSpace(max_space))
    if len(schemes) == 0:
        return NoTruncation()
    if len(schemes) == 1:
        return schemes[0]
    return reduce(operator.and_, schemes)
