"""Symmetries, their sectors and fusion rules.

A symmetry is described by its sectors (labels of irreducible representations), the fusion rules
(which sectors appear in the tensor product of two sectors, and how often) and, since all
symmetries in this module are groups, by explicit matrix elements of the fusion tensors
(Clebsch-Gordan coefficients). The tensor engine only consumes this information; it never needs
to know which concrete symmetry it is working with, only the capability tags
:class:`FusionStyle` and :class:`BraidingStyle`.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from __future__ import annotations
from abc import abstractmethod, ABCMeta
from enum import Enum
from functools import total_ordering

from numpy import typing as npt
import numpy as np

from .dtypes import Dtype

__all__ = ['SymmetryError', 'Sector', 'SectorArray', 'FusionStyle', 'BraidingStyle',
           'Symmetry', 'GroupSymmetry', 'AbelianGroup', 'NoSymmetry', 'U1Symmetry', 'ZNSymmetry',
           'SU2Symmetry', 'no_symmetry', 'u1_symmetry', 'z2_symmetry', 'z3_symmetry',
           'z4_symmetry', 'su2_symmetry']


class SymmetryError(Exception):
    """An exception that is raised whenever something is not possible or not allowed due to symmetry"""
    pass


Sector = npt.NDArray[np.int_]
"""Type hint for a sector. A 1D array of integers with axis [q] and shape ``(sector_ind_len,)``."""

SectorArray = npt.NDArray[np.int_]
"""Type hint for an array of multiple sectors.

A 2D array of int with axis [s, q] and shape ``(num_sectors, sector_ind_len)``.
"""


@total_ordering
class FusionStyle(Enum):
    """Describes properties of fusion, i.e. of the tensor product.

    =================  =============================================================================
    Value              Meaning
    =================  =============================================================================
    single             Fusing sectors results in a single sector ``a ⊗ b = c``, e.g. abelian groups.
    -----------------  -----------------------------------------------------------------------------
    multiple_unique    Every sector appears at most once in pairwise fusion, ``N_symbol in [0, 1]``.
    -----------------  -----------------------------------------------------------------------------
    general            No assumptions, ``N_symbol in [0, 1, 2, 3, ...]``.
    =================  =============================================================================

    """
    single = 0  # only one resulting sector, a ⊗ b = c, e.g. abelian symmetry groups
    multiple_unique = 10  # every sector appears at most once in pairwise fusion, N^{ab}_c \in {0,1}
    general = 20  # no assumptions N^{ab}_c = 0, 1, 2, ...

    def __lt__(self, other):
        if self.__class__ is other.__class__:
            return self.value < other.value
        return NotImplemented


@total_ordering
class BraidingStyle(Enum):
    """Describes properties of braiding.

    =============  ===========================================
    Value
    =============  ===========================================
    bosonic        Symmetric braiding with trivial twist
    -------------  -------------------------------------------
    fermionic      Symmetric braiding with non-trivial twist
    -------------  -------------------------------------------
    anyonic        General, non-symmetric braiding
    =============  ===========================================

    Only ``bosonic`` symmetries are implemented in this package.
    """

    bosonic = 0  # symmetric braiding with trivial twist; v ⊗ w ↦ w ⊗ v
    fermionic = 10  # symmetric braiding with non-trivial twist; v ⊗ w ↦ (-1)^p(v,w) w ⊗ v
    anyonic = 20  # non-symmetric braiding

    def __lt__(self, other):
        if self.__class__ is other.__class__:
            return self.value < other.value
        return NotImplemented


class Symmetry(metaclass=ABCMeta):
    r"""Base class for symmetries that impose a block-structure on tensors

    Attributes
    ----------
    fusion_style: :class:`FusionStyle`
    braiding_style: :class:`BraidingStyle`
    trivial_sector: Sector
        The trivial sector of the symmetry, where the group acts trivially.
    group_name: str
        A readable name for the symmetry, purely as a mathematical structure, e.g. ``'U(1)'``.
    descriptive_name: str | None
        Optionally, an additional name for the group, indicating e.g. how it arises.
        Could be e.g. ``'Sz'`` for the U(1) symmetry that conserves magnetization.
    num_sectors: int | float
        The number of sectors of the symmetry. An integer if finite, otherwise ``float('inf')``.
    sector_ind_len : int
        Valid sectors are numpy arrays with shape ``(sector_ind_len,)``.
    empty_sector_array : 2D ndarray
        A SectorArray with no sectors, shape ``(0, sector_ind_len)``.
    is_abelian : bool
        If the symmetry is abelian, characterized by ``FusionStyle.single``,
        which implies that all sectors are one-dimensional.
    """

    fusion_tensor_dtype = Dtype.float64

    def __init__(self, fusion_style: FusionStyle, braiding_style: BraidingStyle,
                 trivial_sector: Sector, group_name: str, num_sectors: int | float,
                 descriptive_name: str | None = None):
        self.fusion_style = fusion_style
        self.braiding_style = braiding_style
        self.trivial_sector = trivial_sector
        self.group_name = group_name
        self.num_sectors = num_sectors
        self.descriptive_name = descriptive_name
        self.sector_ind_len = sector_ind_len = len(trivial_sector)
        self.empty_sector_array = np.zeros((0, sector_ind_len), dtype=int)
        self.is_abelian = (fusion_style == FusionStyle.single)

    # ABSTRACT METHODS

    @abstractmethod
    def is_valid_sector(self, a: Sector) -> bool:
        """Whether `a` is a valid sector of this symmetry"""
        ...

    @abstractmethod
    def fusion_outcomes(self, a: Sector, b: Sector) -> SectorArray:
        """Returns all outcomes for the fusion of sectors, sorted.

        Each sector appears only once, regardless of its multiplicity (given by n_symbol).
        """
        ...

    @abstractmethod
    def __repr__(self):
        # Convention: valid syntax for the constructor, i.e. "ClassName(..., name='...')"
        ...

    @abstractmethod
    def is_same_symmetry(self, other) -> bool:
        """whether self and other describe the same mathematical structure.
        descriptive_name is ignored.
        """
        ...

    @abstractmethod
    def dual_sector(self, a: Sector) -> Sector:
        r"""The sector dual to a, such that N^{a,dual(a)}_u = 1."""
        ...

    @abstractmethod
    def _n_symbol(self, a: Sector, b: Sector, c: Sector) -> int:
        """Optimized version of self.n_symbol that assumes that c is a valid fusion outcome."""
        ...

    @abstractmethod
    def _fusion_tensor(self, a: Sector, b: Sector, c: Sector, Z_a: bool, Z_b: bool) -> np.ndarray:
        """Internal implementation of :meth:`fusion_tensor`. Can assume that inputs are valid."""
        ...

    @abstractmethod
    def Z_iso(self, a: Sector) -> np.ndarray:
        r"""The Z isomorphism from the dual of :math:`\bar{a}` to :math:`a`.

        A dual space whose sectors are labelled `a` transforms with the complex conjugate of the
        representation :math:`\bar{a}`. This conjugate representation is isomorphic, but in
        general not equal, to the representation `a`. The isomorphism is unitary.

        Returns
        -------
        The matrix elements as a [d_a, d_a] numpy array.
        """
        ...

    # FALLBACK IMPLEMENTATIONS (might want to override)

    def are_valid_sectors(self, sectors: SectorArray) -> bool:
        return all(self.is_valid_sector(a) for a in sectors)

    def all_sectors(self) -> SectorArray:
        """If there are finitely many sectors, return all of them. Else raise a SymmetryError."""
        if self.num_sectors == np.inf:
            msg = f'{type(self)} has infinitely many sectors.'
            raise SymmetryError(msg)
        raise NotImplementedError

    def can_fuse_to(self, a: Sector, b: Sector, c: Sector) -> bool:
        """Whether c is a valid fusion outcome, i.e. if it appears in ``self.fusion_outcomes(a, b)``"""
        return bool(np.any(np.all(self.fusion_outcomes(a, b) == c[None, :], axis=1)))

    def n_symbol(self, a: Sector, b: Sector, c: Sector) -> int:
        """The N-symbol N^{ab}_c, i.e. how often c appears in the fusion of a and b."""
        if not self.can_fuse_to(a, b, c):
            return 0
        return self._n_symbol(a, b, c)

    def multiple_fusion_outcomes(self, sectors: SectorArray) -> SectorArray:
        """All sectors that appear in the fusion of all `sectors`, unique and sorted.

        For no sectors at all, the result is the trivial sector.
        """
        if len(sectors) == 0:
            return self.trivial_sector[None, :]
        outcomes = sectors[:1]
        for b in sectors[1:]:
            outcomes = np.concatenate([self.fusion_outcomes(a, b) for a in outcomes], axis=0)
            outcomes = np.unique(outcomes, axis=0)
        # np.unique sorts lexicographically by the first column; we need lexsort order
        return outcomes[np.lexsort(outcomes.T)]

    def dual_sectors(self, sectors: SectorArray) -> SectorArray:
        """dual_sector for multiple sectors"""
        if len(sectors) == 0:
            return self.empty_sector_array
        return np.stack([self.dual_sector(s) for s in sectors])

    def sector_dim(self, a: Sector) -> int:
        """The dimension of a sector, as an unstructured space (i.e. if we drop the symmetry)."""
        return int(np.round(self.qdim(a)))

    def batch_sector_dim(self, a: SectorArray) -> np.ndarray:
        """sector_dim of every sector (row) in a"""
        if self.is_abelian:
            return np.ones([a.shape[0]], dtype=int)
        return np.array([self.sector_dim(s) for s in a], dtype=int)

    def qdim(self, a: Sector) -> float:
        """The quantum dimension ``Tr(id_a)`` of a sector"""
        return self.sector_dim(a)

    def sector_str(self, a: Sector) -> str:
        """Short and readable string for the sector. Is used in __str__ of symmetry-related objects."""
        return str(a)

    def fusion_tensor(self, a: Sector, b: Sector, c: Sector, Z_a: bool = False, Z_b: bool = False
                      ) -> np.ndarray:
        r"""Matrix elements of the fusion tensor :math:`X^{ab}_{c,\mu}` for all :math:`\mu`.

        .. warning ::
            Do not perform inplace operations on the output. That may invalidate caches.

        Parameters
        ----------
        a, b, c
            Sectors. Must be compatible with the fusion described above.
        Z_a, Z_b : bool
            If we should include a Z isomorphism below the sector a (or b).
            If so, the leg is a leg of a dual space, see :meth:`Z_iso`.

        Returns
        -------
        X : 4D ndarray
            Axis [μ, m_a, m_b, m_c] where μ is the multiplicity index of the fusion tensor and
            m_a goes over a basis for sector a, etc.
        """
        if not self.can_fuse_to(a, b, c):
            raise SymmetryError('Sectors are not consistent with fusion rules.')
        return self._fusion_tensor(a, b, c, Z_a, Z_b)

    # CONCRETE IMPLEMENTATIONS

    def __str__(self):
        res = self.group_name
        if self.descriptive_name is not None:
            res = res + f'("{self.descriptive_name}")'
        return res

    def __eq__(self, other):
        if not isinstance(other, Symmetry):
            return False
        if self.descriptive_name != other.descriptive_name:
            return False
        return self.is_same_symmetry(other)

    def __hash__(self):
        return hash((self.group_name, self.descriptive_name))


class GroupSymmetry(Symmetry):
    """Base-class for symmetries that are described by a group.

    The symmetry is given via a faithful representation on the Hilbert space, such that tensors
    have a dense representation as invariant arrays.
    """

    def __init__(self, fusion_style: FusionStyle, trivial_sector: Sector, group_name: str,
                 num_sectors: int | float, descriptive_name: str | None = None):
        Symmetry.__init__(self, fusion_style=fusion_style, braiding_style=BraidingStyle.bosonic,
                          trivial_sector=trivial_sector, group_name=group_name,
                          num_sectors=num_sectors, descriptive_name=descriptive_name)


class AbelianGroup(GroupSymmetry):
    """Base-class for abelian symmetry groups.

    All sectors are one-dimensional, all fusion tensors and Z isomorphisms are ``1``.
    """

    _one_2D_float = np.ones((1, 1), dtype=float)
    _one_4D_float = np.ones((1, 1, 1, 1), dtype=float)

    def __init__(self, trivial_sector: Sector, group_name: str, num_sectors: int | float,
                 descriptive_name: str | None = None):
        GroupSymmetry.__init__(self, fusion_style=FusionStyle.single, trivial_sector=trivial_sector,
                               group_name=group_name, num_sectors=num_sectors,
                               descriptive_name=descriptive_name)

    def sector_str(self, a: Sector) -> str:
        # we know sectors are labelled by a single number
        return str(a.item())

    def sector_dim(self, a: Sector) -> int:
        return 1

    def batch_sector_dim(self, a: SectorArray) -> np.ndarray:
        return np.ones((len(a),), int)

    def qdim(self, a: Sector) -> float:
        return 1

    def _n_symbol(self, a: Sector, b: Sector, c: Sector) -> int:
        return 1

    def _fusion_tensor(self, a: Sector, b: Sector, c: Sector, Z_a: bool, Z_b: bool) -> np.ndarray:
        return self._one_4D_float

    def Z_iso(self, a: Sector) -> np.ndarray:
        return self._one_2D_float


class NoSymmetry(AbelianGroup):
    """Trivial symmetry group that doesn't do anything.

    The only allowed sector is ``[0]``.
    """

    def __init__(self):
        AbelianGroup.__init__(self, trivial_sector=np.array([0], dtype=int),
                              group_name='no_symmetry', num_sectors=1, descriptive_name=None)

    def is_valid_sector(self, a: Sector) -> bool:
        return getattr(a, 'shape', ()) == (1,) and a[0] == 0

    def are_valid_sectors(self, sectors) -> bool:
        shape = getattr(sectors, 'shape', ())
        return len(shape) == 2 and shape[1] == 1 and bool(np.all(sectors == 0))

    def fusion_outcomes(self, a: Sector, b: Sector) -> SectorArray:
        return a[np.newaxis, :]

    def dual_sector(self, a: Sector) -> Sector:
        return a

    def dual_sectors(self, sectors: SectorArray) -> SectorArray:
        return sectors

    def sector_str(self, a: Sector) -> str:
        return '0'

    def __repr__(self):
        return 'NoSymmetry()'

    def is_same_symmetry(self, other) -> bool:
        return isinstance(other, NoSymmetry)

    def all_sectors(self) -> SectorArray:
        return self.trivial_sector[np.newaxis, :]


class U1Symmetry(AbelianGroup):
    """U(1) symmetry.

    Allowed sectors are 1D arrays with a single integer entry.
    ..., `[-2]`, `[-1]`, `[0]`, `[1]`, `[2]`, ...
    """
    def __init__(self, descriptive_name: str | None = None):
        AbelianGroup.__init__(self, trivial_sector=np.array([0], dtype=int), group_name='U(1)',
                              num_sectors=np.inf, descriptive_name=descriptive_name)

    def is_valid_sector(self, a: Sector) -> bool:
        return getattr(a, 'shape', ()) == (1,)

    def are_valid_sectors(self, sectors) -> bool:
        shape = getattr(sectors, 'shape', ())
        return len(shape) == 2 and shape[1] == 1

    def fusion_outcomes(self, a: Sector, b: Sector) -> SectorArray:
        return (a + b)[np.newaxis, :]

    def dual_sector(self, a: Sector) -> Sector:
        return -a

    def dual_sectors(self, sectors: SectorArray) -> SectorArray:
        return -sectors

    def __repr__(self):
        name_str = '' if self.descriptive_name is None else f'"{self.descriptive_name}"'
        return f'U1Symmetry({name_str})'

    def is_same_symmetry(self, other) -> bool:
        return isinstance(other, U1Symmetry)


class ZNSymmetry(AbelianGroup):
    """Z_N symmetry.

    Allowed sectors are 1D arrays with a single integer entry between `0` and `N-1`.
    `[0]`, `[1]`, ..., `[N-1]`
    """
    def __init__(self, N: int, descriptive_name: str | None = None):
        if not isinstance(N, int) or N < 2:
            raise ValueError(f"invalid ZNSymmetry(N={N!r},{descriptive_name!s})")
        self.N = N
        subscript_map = {'0': '₀', '1': '₁', '2': '₂', '3': '₃', '4': '₄', '5': '₅', '6': '₆',
                         '7': '₇', '8': '₈', '9': '₉'}
        subscript_N = ''.join(subscript_map[char] for char in str(N))
        group_name = f'ℤ{subscript_N}'
        AbelianGroup.__init__(self, trivial_sector=np.array([0], dtype=int), group_name=group_name,
                              num_sectors=N, descriptive_name=descriptive_name)

    def __repr__(self):
        name_str = '' if self.descriptive_name is None else f', "{self.descriptive_name}"'
        return f'ZNSymmetry({self.N}{name_str})'

    def is_same_symmetry(self, other) -> bool:
        return isinstance(other, ZNSymmetry) and other.N == self.N

    def is_valid_sector(self, a: Sector) -> bool:
        return getattr(a, 'shape', ()) == (1,) and 0 <= a[0] < self.N

    def are_valid_sectors(self, sectors) -> bool:
        shape = getattr(sectors, 'shape', ())
        return (len(shape) == 2 and shape[1] == 1 and bool(np.all(0 <= sectors))
                and bool(np.all(sectors < self.N)))

    def fusion_outcomes(self, a: Sector, b: Sector) -> SectorArray:
        return ((a + b) % self.N)[np.newaxis, :]

    def dual_sector(self, a: Sector) -> Sector:
        return (-a) % self.N

    def dual_sectors(self, sectors: SectorArray) -> SectorArray:
        return (-sectors) % self.N

    def all_sectors(self) -> SectorArray:
        return np.arange(self.N, dtype=int)[:, None]


class SU2Symmetry(GroupSymmetry):
    """SU(2) symmetry.

    Allowed sectors are 1D arrays ``[jj]`` of positive integers `jj` = `0`, `1`, `2`, ...
    which label the spin `jj/2` irrep of SU(2).
    This is for convenience so that we can work with `int` objects.
    E.g. a spin-1/2 degree of freedom is represented by the sector `[1]`.
    """

    def __init__(self, descriptive_name: str | None = None):
        GroupSymmetry.__init__(self, fusion_style=FusionStyle.multiple_unique,
                               trivial_sector=np.array([0], dtype=int), group_name='SU(2)',
                               num_sectors=np.inf, descriptive_name=descriptive_name)

    def is_valid_sector(self, a: Sector) -> bool:
        return getattr(a, 'shape', ()) == (1,) and a[0] >= 0

    def are_valid_sectors(self, sectors) -> bool:
        shape = getattr(sectors, 'shape', ())
        return len(shape) == 2 and shape[1] == 1 and bool(np.all(sectors >= 0))

    def fusion_outcomes(self, a: Sector, b: Sector) -> SectorArray:
        # J_tot = |J1 - J2|, ..., J1 + J2
        JJ_min = np.abs(a - b).item()
        JJ_max = (a + b).item()
        return np.arange(JJ_min, JJ_max + 2, 2)[:, np.newaxis]

    def can_fuse_to(self, a: Sector, b: Sector, c: Sector) -> bool:
        a, b, c = a[0], b[0], c[0]
        return bool((c <= a + b) and (a <= b + c) and (b <= c + a) and ((a + b + c) % 2 == 0))

    def sector_dim(self, a: Sector) -> int:
        # dim = 2 * J + 1 = jj + 1
        return int(a[0]) + 1

    def batch_sector_dim(self, a: SectorArray) -> npt.NDArray[np.int_]:
        if len(a) == 0:
            return np.zeros([0], dtype=int)
        return a[:, 0] + 1

    def qdim(self, a: Sector) -> float:
        return a[0] + 1

    def sector_str(self, a: Sector) -> str:
        jj = a[0]
        j_str = str(jj // 2) if jj % 2 == 0 else f'{jj}/2'
        return f'{jj} (J={j_str})'

    def __repr__(self):
        name_str = '' if self.descriptive_name is None else f'"{self.descriptive_name}"'
        return f'SU2Symmetry({name_str})'

    def is_same_symmetry(self, other) -> bool:
        return isinstance(other, SU2Symmetry)

    def dual_sector(self, a: Sector) -> Sector:
        # all sectors are self-dual
        return a

    def dual_sectors(self, sectors: SectorArray) -> SectorArray:
        return sectors

    def _n_symbol(self, a: Sector, b: Sector, c: Sector) -> int:
        return 1

    def _fusion_tensor(self, a: Sector, b: Sector, c: Sector, Z_a: bool, Z_b: bool) -> np.ndarray:
        from . import _su2data
        X = _su2data.fusion_tensor(int(a[0]), int(b[0]), int(c[0]))
        if Z_a:
            X = np.tensordot(self.Z_iso(a), X, (1, 1))  # [m_a, mu, m_b, m_c]
            X = np.transpose(X, [1, 0, 2, 3])
        if Z_b:
            X = np.tensordot(self.Z_iso(b), X, (1, 2))  # [m_b, mu, m_a, m_c]
            X = np.transpose(X, [1, 2, 0, 3])
        return X

    def Z_iso(self, a: Sector) -> np.ndarray:
        # Z : <m| -> (-1)^(j - m) |-m>, extended *linearly*
        from . import _su2data
        return _su2data.Z_iso(int(a[0]))


no_symmetry = NoSymmetry()
z2_symmetry = ZNSymmetry(N=2)
z3_symmetry = ZNSymmetry(N=3)
z4_symmetry = ZNSymmetry(N=4)
u1_symmetry = U1Symmetry()
su2_symmetry = SU2Symmetry()
