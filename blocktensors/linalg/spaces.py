"""Vector spaces graded by a symmetry and their tensor products.

An :class:`ElementarySpace` is a direct sum of sectors (with multiplicities). A
:class:`ProductSpace` is the ordered tensor product of elementary spaces. The product space
decomposes into coupled sectors; for each coupled sector, :meth:`ProductSpace.fusion_layout`
fixes once and for all how the rows (or columns) of a tensor block are organized by uncoupled
sectors and fusion trees. Every operation on tensors relies on that single layout.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3
from __future__ import annotations
from abc import ABCMeta, abstractmethod
from collections import namedtuple
from enum import Enum
import itertools as it
from typing import Sequence

import numpy as np
from numpy import ndarray

from .dummy_config import printoptions
from .symmetries import Sector, SectorArray, Symmetry, no_symmetry, FusionStyle, SymmetryError
from .trees import FusionTree, fusion_trees
from ..tools.misc import inverse_permutation, find_row_differences
from ..tools.string import format_like_list

__all__ = ['SpaceStyle', 'Space', 'ElementarySpace', 'ProductSpace', 'FusionLayoutEntry']


class SpaceStyle(Enum):
    """Capability tag of a space: does it carry an inner product?

    =============  ===================================================================
    Value          Meaning
    =============  ===================================================================
    euclidean      Inner product space, the representations are unitary.
                   Norms, adjoints and orthogonal factorizations are available.
    -------------  -------------------------------------------------------------------
    generic        A plain graded vector space without inner product.
    =============  ===================================================================
    """
    euclidean = 0
    generic = 1


class Space(metaclass=ABCMeta):
    """A space, which decomposes into sectors of a given symmetry.

    This is a base classes, the concrete subclasses are :class:`ElementarySpace`
    and :class:`ProductSpace`.

    Attributes
    ----------
    symmetry: Symmetry
        The symmetry associated with this space.
    sectors : 2D numpy array of int
        The sectors that compose this space. A 2D array of integers with axes [s, q] where s goes
        over different sectors and q over the (one or more) numbers needed to label a sector.
        The sectors (to be precise, the rows ``sectors[i, :]``) are unique and sorted, such that
        ``np.lexsort(sectors.T)`` is trivial. We use :attr:`multiplicities` for duplicates.
    multiplicities : 1D numpy array of int
        How often each of the :attr:`sectors` appears. A 1D array of positive integers with axis [s].
        ``sectors[i, :]`` appears ``multiplicities[i]`` times.
    sector_dims : 1D array of int
        The integer dimension of each of the :attr:`sectors`.
    dim : int
        The total dimension.
    slices : 2D numpy array of int
        For every sector ``sectors[n]``, the start ``slices[n, 0]`` and stop ``slices[n, 1]`` of
        indices (in the *internal* basis order) that belong to this sector.
        Within a sector, the multiplicity index varies slowest, the index within the sector
        (e.g. the magnetic quantum number of SU(2)) fastest.
    """

    def __init__(self, symmetry: Symmetry, sectors: SectorArray | Sequence[Sequence[int]],
                 multiplicities: Sequence[int] | None):
        self.symmetry = symmetry
        self.sectors = sectors = np.asarray(sectors, dtype=int)
        if sectors.ndim != 2 or sectors.shape[1] != symmetry.sector_ind_len:
            msg = (f'Wrong sectors.shape: Expected (*, {symmetry.sector_ind_len}), '
                   f'got {sectors.shape}.')
            raise ValueError(msg)
        self.num_sectors = num_sectors = len(sectors)
        if multiplicities is None:
            self.multiplicities = multiplicities = np.ones((num_sectors,), dtype=int)
        else:
            self.multiplicities = multiplicities = np.asarray(multiplicities, dtype=int)
        self.sector_dims = sector_dims = symmetry.batch_sector_dim(sectors)
        slices = np.zeros((len(sectors), 2), dtype=np.intp)
        slices[:, 1] = slice_ends = np.cumsum(multiplicities * sector_dims)
        slices[1:, 0] = slice_ends[:-1]  # slices[0, 0] remains 0, which is correct
        self.slices = slices
        self.dim = int(np.sum(sector_dims * multiplicities))

    def test_sanity(self):
        assert self.dim >= 0
        # sectors
        assert self.sectors.shape == (self.num_sectors, self.symmetry.sector_ind_len), 'wrong sectors.shape'
        assert all(self.symmetry.is_valid_sector(s) for s in self.sectors), 'invalid sectors'
        assert len(np.unique(self.sectors, axis=0)) == self.num_sectors, 'duplicate sectors'
        assert np.all(np.lexsort(self.sectors.T) == np.arange(self.num_sectors)), 'wrong sector order'
        # multiplicities
        assert np.all(self.multiplicities > 0)
        assert self.multiplicities.shape == (self.num_sectors,)
        # slices
        assert self.slices.shape == (self.num_sectors, 2)
        slice_diffs = self.slices[:, 1] - self.slices[:, 0]
        assert np.all(self.sector_dims == self.symmetry.batch_sector_dim(self.sectors))
        assert np.all(slice_diffs == self.sector_dims * self.multiplicities)
        if self.num_sectors > 0:
            assert self.slices[0, 0] == 0
            assert np.all(self.slices[1:, 0] == self.slices[:-1, 1])
            assert self.slices[-1, 1] == self.dim

    # ABSTRACT

    @property
    @abstractmethod
    def dual(self):
        ...

    @property
    @abstractmethod
    def is_euclidean(self) -> bool:
        ...

    @abstractmethod
    def __eq__(self, other):
        ...

    @abstractmethod
    def _repr(self, show_symmetry: bool) -> str | None:
        ...

    # CONCRETE

    def __repr__(self):
        res = self._repr(show_symmetry=True)
        if res is None:
            return f'<{self.__class__.__name__}>'
        return res

    def sectors_where(self, sector: Sector) -> int | None:
        """Find the index `i` s.t. ``self.sectors[i] == sector``, or ``None`` if no such ``i``."""
        sector = np.asarray(sector, dtype=int)
        if sector.shape != (self.symmetry.sector_ind_len,):
            return None
        where = np.nonzero(np.all(self.sectors == sector[None, :], axis=1))[0]
        if len(where) == 0:
            return None
        return int(where[0])

    def sector_multiplicity(self, sector: Sector) -> int:
        """The multiplicity of the given sector. Returns 0 if self does not have that sector."""
        idx = self.sectors_where(sector)
        if idx is None:
            return 0
        return int(self.multiplicities[idx])


class ElementarySpace(Space):
    r"""A space which is graded by a symmetry, but has no further structure.

    We distinguish ket spaces :math:`V_k := a_1 \oplus a_2 \oplus \dots \plus a_N` with
    ``is_dual=False`` and bra spaces :math:`V_b := [b_1 \oplus b_2 \oplus \dots \plus b_N]^*`
    with ``is_dual=True``. The bra space also decomposes into sectors, as
    :math:`V_b \cong \bar{b}_1 \oplus \bar{b}_2 \oplus \dots \plus \bar{b}_N`,
    where :math:`\bar{b}` is the :meth:`Symmetry.dual_sector` of :math:`b`.
    The :attr:`sectors` of a space then describe the :math:`\{a_n\}` for the ket space
    :math:`V_k` and the :math:`\{\bar{b}_n\}` for the bra space :math:`V_b`.

    The *internal* basis order is such that the basis vectors are grouped and sorted by sector.
    This is in general not the desired *public* basis order, e.g. for the dense arrays in
    :meth:`~blocktensors.linalg.tensors.TensorMap.from_dense_block`. The relation is stored as
    :attr:`basis_perm`. In particular, :attr:`dual` keeps the public basis order of the original
    space, even though the (dual) sectors are re-sorted.

    Parameters
    ----------
    symmetry, sectors, multiplicities, is_dual, is_real, space_style, basis_perm
        Like attributes of the same name, and nested lists are allowed in place of arrays.

    Attributes
    ----------
    is_dual: bool
        If this is a bra or a ket space.
    is_real : bool
        If the space is over the real numbers. Otherwise it is over the complex numbers.
    space_style : :class:`SpaceStyle`
        If the space carries an inner product.
    """

    def __init__(self, symmetry: Symmetry, sectors: SectorArray, multiplicities: ndarray = None,
                 is_dual: bool = False, is_real: bool = False,
                 space_style: SpaceStyle = SpaceStyle.euclidean, basis_perm: ndarray | None = None):
        Space.__init__(self, symmetry=symmetry, sectors=sectors, multiplicities=multiplicities)
        self.is_dual = is_dual
        self.is_real = is_real
        self.space_style = space_style
        if basis_perm is not None:
            basis_perm = np.asarray(basis_perm, dtype=int)
            if np.all(basis_perm == np.arange(len(basis_perm))):
                basis_perm = None
        if basis_perm is None:
            self._basis_perm = self._inverse_basis_perm = None
        else:
            if basis_perm.shape != (self.dim,):
                raise ValueError(f'basis_perm has wrong shape {basis_perm.shape}.')
            self._basis_perm = basis_perm
            self._inverse_basis_perm = inverse_permutation(basis_perm)

    def test_sanity(self):
        if self._basis_perm is None:
            assert self._inverse_basis_perm is None
        else:
            assert self._inverse_basis_perm is not None
            assert self._basis_perm.shape == self._inverse_basis_perm.shape == (self.dim,)
            assert len(np.unique(self._basis_perm)) == self.dim  # is a permutation
            assert np.all(self._basis_perm[self._inverse_basis_perm] == np.arange(self.dim))
        assert isinstance(self.space_style, SpaceStyle)
        super().test_sanity()

    @classmethod
    def from_null_space(cls, symmetry: Symmetry, is_dual: bool = False, is_real: bool = False
                        ) -> ElementarySpace:
        """The zero-dimensional space, i.e. the span of the empty set."""
        return cls(symmetry=symmetry, sectors=symmetry.empty_sector_array,
                   multiplicities=np.zeros(0, int), is_dual=is_dual, is_real=is_real)

    @classmethod
    def from_sectors(cls, symmetry: Symmetry, sectors: SectorArray,
                     multiplicities: Sequence[int] = None, is_dual: bool = False,
                     is_real: bool = False, space_style: SpaceStyle = SpaceStyle.euclidean,
                     basis_perm: ndarray = None, unique_sectors: bool = False,
                     return_sorting_perm: bool = False
                     ) -> ElementarySpace | tuple[ElementarySpace, ndarray]:
        """Similar to the constructor, but with fewer requirements.

        .. note ::
            A multi-dimensional sector is listed only once to mean its entire multiplet of basis
            states, e.g. a spin-1/2 degree of freedom is ``from_sectors(su2_symmetry, [[1]])``.

        Parameters
        ----------
        symmetry: Symmetry
            The symmetry associated with this space.
        sectors: 2D array_like of int
            The sectors of the symmetry that compose this space.
            Can be in any order and may contain duplicates (see `unique_sectors`).
        multiplicities: 1D array_like of int, optional
            How often each of the `sectors` appears. A 1D array of positive integers with axis [s].
            ``sectors[i_s, :]`` appears ``multiplicities[i_s]`` times.
            If not given, a multiplicity ``1`` is assumed for all `sectors`.
        is_dual, is_real, space_style:
            Like the attributes of :class:`ElementarySpace`.
        basis_perm: ndarray, optional
            The permutation from the desired public basis to the basis described by `sectors`
            and `multiplicities`.
        unique_sectors: bool
            If ``True``, the `sectors` are assumed to be duplicate-free.
        return_sorting_perm: bool
            If ``True``, the permutation ``np.lexsort(sectors.T)`` is returned too.

        Returns
        -------
        space: ElementarySpace
        sector_sort: 1D array, optional
            Only returned ``if return_sorting_perm``. The permutation that sorts the `sectors`.
        """
        sectors = np.asarray(sectors, dtype=int)
        if len(sectors) == 0:
            sectors = symmetry.empty_sector_array
        if sectors.ndim != 2 or sectors.shape[1] != symmetry.sector_ind_len:
            raise ValueError(f'Invalid shape of sectors: {sectors.shape}')
        if not symmetry.are_valid_sectors(sectors):
            raise SymmetryError(f'Invalid sectors for {symmetry!r}')
        if multiplicities is None:
            multiplicities = np.ones((len(sectors),), dtype=int)
        else:
            multiplicities = np.asarray(multiplicities, dtype=int)
            if multiplicities.shape != (len(sectors),):
                raise ValueError('Mismatching number of sectors and multiplicities')
        # drop sectors with zero multiplicity
        keep = multiplicities > 0
        if not np.all(keep):
            num_states = symmetry.batch_sector_dim(sectors) * multiplicities
            if basis_perm is not None:
                basis_slices = np.concatenate([[0], np.cumsum(num_states)], axis=0)
                basis_perm = np.concatenate(
                    [[]] + [basis_perm[basis_slices[i]:basis_slices[i + 1]]
                            for i in np.nonzero(keep)[0]]
                ).astype(int)
            sectors = sectors[keep]
            multiplicities = multiplicities[keep]
        # sort sectors
        num_states = symmetry.batch_sector_dim(sectors) * multiplicities
        basis_slices = np.concatenate([[0], np.cumsum(num_states)], axis=0)
        sectors, multiplicities, sort = _sort_sectors(sectors, multiplicities)
        if len(sectors) == 0:
            basis_perm = np.zeros(0, int)
        else:
            if basis_perm is None:
                basis_perm = np.arange(np.sum(num_states))
            basis_perm = np.concatenate([basis_perm[basis_slices[i]: basis_slices[i + 1]]
                                         for i in sort])
        # combine duplicate sectors (does not affect basis_perm)
        if not unique_sectors:
            mult_slices = np.concatenate([[0], np.cumsum(multiplicities)], axis=0)
            diffs = find_row_differences(sectors, include_len=True)
            multiplicities = mult_slices[diffs[1:]] - mult_slices[diffs[:-1]]
            sectors = sectors[diffs[:-1]]  # [:-1] to exclude len
        res = cls(symmetry=symmetry, sectors=sectors, multiplicities=multiplicities,
                  is_dual=is_dual, is_real=is_real, space_style=space_style, basis_perm=basis_perm)
        if return_sorting_perm:
            return res, sort
        return res

    @classmethod
    def from_trivial_sector(cls, dim: int, symmetry: Symmetry = no_symmetry, is_dual: bool = False,
                            is_real: bool = False, space_style: SpaceStyle = SpaceStyle.euclidean,
                            basis_perm: ndarray = None) -> ElementarySpace:
        """Create an ElementarySpace that lives in the trivial sector (i.e. it is symmetric).

        Parameters
        ----------
        dim : int
            The dimension of the space.
        symmetry : :class:`~blocktensors.linalg.symmetries.Symmetry`
            The symmetry of the space. By default, we use `no_symmetry`.
        is_dual, is_real, space_style, basis_perm
            Like the attributes of :class:`ElementarySpace`.
        """
        if dim == 0:
            return cls.from_null_space(symmetry=symmetry, is_dual=is_dual, is_real=is_real)
        return cls(symmetry=symmetry, sectors=symmetry.trivial_sector[None, :],
                   multiplicities=[dim], is_dual=is_dual, is_real=is_real,
                   space_style=space_style, basis_perm=basis_perm)

    @property
    def basis_perm(self) -> ndarray:
        """Permutation that translates between public and internal basis order.

        The public order is the order of e.g. the inputs to
        :meth:`~blocktensors.linalg.tensors.TensorMap.from_dense_block`, such that
        ``public_basis[basis_perm] == internal_basis``.
        We can translate indices as ``public_idx == basis_perm[internal_idx]``.
        For the inverse permutation, see :attr:`inverse_basis_perm`.
        """
        if self._basis_perm is None:
            return np.arange(self.dim)
        return self._basis_perm

    @property
    def inverse_basis_perm(self) -> ndarray:
        """Inverse permutation of :attr:`basis_perm`."""
        if self._inverse_basis_perm is None:
            return np.arange(self.dim)
        return self._inverse_basis_perm

    @property
    def is_euclidean(self) -> bool:
        return self.space_style == SpaceStyle.euclidean

    @property
    def is_trivial(self) -> bool:
        """Whether self is the trivial space, i.e. the trivial sector, appearing once."""
        if self.num_sectors != 1:
            return False
        if self.multiplicities[0] != 1:
            return False
        return bool(np.all(self.sectors[0] == self.symmetry.trivial_sector))

    @property
    def sectors_of_basis(self):
        """The sector for each basis vector, in the public basis order."""
        # build in internal basis, then permute
        res = np.zeros((self.dim, self.symmetry.sector_ind_len), dtype=int)
        for sect, slc in zip(self.sectors, self.slices):
            res[slice(*slc), :] = sect[None, :]
        if self._inverse_basis_perm is not None:
            res = res[self._inverse_basis_perm]
        return res

    @property
    def dual(self) -> ElementarySpace:
        return ElementarySpace.from_sectors(
            symmetry=self.symmetry, sectors=self.symmetry.dual_sectors(self.sectors),
            multiplicities=self.multiplicities, is_dual=not self.is_dual, is_real=self.is_real,
            space_style=self.space_style, basis_perm=self._basis_perm, unique_sectors=True
        )

    def with_space_style(self, space_style: SpaceStyle) -> ElementarySpace:
        """The same space with a different :attr:`space_style`."""
        return ElementarySpace(symmetry=self.symmetry, sectors=self.sectors,
                               multiplicities=self.multiplicities, is_dual=self.is_dual,
                               is_real=self.is_real, space_style=space_style,
                               basis_perm=self._basis_perm)

    def _repr(self, show_symmetry: bool):
        indent = printoptions.indent * ' '
        # 1) Try showing all data
        if 3 * self.sectors.size < printoptions.linewidth:
            # otherwise there is no chance to print all sectors in one line anyway
            if self._basis_perm is None:
                basis_perm = 'None'
            else:
                basis_perm = format_like_list(self._basis_perm)
            elements = ['ElementarySpace(']
            if show_symmetry:
                elements.append(f'{self.symmetry!r}')
            elements.extend([
                f'sectors={format_like_list(self.symmetry.sector_str(a) for a in self.sectors)}',
                f'multiplicities={format_like_list(self.multiplicities)}',
                f'basis_perm={basis_perm}',
                f'is_dual={self.is_dual}',
                ')'
            ])
            one_line = ', '.join(elements).replace('(, ', '(').replace(', )', ')')
            if len(one_line) <= printoptions.linewidth:
                return one_line
            if all(len(l) <= printoptions.linewidth for l in elements) and len(elements) <= printoptions.maxlines_spaces:
                elements[1:-1] = [f'{indent}{line},' for line in elements[1:-1]]
                return '\n'.join(elements)
        # 2) Try showing summarized data
        elements = ['<ElementarySpace:']
        if show_symmetry:
            elements.append(f'{self.symmetry!s}')
        elements.extend([
            f'{self.num_sectors} sectors',
            f'basis_perm={"None" if self._basis_perm is None else "[...]"}',
            f'is_dual={self.is_dual}',
            '>',
        ])
        one_line = ' '.join(elements)
        if len(one_line) < printoptions.linewidth:
            return one_line
        # 3) Show no data at all
        return None

    def __eq__(self, other):
        if not isinstance(other, ElementarySpace):
            return NotImplemented
        if self.is_dual != other.is_dual:
            return False
        if self.is_real != other.is_real or self.space_style != other.space_style:
            return False
        if self.symmetry != other.symmetry:
            return False
        if self.num_sectors != other.num_sectors:  # check this first to safely compare later
            return False
        if not np.all(self.multiplicities == other.multiplicities):
            return False
        if not np.all(self.sectors == other.sectors):
            return False
        if (self._basis_perm is not None) or (other._basis_perm is not None):
            # otherwise both are trivial and this match
            if not np.all(self.basis_perm == other.basis_perm):
                return False
        return True

    def __hash__(self):
        return hash((self.symmetry, self.is_dual, self.dim, self.num_sectors))


FusionLayoutEntry = namedtuple('FusionLayoutEntry', ['uncoupled_idcs', 'tree', 'start', 'shape'])
FusionLayoutEntry.__doc__ = """One contiguous range of rows of a block of a :class:`ProductSpace`.

The rows ``start:start + prod(shape)`` of the block for ``tree.coupled`` belong to the uncoupled
sectors ``spaces[i].sectors[uncoupled_idcs[i]]`` fused via the fusion `tree`.
Within the range, the multiplicity indices of the `shape` are ordered C-style.
"""


class ProductSpace(Space):
    r"""The tensor product of multiple :class:`ElementarySpace` s, which is itself a space.

    The *coupled* basis is given by the fusion outcomes, grouped by coupled sector.
    For each coupled sector, :meth:`fusion_layout` describes how the corresponding
    :attr:`multiplicities` (which are the block dimensions) arise from the uncoupled sectors
    and fusion trees.

    Parameters
    ----------
    spaces, symmetry
        Like the attributes of the same name. ``symmetry`` is required if `spaces` is empty.

    Attributes
    ----------
    spaces : list of :class:`ElementarySpace`
        The factors.
    num_spaces : int
        The number of factors.
    """

    def __init__(self, spaces: list[ElementarySpace], symmetry: Symmetry = None):
        if isinstance(spaces, ElementarySpace):
            spaces = [spaces]
        self.spaces = spaces = list(spaces)
        self.num_spaces = len(spaces)
        if not all(isinstance(sp, ElementarySpace) for sp in spaces):
            raise TypeError('ProductSpace expects a list of ElementarySpace')
        if symmetry is None:
            if len(spaces) == 0:
                raise ValueError('If spaces is empty, the symmetry arg is required.')
            symmetry = spaces[0].symmetry
        if not all(sp.symmetry == symmetry for sp in spaces):
            raise SymmetryError('Incompatible symmetries.')
        sectors, multiplicities = _fuse_spaces(symmetry=symmetry, spaces=spaces)
        Space.__init__(self, symmetry=symmetry, sectors=sectors, multiplicities=multiplicities)
        self._layouts = {}
        self._tree_lookup = {}

    def test_sanity(self):
        assert len(self.spaces) == self.num_spaces
        for sp in self.spaces:
            sp.test_sanity()
        for c, mult in zip(self.sectors, self.multiplicities):
            layout = self.fusion_layout(c)
            assert sum(int(np.prod(e.shape)) for e in layout) == mult
        Space.test_sanity(self)

    @property
    def dual(self) -> ProductSpace:
        return ProductSpace([sp.dual for sp in reversed(self.spaces)], symmetry=self.symmetry)

    @property
    def are_dual(self) -> list[bool]:
        return [sp.is_dual for sp in self.spaces]

    @property
    def dims(self) -> list[int]:
        """The dimensions of the factors"""
        return [sp.dim for sp in self.spaces]

    @property
    def is_euclidean(self) -> bool:
        return all(sp.is_euclidean for sp in self.spaces)

    @property
    def is_real(self) -> bool:
        return all(sp.is_real for sp in self.spaces)

    @property
    def is_trivial(self) -> bool:
        return all(s.is_trivial for s in self.spaces)

    def blockdim(self, coupled: Sector) -> int:
        """The dimension of the block of the given coupled sector, 0 if it does not appear."""
        return self.sector_multiplicity(coupled)

    def fusion_layout(self, coupled: Sector) -> list[FusionLayoutEntry]:
        """The canonical layout of the rows of a block with the given coupled sector.

        The entries are ordered by uncoupled sectors (``itertools.product`` order over the sorted
        sectors of each factor, the first factor varying slowest), then by fusion tree in the
        order of :class:`~blocktensors.linalg.trees.fusion_trees`.
        For a coupled sector that does not appear, the layout is empty.
        """
        key = tuple(int(q) for q in coupled)
        layout = self._layouts.get(key, None)
        if layout is not None:
            return layout
        coupled = np.asarray(coupled, dtype=int)
        are_dual = self.are_dual
        layout = []
        start = 0
        for idcs in it.product(*(range(sp.num_sectors) for sp in self.spaces)):
            if self.num_spaces == 0:
                uncoupled = self.symmetry.empty_sector_array
            else:
                uncoupled = np.stack([sp.sectors[i] for sp, i in zip(self.spaces, idcs)])
            if self.symmetry.is_abelian and self.num_spaces > 0:
                fused = self.symmetry.multiple_fusion_outcomes(uncoupled)
                if not np.all(fused[0] == coupled):
                    continue
            shape = tuple(int(sp.multiplicities[i]) for sp, i in zip(self.spaces, idcs))
            size = int(np.prod(shape))
            for tree in fusion_trees(self.symmetry, uncoupled, coupled, are_dual):
                layout.append(FusionLayoutEntry(idcs, tree, start, shape))
                start += size
        self._layouts[key] = layout
        self._tree_lookup[key] = {e.tree: e for e in layout}
        return layout

    def entry_for(self, tree: FusionTree) -> FusionLayoutEntry:
        """The :class:`FusionLayoutEntry` of a given fusion tree.

        Raises a ``KeyError`` if the tree does not belong to this space.
        """
        key = tuple(int(q) for q in tree.coupled)
        if key not in self._tree_lookup:
            self.fusion_layout(tree.coupled)
        return self._tree_lookup[key][tree]

    def tree_slice(self, tree: FusionTree) -> slice:
        """The range of rows of ``block(tree.coupled)`` that belong to the given tree."""
        entry = self.entry_for(tree)
        return slice(entry.start, entry.start + int(np.prod(entry.shape)))

    def uncoupled_idcs(self, uncoupled: Sequence[Sector]) -> tuple[int, ...]:
        """Indices into the sectors of each factor for the given uncoupled sectors.

        Raises a ``KeyError`` if one of the sectors does not appear in its factor.
        """
        if len(uncoupled) != self.num_spaces:
            raise ValueError(f'Expected {self.num_spaces} uncoupled sectors, got {len(uncoupled)}')
        idcs = []
        for sp, a in zip(self.spaces, uncoupled):
            idx = sp.sectors_where(a)
            if idx is None:
                raise KeyError(f'Sector {a} does not appear in {sp!r}')
            idcs.append(idx)
        return tuple(idcs)

    def __getitem__(self, idx):
        return self.spaces[idx]

    def __iter__(self):
        return iter(self.spaces)

    def __len__(self):
        return self.num_spaces

    def _repr(self, show_symmetry: bool):
        indent = printoptions.indent * ' '
        lines = ['ProductSpace([']
        if show_symmetry:
            lines.append(f'{indent}symmetry={self.symmetry!r},')
        num_lines = len(lines) + 1  # already consider final line ')'
        summarize = False
        for sp in self.spaces:
            sp_repr = sp._repr(show_symmetry=False)
            if sp_repr is None:
                summarize = True
                break
            next_space = indent + sp_repr.replace('\n', '\n' + indent) + ','
            additional_lines = 1 + next_space.count('\n')
            if num_lines + additional_lines > printoptions.maxlines_spaces:
                summarize = True
                break
            lines.append(next_space)
            num_lines += additional_lines
        lines.append('])')
        if not summarize:
            return '\n'.join(lines)
        return f'<ProductSpace symmetry={self.symmetry!s} {self.num_spaces} spaces>'

    def __eq__(self, other):
        if not isinstance(other, ProductSpace):
            return NotImplemented
        if self.num_spaces != other.num_spaces:
            return False
        if self.symmetry != other.symmetry:
            return False
        return all(s1 == s2 for s1, s2 in zip(self.spaces, other.spaces))

    def __hash__(self):
        return hash((self.symmetry, self.num_spaces, tuple(self.dims)))

    def as_ElementarySpace(self, is_dual: bool = False) -> ElementarySpace:
        """The coupled sectors and block dimensions as a single :class:`ElementarySpace`."""
        space_style = SpaceStyle.euclidean if self.is_euclidean else SpaceStyle.generic
        res = ElementarySpace(symmetry=self.symmetry, sectors=self.sectors,
                              multiplicities=self.multiplicities, is_real=self.is_real,
                              space_style=space_style)
        if is_dual:
            res = res.dual
        return res

    def left_multiply(self, other: ElementarySpace) -> ProductSpace:
        """Add a new factor at the left / beginning of the spaces"""
        return ProductSpace([other] + self.spaces, symmetry=self.symmetry)

    def right_multiply(self, other: ElementarySpace) -> ProductSpace:
        """Add a new factor at the right / end of the spaces"""
        return ProductSpace(self.spaces + [other], symmetry=self.symmetry)


def _fuse_spaces(symmetry: Symmetry, spaces: list[ElementarySpace]):
    """Helper function, called as part of ``ProductSpace.__init__``.

    It determines the sectors and multiplicities of the ProductSpace.

    Returns
    -------
    sectors : 2D array of int
        The coupled sectors, unique and sorted.
    multiplicities : 1D array of int
        The total multiplicity of each coupled sector, which is the block dimension.
    """
    # define recursively. base cases:
    if len(spaces) == 0:
        return symmetry.trivial_sector[None, :], np.ones([1], dtype=int)

    if len(spaces) == 1:
        return spaces[0].sectors, spaces[0].multiplicities

    sectors_1, mults_1 = _fuse_spaces(symmetry, spaces[:-1])
    if len(sectors_1) == 0 or spaces[-1].num_sectors == 0:
        return symmetry.empty_sector_array, np.zeros([0], dtype=int)

    sector_arrays = []
    mult_arrays = []
    for s2, m2 in zip(spaces[-1].sectors, spaces[-1].multiplicities):
        for s1, m1 in zip(sectors_1, mults_1):
            new_sects = symmetry.fusion_outcomes(s1, s2)
            sector_arrays.append(new_sects)
            if symmetry.fusion_style <= FusionStyle.multiple_unique:
                new_mults = m1 * m2 * np.ones(len(new_sects), dtype=int)
            else:
                new_mults = m1 * m2 * np.array([symmetry._n_symbol(s1, s2, c) for c in new_sects], dtype=int)
            mult_arrays.append(new_mults)
    sectors, multiplicities = _unique_sorted_sectors(
        np.concatenate(sector_arrays, axis=0),
        np.concatenate(mult_arrays, axis=0)
    )
    return sectors, multiplicities


def _unique_sorted_sectors(unsorted_sectors: SectorArray, unsorted_multiplicities: np.ndarray):
    """Sort sectors and merge duplicates.

    Given unsorted sectors which may contain duplicates,
    return a sorted list of unique sectors and corresponding *aggregate* multiplicities
    """
    sectors, multiplicities, perm = _sort_sectors(unsorted_sectors, unsorted_multiplicities)
    slices = np.concatenate([[0], np.cumsum(multiplicities)], axis=0)
    diffs = find_row_differences(sectors, include_len=True)
    slices = slices[diffs]
    multiplicities = slices[1:] - slices[:-1]
    sectors = sectors[diffs[:-1]]
    return sectors, multiplicities


def _sort_sectors(sectors: SectorArray, multiplicities: np.ndarray):
    perm = np.lexsort(sectors.T)
    return sectors[perm], multiplicities[perm], perm
