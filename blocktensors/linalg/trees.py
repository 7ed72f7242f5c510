r"""Fusion trees: the basis of the symmetric subspace of a product of sectors.

A fusion tree with uncoupled sectors :math:`a_1, \dots, a_N` and coupled sector :math:`c` is an
intertwiner from :math:`c` into :math:`a_1 \otimes \dots \otimes a_N`, built from successive
pairwise fusion vertices (left-to-right, i.e. :math:`((a_1 \otimes a_2) \otimes a_3) \dots`).
For a given set of uncoupled sectors and coupled sector, the trees enumerated by
:class:`fusion_trees` form an orthonormal basis of these intertwiners, and this enumeration order
is the canonical order of trees used for the block layout of tensors.

Example fusion tree with
    uncoupled = [a, b, c, d]
    are_dual = [False, True, True, False]
    inner_sectors = [x, y]
    multiplicities = [m0, m1, m2]

|    |
|    coupled
|    |
|    m2
|    |  \
|    y   \
|    |    \
|    m1    \
|    |  \   \
|    x   \   \
|    |    \   \
|    m0    \   \
|    |  \   \   \
|    a   b   c   d
|    |   |   |   |
|    |   Z   Z   |
|    |   |   |   |

"""
# Copyright (C) TeNPy Developers, GNU GPLv3
from __future__ import annotations
from functools import lru_cache
from typing import Iterator
import numpy as np

from .symmetries import Symmetry, Sector, SectorArray, FusionStyle
from .dtypes import Dtype

__all__ = ['FusionTree', 'fusion_trees', 'tree_pair_tensor']


class FusionTree:
    r"""A fusion tree, which represents the map from uncoupled to coupled sectors.

    .. warning ::
        Should think of FusionTrees as immutable.
        Do not act on their attributes with inplace operations, unless you know *exactly* what you
        are doing.

    Notes
    -----
    Consider the ``n``-th vertex (counting 0-based from bottom to top).
    It fuses :math:`a \otimes b \to c` with multiplicity label ``multiplicities[n]``.

        - ``a = uncoupled[0] if n == 0 else inner_sectors[n - 1]``
        - ``b = uncoupled[n + 1]``
        - ``c = coupled if (n == num_vertices - 1) else inner_sectors[n]``

    """

    def __init__(self, symmetry: Symmetry,
                 uncoupled: SectorArray | list[Sector],  # N uncoupled sectors
                 coupled: Sector,
                 are_dual: np.ndarray | list[bool],  # N flags: is there a Z isomorphism below the uncoupled sector
                 inner_sectors: SectorArray | list[Sector],  # N - 2 internal sectors
                 multiplicities: np.ndarray | list[int] = None,  # N - 1 multiplicity labels; all 0 per default
                 ):
        self.symmetry = symmetry
        if len(uncoupled) == 0:
            uncoupled = symmetry.empty_sector_array
        self.uncoupled = np.asarray(uncoupled, dtype=int)
        self.num_uncoupled = len(uncoupled)
        self.num_vertices = num_vertices = max(len(uncoupled) - 1, 0)
        self.num_inner_edges = max(len(uncoupled) - 2, 0)
        self.coupled = np.asarray(coupled, dtype=int)
        self.are_dual = np.asarray(are_dual, dtype=bool)
        if len(inner_sectors) == 0:
            inner_sectors = symmetry.empty_sector_array
        self.inner_sectors = np.asarray(inner_sectors, dtype=int)
        if multiplicities is None:
            multiplicities = np.zeros((num_vertices,), dtype=int)
        self.multiplicities = np.asarray(multiplicities, dtype=int)
        self.fusion_style = symmetry.fusion_style
        self.is_abelian = symmetry.is_abelian
        self.braiding_style = symmetry.braiding_style

    def test_sanity(self):
        assert self.symmetry.are_valid_sectors(self.uncoupled)
        assert self.symmetry.is_valid_sector(self.coupled)
        assert len(self.are_dual) == self.num_uncoupled
        assert len(self.inner_sectors) == self.num_inner_edges
        assert self.symmetry.are_valid_sectors(self.inner_sectors)
        assert len(self.multiplicities) == self.num_vertices

        # special cases: no vertices
        if self.num_uncoupled == 0:
            assert np.all(self.coupled == self.symmetry.trivial_sector)
        if self.num_uncoupled == 1:
            assert np.all(self.uncoupled[0] == self.coupled)
        # otherwise, check fusion rules at every vertex
        for vertex in range(self.num_vertices):
            # the two sectors below this vertex
            a = self.uncoupled[0] if vertex == 0 else self.inner_sectors[vertex - 1]
            b = self.uncoupled[vertex + 1]
            # the sector above this vertex
            c = self.inner_sectors[vertex] if vertex < self.num_inner_edges else self.coupled
            N = self.symmetry.n_symbol(a, b, c)
            assert N > 0, 'inconsistent fusion'
            assert 0 <= self.multiplicities[vertex] < N, 'invalid multiplicity label'

    def _key(self) -> tuple:
        """Hashable tuple of plain ints that identifies the tree"""
        key = (tuple(self.are_dual.tolist()), tuple(self.coupled.tolist()),
               tuple(self.uncoupled.ravel().tolist()))
        if self.fusion_style == FusionStyle.single:
            # inner sectors are completely determined by uncoupled, all multiplicities are 0
            return key
        if self.fusion_style == FusionStyle.multiple_unique:
            # all multiplicities are 0
            return key + (tuple(self.inner_sectors.ravel().tolist()),)
        return key + (tuple(self.inner_sectors.ravel().tolist()),
                      tuple(self.multiplicities.tolist()))

    def __hash__(self) -> int:
        return hash(self._key())

    def __eq__(self, other) -> bool:
        if not isinstance(other, FusionTree):
            return False
        if self.num_uncoupled != other.num_uncoupled:
            return False
        return all([
            np.all(self.are_dual == other.are_dual),
            np.all(self.coupled == other.coupled),
            np.all(self.uncoupled == other.uncoupled),
            np.all(self.inner_sectors == other.inner_sectors),
            np.all(self.multiplicities == other.multiplicities),
        ])

    @staticmethod
    def _str_uncoupled_coupled(symmetry, uncoupled, coupled, are_dual) -> str:
        """Helper function for string representation.

        Generates a string that represents the uncoupled sectors before the Z isos,
        the uncoupled sectors after and the coupled sector.

        Is also used by ``fusion_trees.__str__``.
        """
        uncoupled_1 = []  # before Zs
        uncoupled_2 = []  # after Zs
        for a, is_dual in zip(uncoupled, are_dual):
            a_str = symmetry.sector_str(a)
            uncoupled_2.append(a_str)
            if is_dual:
                uncoupled_1.append(f'dual({symmetry.sector_str(symmetry.dual_sector(a))})')
            else:
                uncoupled_1.append(a_str)

        before_Z = f'({", ".join(uncoupled_1)})'
        after_Z = f'({", ".join(uncoupled_2)})'
        final = symmetry.sector_str(coupled)
        return f'{before_Z} -> {after_Z} -> {final}'

    def __str__(self) -> str:
        signature = self._str_uncoupled_coupled(
            self.symmetry, self.uncoupled, self.coupled, self.are_dual
        )
        entries = [signature]
        if self.fusion_style in [FusionStyle.multiple_unique, FusionStyle.general]:
            inner_sectors_str = ', '.join(self.symmetry.sector_str(x) for x in self.inner_sectors)
            entries.append(f'({inner_sectors_str})')
        if self.fusion_style == FusionStyle.general:
            entries.append(str(self.multiplicities))
        return f'FusionTree[{str(self.symmetry)}]({", ".join(entries)})'

    def __repr__(self) -> str:
        inner = str(self.inner_sectors).replace('\n', ',')
        uncoupled = str(self.uncoupled).replace('\n', ',')
        return (f'FusionTree({self.symmetry}, {uncoupled}, {self.coupled}, {self.are_dual}, '
                f'{inner}, {self.multiplicities})')

    def as_block(self, dtype: Dtype = None) -> np.ndarray:
        """Get the matrix elements of the map as a numpy array.

        Returns
        -------
        The matrix elements with axes ``[m_a1, m_a2, ..., m_aJ, m_c]``.
        """
        if dtype is None:
            dtype = self.symmetry.fusion_tensor_dtype
        np_dtype = dtype.to_numpy_dtype()
        # handle special cases of small trees
        if self.num_uncoupled == 0:
            # must be identity on the trivial sector. But since there is no uncoupled sector,
            # do not even give it an axis.
            return np.ones([1], dtype=np_dtype)
        if self.num_uncoupled == 1:
            if self.are_dual[0]:
                return np.asarray(self.symmetry.Z_iso(self.coupled), dtype=np_dtype)
            dim_c = self.symmetry.sector_dim(self.coupled)
            return np.eye(dim_c, dtype=np_dtype)
        if self.num_uncoupled == 2:
            mu = self.multiplicities[0]
            X = self.symmetry.fusion_tensor(*self.uncoupled, self.coupled, *self.are_dual)[mu]
            return np.asarray(X, dtype=np_dtype)  # [a0, a1, c]
        # larger trees: iterate over vertices
        mu0 = self.multiplicities[0]
        X0 = self.symmetry.fusion_tensor(
            self.uncoupled[0], self.uncoupled[1], self.inner_sectors[0],
            Z_a=self.are_dual[0], Z_b=self.are_dual[1]
        )[mu0]
        res = np.asarray(X0, dtype=np_dtype)  # [a0, a1, i0]
        for vertex in range(1, self.num_vertices):
            mu = self.multiplicities[vertex]
            a = self.inner_sectors[vertex - 1]
            b = self.uncoupled[vertex + 1]
            c = self.inner_sectors[vertex] if vertex < self.num_inner_edges else self.coupled
            X = self.symmetry.fusion_tensor(a, b, c, Z_b=self.are_dual[vertex + 1])[mu]
            #  [a0, a1, ..., an, i{n-1}] & [i{n-1}, a{n+1}, in] -> [a0, a1, ..., a{n+1}, in]
            res = np.tensordot(res, X, (-1, 0))
        return res

    def copy(self, deep=False) -> FusionTree:
        """Return a shallow (or deep) copy."""
        if deep:
            return FusionTree(self.symmetry, self.uncoupled.copy(), self.coupled.copy(),
                              self.are_dual.copy(), self.inner_sectors.copy(),
                              self.multiplicities.copy())
        return FusionTree(self.symmetry, self.uncoupled, self.coupled, self.are_dual,
                          self.inner_sectors, self.multiplicities)

    def insert(self, t2: FusionTree) -> FusionTree:
        """Insert a tree `t2` below the first uncoupled sector.

        See Also
        --------
        split
        """
        return FusionTree(
            symmetry=self.symmetry,
            uncoupled=np.concatenate([t2.uncoupled, self.uncoupled[1:]]),
            coupled=self.coupled,
            are_dual=np.concatenate([t2.are_dual, self.are_dual[1:]]),
            inner_sectors=np.concatenate([t2.inner_sectors, self.uncoupled[:1], self.inner_sectors]),
            multiplicities=np.concatenate([t2.multiplicities, self.multiplicities])
        )

    def split(self, n: int) -> tuple[FusionTree, FusionTree]:
        """Split into two separate fusion trees.

        Parameters
        ----------
        n : int
            Where to split. Must fulfill ``2 <= n < self.num_uncoupled``.

        Returns
        -------
        t1 : :class:`FusionTree`
            The part that fuses the ``uncoupled_sectors[:n]`` to ``inner_sectors[n - 2]``
        t2 : :class:`FusionTree`
            The part that fuses ``inner_sectors[n - 2]`` and ``uncoupled_sectors[n:]``
            to ``coupled``.

        See Also
        --------
        insert
        """
        if n < 2:
            raise ValueError('Left tree has no vertices (n < 2)')
        if n >= self.num_uncoupled:
            raise ValueError('Right tree has no vertices (n >= num_uncoupled)')
        cut_sector = self.inner_sectors[n - 2]
        t1 = FusionTree(
            self.symmetry,
            uncoupled=self.uncoupled[:n],
            coupled=cut_sector,
            are_dual=self.are_dual[:n],
            inner_sectors=self.inner_sectors[:n - 2],
            multiplicities=self.multiplicities[:n - 1],
        )
        t2 = FusionTree(
            self.symmetry,
            uncoupled=np.concatenate([cut_sector[None, :], self.uncoupled[n:]]),
            coupled=self.coupled,
            are_dual=np.insert(self.are_dual[n:], 0, False),
            inner_sectors=self.inner_sectors[n - 1:],
            multiplicities=self.multiplicities[n - 1:],
        )
        return t1, t2


class fusion_trees:
    """Iterator over all :class:`FusionTree`s with given uncoupled and coupled sectors.

    The iteration order is the canonical order of trees: trees are ordered by their first inner
    sector (in the order of :meth:`Symmetry.fusion_outcomes`), then recursively by the remaining
    inner sectors, with the multiplicity label of the first vertex varying fastest.
    This custom iterator has an efficient implementation of ``len``, which
    avoids generating all intermediate trees.
    """
    def __init__(self, symmetry: Symmetry, uncoupled: SectorArray | list[Sector], coupled: Sector,
                 are_dual=None):
        self.symmetry = symmetry
        if len(uncoupled) == 0:
            uncoupled = symmetry.empty_sector_array
        self.uncoupled = np.asarray(uncoupled, dtype=int)
        self.num_uncoupled = num_uncoupled = len(uncoupled)
        self.coupled = np.asarray(coupled, dtype=int)
        if are_dual is None:
            are_dual = np.zeros((num_uncoupled,), bool)
        else:
            are_dual = np.asarray(are_dual, dtype=bool)
        self.are_dual = are_dual

    def __iter__(self) -> Iterator[FusionTree]:
        if len(self.uncoupled) == 0:
            if np.all(self.coupled == self.symmetry.trivial_sector):
                yield FusionTree(self.symmetry, self.uncoupled, self.coupled, [], [], [])
            return

        if len(self.uncoupled) == 1:
            if np.all(self.uncoupled[0] == self.coupled):
                yield FusionTree(self.symmetry, self.uncoupled, self.coupled, self.are_dual, [], [])
            return

        if len(self.uncoupled) == 2:
            for mu in range(self.symmetry.n_symbol(*self.uncoupled, self.coupled)):
                yield FusionTree(self.symmetry, self.uncoupled, self.coupled, self.are_dual, [], [mu])
            return

        a1 = self.uncoupled[0]
        a2 = self.uncoupled[1]
        for b in self.symmetry.fusion_outcomes(a1, a2):
            uncoupled = np.concatenate([b[None, :], self.uncoupled[2:]])
            are_dual = np.concatenate([[False], self.are_dual[2:]])
            # set multiplicity index to 0 for now. will adjust it later.
            left_tree = FusionTree(self.symmetry, self.uncoupled[:2], b, self.are_dual[:2],
                                   [], [0])
            for rest_tree in fusion_trees(self.symmetry, uncoupled, self.coupled, are_dual):
                tree = rest_tree.insert(left_tree)
                for mu in range(self.symmetry._n_symbol(a1, a2, b)):
                    res = tree.copy()
                    res.multiplicities = res.multiplicities.copy()
                    res.multiplicities[0] = mu
                    yield res

    def __len__(self) -> int:
        if len(self.uncoupled) == 0:
            if np.all(self.coupled == self.symmetry.trivial_sector):
                return 1
            return 0

        if len(self.uncoupled) == 1:
            if np.all(self.uncoupled[0] == self.coupled):
                return 1
            return 0

        if len(self.uncoupled) == 2:
            return self.symmetry.n_symbol(*self.uncoupled, self.coupled)

        a1 = self.uncoupled[0]
        a2 = self.uncoupled[1]
        count = 0
        for b in self.symmetry.fusion_outcomes(a1, a2):
            uncoupled = np.concatenate([b[None, :], self.uncoupled[2:]])
            num_subtrees = len(fusion_trees(self.symmetry, uncoupled, self.coupled))
            count += self.symmetry._n_symbol(a1, a2, b) * num_subtrees
        return count

    def __str__(self):
        signature = FusionTree._str_uncoupled_coupled(
            self.symmetry, self.uncoupled, self.coupled, self.are_dual
        )
        return f'fusion_trees[{str(self.symmetry)}]({signature})'

    def __repr__(self):
        uncoupled = str(self.uncoupled).replace('\n', ',')
        return f'fusion_trees({self.symmetry}, {uncoupled}, {self.coupled}, {self.are_dual})'

    def index(self, tree: FusionTree) -> int:
        """The position of `tree` in the canonical order. ``ValueError`` if it is not found."""
        if tree.num_uncoupled != self.num_uncoupled or not np.all(tree.coupled == self.coupled):
            raise ValueError('Tree not found.')
        for n, t in enumerate(self):
            if t == tree:
                return n
        raise ValueError('Tree not found.')


def tree_pair_tensor(tree_1: FusionTree, tree_2: FusionTree) -> np.ndarray:
    r"""The dense array of the basis morphism labelled by a pair of fusion trees.

    This is :math:`\sum_{m_c} X_{f_1}[\dots, m_c] \overline{X_{f_2}[\dots, m_c]}`, i.e. the
    morphism from the uncoupled sectors of `tree_2` via the coupled sector to the uncoupled
    sectors of `tree_1`. These arrays are orthogonal for different pairs, with squared norm
    ``sector_dim(coupled)``.

    .. warning ::
        The result is cached and read-only. Do not perform inplace operations on it.

    Returns
    -------
    ndarray
        Axes ``[m_a1, ..., m_aJ, m_b1, ..., m_bK]`` for ``tree_1.uncoupled == [a1, ..., aJ]`` and
        ``tree_2.uncoupled == [b1, ..., bK]``.
    """
    if not np.all(tree_1.coupled == tree_2.coupled):
        raise ValueError('Trees have different coupled sectors.')
    return _tree_pair_tensor(tree_1.symmetry, tree_1, tree_2)


@lru_cache(maxsize=None)
def _tree_pair_tensor(symmetry: Symmetry, tree_1: FusionTree, tree_2: FusionTree) -> np.ndarray:
    X_1 = tree_1.as_block()
    X_2 = tree_2.as_block()
    res = np.tensordot(X_1, np.conj(X_2), (-1, -1))
    res.flags.writeable = False
    return res
