r"""Block-sparse tensor maps and their linear algebra.

A :class:`TensorMap` is a linear map ``domain -> codomain`` between two
:class:`~blocktensors.linalg.spaces.ProductSpace` s of the same symmetry, which commutes with the
action of the symmetry. By Schur's lemma, such a map is block-diagonal in the coupled sectors.
We store one dense matrix, the *block*, for each coupled sector that appears in both the codomain
and the domain (see :func:`blocksectors`), and nothing else. The rows of a block are organized as
given by :meth:`~blocktensors.linalg.spaces.ProductSpace.fusion_layout` of the codomain, the
columns as given by that of the domain.

.. rubric:: Dense representation

A tensor can be converted to and from a dense array (see :meth:`TensorMap.from_dense_block` and
:meth:`TensorMap.to_dense_block`). The axes of the dense array are the codomain legs, followed by
the domain legs, both in their order. The axis of a leg enumerates the basis of the respective
:class:`~blocktensors.linalg.spaces.ElementarySpace` in its *public* order.
The subblock ``t[f1, f2]`` of a pair of fusion trees contributes
``outer(t[f1, f2], tree_pair_tensor(f1, f2))`` to the dense array.

.. rubric:: In-place operations

The in-place operations :func:`iadd` and :func:`iscale` first validate their inputs and compute
all new blocks, and only then replace the blocks of the target. If anything fails, the target is
unchanged.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3
from __future__ import annotations
from numbers import Number
from typing import Callable

import numpy as np

from .backends import Block, get_block_backend
from .blocks import BlockStore, sector_key
from .dtypes import Dtype
from .dummy_config import printoptions
from .errors import SpaceMismatch, NoSuchSector, MismatchedCoupledSector, NotAnInnerProductSpace
from .spaces import ElementarySpace, ProductSpace, FusionLayoutEntry
from .symmetries import Symmetry, Sector, SectorArray, NoSymmetry, SymmetryError
from .trees import FusionTree, tree_pair_tensor
from ..tools.misc import iter_common_sorted_arrays, inverse_permutation

__all__ = ['TensorMap', 'AdjointTensorMap', 'blocksectors', 'check_same_spaces', 'iadd',
           'iscale', 'axpy', 'scalar_multiply', 'linear_combination', 'compose', 'adjoint',
           'norm', 'trace', 'inner', 'almost_equal']


class TensorMap:
    r"""A block-sparse linear map ``domain -> codomain`` which commutes with the symmetry.

    Parameters
    ----------
    data : :class:`~blocktensors.linalg.blocks.BlockStore`
        The blocks. Ownership is taken, no copy is made. There must be a block for each of the
        :func:`blocksectors` of `codomain` and `domain` and no other, with shape
        ``(codomain.blockdim(c), domain.blockdim(c))``.
    codomain, domain : :class:`~blocktensors.linalg.spaces.ProductSpace` | list of :class:`~blocktensors.linalg.spaces.ElementarySpace`
        The codomain and domain. Lists (or a single :class:`ElementarySpace`) are converted to a
        :class:`ProductSpace`. ``domain=None`` means an empty domain.
    symmetry : :class:`~blocktensors.linalg.symmetries.Symmetry`, optional
        Only required if both codomain and domain are empty lists.

    Attributes
    ----------
    codomain, domain : :class:`~blocktensors.linalg.spaces.ProductSpace`
        The codomain and domain of the map.
    symmetry : :class:`~blocktensors.linalg.symmetries.Symmetry`
        The symmetry of both codomain and domain.
    """

    def __init__(self, data: BlockStore, codomain: ProductSpace | list[ElementarySpace],
                 domain: ProductSpace | list[ElementarySpace] | None = None,
                 symmetry: Symmetry = None):
        self.codomain, self.domain = _parse_spaces(codomain, domain, symmetry)
        self.symmetry = self.codomain.symmetry
        self._check_data(data)
        self._data = data

    def _check_data(self, data: BlockStore):
        if not isinstance(data, BlockStore):
            raise TypeError(f'Expected a BlockStore, got {type(data).__name__}')
        if data.dtype == Dtype.bool:
            raise TypeError('TensorMap does not support dtype bool.')
        expect_sectors = blocksectors(self.codomain, self.domain)
        if data.sectors.shape != expect_sectors.shape or not np.all(data.sectors == expect_sectors):
            msg = 'The blocks do not match the common coupled sectors of codomain and domain.'
            raise SpaceMismatch(msg)
        for c, block in data.blocks():
            expect_shape = (self.codomain.blockdim(c), self.domain.blockdim(c))
            if tuple(block.shape) != expect_shape:
                msg = (f'Wrong shape of the block for sector {self.symmetry.sector_str(c)}. '
                       f'Expected {expect_shape}, got {tuple(block.shape)}.')
                raise SpaceMismatch(msg)

    def test_sanity(self):
        self.codomain.test_sanity()
        self.domain.test_sanity()
        data = self.data
        data.test_sanity()
        assert self.codomain.symmetry == self.domain.symmetry == self.symmetry
        assert np.all(data.sectors == blocksectors(self.codomain, self.domain))
        for c, block in data.blocks():
            assert block.shape == (self.codomain.blockdim(c), self.domain.blockdim(c))

    # PROPERTIES

    @property
    def data(self) -> BlockStore:
        """The :class:`BlockStore` holding the blocks."""
        return self._data

    @property
    def dtype(self) -> Dtype:
        return self._data.dtype

    @property
    def num_codomain_legs(self) -> int:
        return self.codomain.num_spaces

    @property
    def num_domain_legs(self) -> int:
        return self.domain.num_spaces

    @property
    def num_legs(self) -> int:
        return self.codomain.num_spaces + self.domain.num_spaces

    @property
    def legs(self) -> list[ElementarySpace]:
        """The codomain spaces, followed by the domain spaces. These are the axes of the dense array."""
        return self.codomain.spaces + self.domain.spaces

    @property
    def shape(self) -> tuple[int, ...]:
        """The shape of the dense array"""
        return tuple(leg.dim for leg in self.legs)

    @property
    def sectors(self) -> SectorArray:
        """The coupled sectors for which there is a block, in canonical order"""
        return self.data.sectors

    @property
    def is_endomorphism(self) -> bool:
        return self.codomain == self.domain

    @property
    def is_euclidean(self) -> bool:
        return self.codomain.is_euclidean and self.domain.is_euclidean

    # CONSTRUCTORS

    @classmethod
    def from_block_func(cls, func: Callable, codomain: ProductSpace | list[ElementarySpace],
                        domain: ProductSpace | list[ElementarySpace] | None = None,
                        symmetry: Symmetry = None, func_kwargs: dict = {},
                        shape_kw: str = None, dtype: Dtype = None) -> TensorMap:
        """Initialize a tensor by generating its blocks from a function.

        Parameters
        ----------
        func : callable
            A callable object which is called to generate the blocks.
            We expect that ``func(shape: tuple[int, int], **kwargs) -> Block`` where `shape` is
            the shape of the block to be generated, and `kwargs` are given by `func_kwargs`.
            The output is converted to a block via :meth:`BlockBackend.as_block`.
        codomain, domain, symmetry
            The spaces, as for the constructor.
        func_kwargs : dict
            Additional keyword arguments given to `func`.
        shape_kw : None | str
            If given, the shape is passed to `func` as a keyword argument with this name,
            instead of as the first positional argument.
        dtype : None | Dtype
            If given, the blocks are converted to this dtype. Otherwise, the common dtype of the
            generated blocks is used.

        See Also
        --------
        from_sector_block_func
            If the blocks should depend on the coupled sector.
        """
        if shape_kw is None:
            def sector_func(shape, coupled):
                return func(shape, **func_kwargs)
        else:
            def sector_func(shape, coupled):
                return func(**{shape_kw: shape}, **func_kwargs)
        return cls.from_sector_block_func(sector_func, codomain=codomain, domain=domain,
                                          symmetry=symmetry, dtype=dtype)

    @classmethod
    def from_sector_block_func(cls, func: Callable, codomain: ProductSpace | list[ElementarySpace],
                               domain: ProductSpace | list[ElementarySpace] | None = None,
                               symmetry: Symmetry = None, func_kwargs: dict = {},
                               dtype: Dtype = None) -> TensorMap:
        """Like :meth:`from_block_func`, but with ``func(shape, coupled, **kwargs) -> Block``."""
        codomain, domain = _parse_spaces(codomain, domain, symmetry)
        backend = get_block_backend()
        sectors = blocksectors(codomain, domain)
        blocks = []
        for c in sectors:
            shape = (codomain.blockdim(c), domain.blockdim(c))
            block = backend.as_block(func(shape, c, **func_kwargs))
            if tuple(block.shape) != shape:
                msg = f'func returned a block of shape {tuple(block.shape)}. Expected {shape}.'
                raise ValueError(msg)
            blocks.append(block)
        if dtype is None:
            dtype = _common_block_dtype(blocks)
        blocks = [backend.block_to_dtype(b, dtype) for b in blocks]
        return cls(BlockStore(sectors, blocks, dtype), codomain, domain)

    @classmethod
    def from_dense_block(cls, block, codomain: ProductSpace | list[ElementarySpace],
                         domain: ProductSpace | list[ElementarySpace] | None = None,
                         symmetry: Symmetry = None, dtype: Dtype = None,
                         tol: float | None = 1e-6) -> TensorMap:
        """Convert a dense block to a tensor, if possible.

        The dense block is projected onto the symmetric subspace.

        Parameters
        ----------
        block : Block-like
            The data to be converted, as a numpy array or nested python iterables.
            The axes should be the codomain legs, followed by the domain legs.
            The block should be given in the public basis order of the legs, e.g. according to
            :attr:`ElementarySpace.sectors_of_basis`.
        codomain, domain, symmetry
            The spaces, as for the constructor.
        dtype : Dtype, optional
            If given, the block is converted to that dtype.
            By default, we detect the dtype from the block.
        tol : float | None
            If the block is not symmetric, i.e. if the projection changes its norm by more than
            `tol` times the norm, we raise a ``ValueError``. ``None`` disables the check.
        """
        codomain, domain = _parse_spaces(codomain, domain, symmetry)
        backend = get_block_backend()
        block, block_dtype = backend.as_block(block, dtype, return_dtype=True)
        legs = codomain.spaces + domain.spaces
        expect_shape = tuple(leg.dim for leg in legs)
        if tuple(block.shape) != expect_shape:
            raise ValueError(f'Wrong shape. Expected {expect_shape}, got {tuple(block.shape)}.')
        # convert to internal basis order, where the sectors are sorted and contiguous
        block = backend.apply_basis_perm(block, legs)
        sectors = blocksectors(codomain, domain)
        if isinstance(codomain.symmetry, NoSymmetry):
            blocks = []
            if len(sectors) > 0:
                shape = (int(np.prod(codomain.dims)), int(np.prod(domain.dims)))
                blocks.append(backend.block_copy(backend.block_reshape(block, shape)))
            return cls(BlockStore(sectors, blocks, block_dtype), codomain, domain)
        if dtype is None:
            dtype = Dtype.common(block_dtype, codomain.symmetry.fusion_tensor_dtype)
        blocks = []
        norm_sq_projected = 0
        for c in sectors:
            projected = _block_from_dense(block, codomain, domain, c, dtype)
            norm_sq_projected += codomain.symmetry.sector_dim(c) * backend.block_norm(projected) ** 2
            blocks.append(projected)
        # the symmetric and non-symmetric parts of the block are orthogonal, such that
        # ``norm(block - projected) ** 2 == norm(block) ** 2 - norm(projected) ** 2``
        if tol is not None:
            norm_sq = backend.block_norm(block) ** 2
            norm_diff_sq = norm_sq - norm_sq_projected
            if norm_diff_sq > tol * tol * norm_sq:
                msg = (f'Block is not symmetric up to tolerance. '
                       f'Original norm: {np.sqrt(norm_sq)}. '
                       f'Norm after projection: {np.sqrt(norm_sq_projected)}.')
                raise ValueError(msg)
        return cls(BlockStore(sectors, blocks, dtype), codomain, domain)

    @classmethod
    def from_sector_dict(cls, blocks: dict, codomain: ProductSpace | list[ElementarySpace],
                         domain: ProductSpace | list[ElementarySpace] | None = None,
                         symmetry: Symmetry = None, dtype: Dtype = None) -> TensorMap:
        """Initialize from a dictionary ``{coupled_sector: block}``.

        Parameters
        ----------
        blocks : dict
            The keys are coupled sectors (as tuples, or as ints if a sector is a single int),
            the values are the blocks. Sectors of :func:`blocksectors` that are not given get a
            zero block.
        codomain, domain, symmetry
            The spaces, as for the constructor.
        dtype : Dtype, optional
            The dtype of the tensor. By default, the common dtype of the given blocks.

        Raises
        ------
        NoSuchSector
            If a key is not a coupled sector of both the codomain and the domain.
        SpaceMismatch
            If a block has the wrong shape.
        """
        codomain, domain = _parse_spaces(codomain, domain, symmetry)
        backend = get_block_backend()
        sectors = blocksectors(codomain, domain)
        allowed = {sector_key(c): c for c in sectors}
        given = {}
        for key, block in blocks.items():
            key = sector_key(key)
            c = allowed.get(key, None)
            if c is None:
                raise NoSuchSector(f'{list(key)} is not a coupled sector of both codomain and domain.')
            block = backend.as_block(block)
            expect_shape = (codomain.blockdim(c), domain.blockdim(c))
            if tuple(block.shape) != expect_shape:
                msg = (f'Wrong shape of the block for sector {codomain.symmetry.sector_str(c)}. '
                       f'Expected {expect_shape}, got {tuple(block.shape)}.')
                raise SpaceMismatch(msg)
            given[key] = block
        if dtype is None:
            dtype = _common_block_dtype(list(given.values()))
        res_blocks = []
        for c in sectors:
            block = given.get(sector_key(c), None)
            if block is None:
                block = backend.zero_block([codomain.blockdim(c), domain.blockdim(c)], dtype)
            else:
                block = backend.block_to_dtype(block, dtype)
            res_blocks.append(block)
        return cls(BlockStore(sectors, res_blocks, dtype), codomain, domain)

    @classmethod
    def zeros(cls, codomain: ProductSpace | list[ElementarySpace],
              domain: ProductSpace | list[ElementarySpace] | None = None,
              symmetry: Symmetry = None, dtype: Dtype = Dtype.float64) -> TensorMap:
        """A zero tensor"""
        backend = get_block_backend()
        return cls.from_sector_block_func(
            lambda shape, coupled: backend.zero_block(shape, dtype),
            codomain=codomain, domain=domain, symmetry=symmetry, dtype=dtype
        )

    @classmethod
    def from_eye(cls, co_domain: ProductSpace | list[ElementarySpace], symmetry: Symmetry = None,
                 dtype: Dtype = Dtype.float64) -> TensorMap:
        """The identity map on a given space, as an endomorphism of `co_domain`."""
        backend = get_block_backend()
        co_domain, _ = _parse_spaces(co_domain, None, symmetry)
        return cls.from_sector_block_func(
            lambda shape, coupled: backend.eye_matrix(shape[0], dtype),
            codomain=co_domain, domain=co_domain, dtype=dtype
        )

    @classmethod
    def random_normal(cls, codomain: ProductSpace | list[ElementarySpace],
                      domain: ProductSpace | list[ElementarySpace] | None = None,
                      symmetry: Symmetry = None, dtype: Dtype = Dtype.float64, sigma: float = 1.,
                      rng: np.random.Generator = None) -> TensorMap:
        r"""A random tensor whose free parameters are independent normal variables.

        Each free parameter is drawn from a normal distribution with standard deviation
        `sigma`, and mean zero. For complex dtypes, real and imaginary part are drawn
        independently.
        """
        backend = get_block_backend()
        return cls.from_sector_block_func(
            lambda shape, coupled: backend.block_random_normal(shape, dtype, sigma, rng),
            codomain=codomain, domain=domain, symmetry=symmetry, dtype=dtype
        )

    @classmethod
    def random_uniform(cls, codomain: ProductSpace | list[ElementarySpace],
                       domain: ProductSpace | list[ElementarySpace] | None = None,
                       symmetry: Symmetry = None, dtype: Dtype = Dtype.float64,
                       rng: np.random.Generator = None) -> TensorMap:
        """A random tensor whose free parameters are uniformly distributed in ``[-1, 1]``."""
        backend = get_block_backend()
        return cls.from_sector_block_func(
            lambda shape, coupled: backend.block_random_uniform(shape, dtype, rng),
            codomain=codomain, domain=domain, symmetry=symmetry, dtype=dtype
        )

    # ACCESS

    def block(self, coupled: Sector) -> Block:
        """The block of a coupled sector, aliasing the storage.

        Raises ``NoSuchSector`` if the sector does not appear in both codomain and domain.
        """
        return self.data.block(coupled)

    def blocks(self) -> list[tuple[Sector, Block]]:
        """All ``(coupled_sector, block)`` pairs, in canonical sector order."""
        return self.data.blocks()

    def subblock(self, tree_1: FusionTree, tree_2: FusionTree) -> Block:
        """The part of a block that belongs to a pair of fusion trees.

        Parameters
        ----------
        tree_1, tree_2 : :class:`~blocktensors.linalg.trees.FusionTree`
            Fusion trees of the codomain and of the domain, with the same coupled sector.

        Returns
        -------
        Block
            A view of the block, with axes the multiplicities of the uncoupled sectors of
            `tree_1`, followed by those of `tree_2`.
        """
        if not np.all(tree_1.coupled == tree_2.coupled):
            msg = (f'Trees have different coupled sectors {self.symmetry.sector_str(tree_1.coupled)} '
                   f'and {self.symmetry.sector_str(tree_2.coupled)}.')
            raise MismatchedCoupledSector(msg)
        try:
            entry_1 = self.codomain.entry_for(tree_1)
            entry_2 = self.domain.entry_for(tree_2)
        except KeyError:
            raise NoSuchSector('The fusion trees do not belong to codomain and domain.') from None
        block = self.data.block(tree_1.coupled)
        rows = _entry_range(entry_1)
        cols = _entry_range(entry_2)
        return get_block_backend().block_reshape(block[rows, cols], entry_1.shape + entry_2.shape)

    def __getitem__(self, key):
        """Subblock access.

        ``t[()]`` is the :meth:`raw` array (only without symmetry), ``t[tree_1, tree_2]`` is the
        :meth:`subblock` of two fusion trees and ``t[uncoupled_1, uncoupled_2]`` the subblock of
        the unique pair of fusion trees with the given uncoupled sectors.
        """
        if isinstance(key, tuple) and len(key) == 0:
            return self.raw()
        if not (isinstance(key, tuple) and len(key) == 2):
            raise IndexError('Expected t[()], t[tree_1, tree_2] or t[uncoupled_1, uncoupled_2].')
        key_1, key_2 = key
        if isinstance(key_1, FusionTree) and isinstance(key_2, FusionTree):
            return self.subblock(key_1, key_2)
        return self._subblock_by_uncoupled(key_1, key_2)

    def _subblock_by_uncoupled(self, uncoupled_1, uncoupled_2) -> Block:
        sector_ind_len = self.symmetry.sector_ind_len
        uncoupled_1 = np.asarray(uncoupled_1, dtype=int).reshape(-1, sector_ind_len)
        uncoupled_2 = np.asarray(uncoupled_2, dtype=int).reshape(-1, sector_ind_len)
        try:
            idcs_1 = self.codomain.uncoupled_idcs(uncoupled_1)
            idcs_2 = self.domain.uncoupled_idcs(uncoupled_2)
        except KeyError as err:
            raise NoSuchSector(str(err.args[0])) from None
        pairs = []
        for c in self.data.sectors:
            entries_1 = [e for e in self.codomain.fusion_layout(c) if e.uncoupled_idcs == idcs_1]
            if len(entries_1) == 0:
                continue
            entries_2 = [e for e in self.domain.fusion_layout(c) if e.uncoupled_idcs == idcs_2]
            pairs.extend((e_1.tree, e_2.tree) for e_1 in entries_1 for e_2 in entries_2)
        if len(pairs) == 0:
            raise NoSuchSector('The uncoupled sectors do not fuse to a common coupled sector.')
        if len(pairs) > 1:
            msg = (f'{len(pairs)} pairs of fusion trees have these uncoupled sectors. '
                   f'Use t[tree_1, tree_2] instead.')
            raise ValueError(msg)
        return self.subblock(*pairs[0])

    def __setitem__(self, idx, value):
        raise TypeError('TensorMap does not support item assignment. Modify the blocks instead.')

    def raw(self) -> Block:
        """The data as a single dense array, only for tensors without symmetry.

        A view of the single block, reshaped to :attr:`shape`. The axes are in the internal basis
        order, which equals the public order unless a leg has a non-trivial ``basis_perm``.
        """
        if not isinstance(self.symmetry, NoSymmetry):
            raise SymmetryError('The raw array is only available for tensors without symmetry.')
        backend = get_block_backend()
        data = self.data
        if len(data) == 0:
            # some leg is zero-dimensional
            return backend.zero_block(list(self.shape), self.dtype)
        return backend.block_reshape(data.block_list[0], self.shape)

    def to_dense_block(self) -> Block:
        """The dense array, with axes the codomain legs followed by the domain legs.

        Inverse of :meth:`from_dense_block`. The axes enumerate the public basis of the legs.
        """
        backend = get_block_backend()
        if isinstance(self.symmetry, NoSymmetry):
            res = backend.block_copy(self.raw())
        else:
            res = _dense_from_blocks(self.data, self.codomain, self.domain, self.dtype)
        return backend.apply_basis_perm(res, self.legs, inv=True)

    def copy(self, deep: bool = True) -> TensorMap:
        """A copy, which is a :class:`TensorMap` with its own storage if `deep`."""
        return TensorMap(self.data.copy(deep=deep), self.codomain, self.domain)

    def adjoint(self) -> TensorMap:
        """See :func:`adjoint`."""
        return adjoint(self)

    def _set_blocks(self, blocks: list[Block], dtype: Dtype):
        """Replace all blocks. The sectors remain the same."""
        self._data.replace_blocks(blocks, dtype)

    # OPERATORS

    def __add__(self, other):
        if isinstance(other, TensorMap):
            return linear_combination(+1, self, +1, other)
        return NotImplemented

    def __sub__(self, other):
        if isinstance(other, TensorMap):
            return linear_combination(+1, self, -1, other)
        return NotImplemented

    def __neg__(self):
        return scalar_multiply(-1, self)

    def __pos__(self):
        return self

    def __mul__(self, other):
        if isinstance(other, Number):
            return scalar_multiply(other, self)
        return NotImplemented

    def __rmul__(self, other):
        if isinstance(other, Number):
            return scalar_multiply(other, self)
        return NotImplemented

    def __truediv__(self, other):
        if not isinstance(other, Number):
            return NotImplemented
        try:
            inverse_other = 1. / other
        except ZeroDivisionError:
            raise ValueError('TensorMap can only be divided by invertible scalars.') from None
        return scalar_multiply(inverse_other, self)

    def __matmul__(self, other):
        if isinstance(other, TensorMap):
            return compose(self, other)
        return NotImplemented

    def __eq__(self, other):
        """Exact equality of the spaces and of all entries."""
        if not isinstance(other, TensorMap):
            return NotImplemented
        if self.codomain != other.codomain or self.domain != other.domain:
            return False
        return all(np.array_equal(b_1, b_2)
                   for b_1, b_2 in zip(self.data.block_list, other.data.block_list))

    def __repr__(self):
        indent = printoptions.indent * ' '
        lines = [f'<{self.__class__.__name__}']
        lines.extend(self._repr_header_lines(indent=indent))
        if not printoptions.skip_data:
            lines.extend(self._repr_data_lines(indent=indent))
        lines.append('>')
        return '\n'.join(lines)

    def _repr_header_lines(self, indent: str) -> list[str]:
        codomain_dims = tuple(self.codomain.dims)
        domain_dims = tuple(self.domain.dims)
        lines = [
            f'{indent}* Symmetry: {self.symmetry!s}',
            f'{indent}* Dtype: {self.dtype.name}',
            f'{indent}* Shape: {self.shape}   ;   {codomain_dims} <- {domain_dims}',
        ]
        if not self.symmetry.is_abelian:
            codomain_nums = tuple(int(np.sum(leg.multiplicities)) for leg in self.codomain)
            domain_nums = tuple(int(np.sum(leg.multiplicities)) for leg in self.domain)
            lines.append(f'{indent}* Num Sectors: {codomain_nums} <- {domain_nums}')
        lines.append(f'{indent}* Num Blocks: {len(self.data)}')
        return lines

    def _repr_data_lines(self, indent: str) -> list[str]:
        backend = get_block_backend()
        lines = [f'{indent}* Data:']
        for c, block in self.data.blocks():
            if len(lines) >= printoptions.maxlines_tensors:
                lines.append(f'{indent}{indent}...')
                break
            lines.append(f'{indent}{indent}Sector {self.symmetry.sector_str(c)}, '
                         f'shape {tuple(block.shape)}')
            if printoptions.summarize_blocks:
                continue
            max_lines = printoptions.maxlines_tensors - len(lines)
            lines.extend(backend.block_repr_lines(block, indent=3 * indent,
                                                  max_width=printoptions.linewidth,
                                                  max_lines=max(max_lines, 1)))
        return lines


class AdjointTensorMap(TensorMap):
    """The lazy conjugate transpose of a :class:`TensorMap`.

    Use :func:`adjoint` to create it. While *attached*, the view only holds a reference to its
    :attr:`parent`, and computes the blocks ``B^H`` of the adjoint on access. Such blocks are
    therefore fresh arrays, not views into the storage of the parent, and modifying them has no
    effect. Changes of the parent are visible through an attached view.

    The first in-place operation (:func:`iadd`, :func:`iscale`, ...) that targets the view gives
    it its own storage and detaches it from the parent. The parent is never modified.

    Attributes
    ----------
    parent : :class:`TensorMap` | None
        The tensor whose adjoint this is, or ``None`` once the view has its own storage.
    """

    def __init__(self, parent: TensorMap):
        self.parent = parent
        self.codomain = parent.domain
        self.domain = parent.codomain
        self.symmetry = parent.symmetry
        self._data = None

    def test_sanity(self):
        if self.parent is not None:
            assert self._data is None
            assert not isinstance(self.parent, AdjointTensorMap) or self.parent.parent is None
            self.parent.test_sanity()
        TensorMap.test_sanity(self)

    @property
    def is_attached(self) -> bool:
        return self.parent is not None

    @property
    def data(self) -> BlockStore:
        if self.parent is None:
            return self._data
        backend = get_block_backend()
        parent_data = self.parent.data
        blocks = [backend.block_dagger(b) for b in parent_data.block_list]
        return BlockStore(parent_data.sectors.copy(), blocks, parent_data.dtype)

    @property
    def dtype(self) -> Dtype:
        if self.parent is None:
            return self._data.dtype
        return self.parent.dtype

    def block(self, coupled: Sector) -> Block:
        if self.parent is None:
            return self._data.block(coupled)
        return get_block_backend().block_dagger(self.parent.block(coupled))

    def materialize(self):
        """Give the view its own storage and detach it from the parent."""
        if self.parent is not None:
            self._data = self.data
            self.parent = None

    def _set_blocks(self, blocks: list[Block], dtype: Dtype):
        if self.parent is not None:
            sectors = self.parent.data.sectors.copy()
            self._data = BlockStore(sectors, blocks, dtype)
            self.parent = None
        else:
            self._data.replace_blocks(blocks, dtype)


# HELPERS


def _parse_spaces(codomain, domain, symmetry: Symmetry | None
                  ) -> tuple[ProductSpace, ProductSpace]:
    """Bring codomain and domain to :class:`ProductSpace` form and check their symmetry."""
    if domain is None:
        domain = []
    if symmetry is None:
        for spaces in [codomain, domain]:
            if isinstance(spaces, (ProductSpace, ElementarySpace)):
                symmetry = spaces.symmetry
                break
            if len(spaces) > 0:
                symmetry = spaces[0].symmetry
                break
        else:
            raise ValueError('If codomain and domain are both empty, the symmetry is required.')
    res = []
    for spaces in [codomain, domain]:
        if isinstance(spaces, ElementarySpace):
            spaces = [spaces]
        if isinstance(spaces, ProductSpace):
            if spaces.symmetry != symmetry:
                raise SpaceMismatch('Codomain and domain must have the same symmetry.')
        else:
            if not all(sp.symmetry == symmetry for sp in spaces):
                raise SpaceMismatch('Codomain and domain must have the same symmetry.')
            spaces = ProductSpace(spaces, symmetry=symmetry)
        res.append(spaces)
    return res[0], res[1]


def _common_block_dtype(blocks: list[Block]) -> Dtype:
    if len(blocks) == 0:
        return Dtype.float64
    backend = get_block_backend()
    return Dtype.common(*(backend.block_dtype(b) for b in blocks))


def _entry_range(entry: FusionLayoutEntry) -> slice:
    """The rows (or columns) of a block that belong to an entry of a fusion layout"""
    return slice(entry.start, entry.start + int(np.prod(entry.shape)))


def _entry_pair_geometry(codomain: ProductSpace, domain: ProductSpace,
                         entry_1: FusionLayoutEntry, entry_2: FusionLayoutEntry):
    """Where the entries of a tree pair live in the (internal order) dense array.

    Returns
    -------
    slices : list of slice
        For every leg, the range of internal basis indices of the uncoupled sector.
    mults : tuple of int
        The multiplicities of the uncoupled sectors, i.e. the shape of the subblock.
    dims : tuple of int
        The dimensions of the uncoupled sectors, i.e. the shape of the tree pair tensor.
    """
    slices = []
    dims = []
    legs = codomain.spaces + domain.spaces
    for leg, i in zip(legs, entry_1.uncoupled_idcs + entry_2.uncoupled_idcs):
        slices.append(slice(int(leg.slices[i, 0]), int(leg.slices[i, 1])))
        dims.append(int(leg.sector_dims[i]))
    return slices, tuple(entry_1.shape) + tuple(entry_2.shape), tuple(dims)


def _split_leg_perm(num_legs: int) -> list[int]:
    """Permutation ``[m1, d1, m2, d2, ...] -> [m1, m2, ..., d1, d2, ...]`` of axes"""
    return [*range(0, 2 * num_legs, 2), *range(1, 2 * num_legs, 2)]


def _block_from_dense(a: Block, codomain: ProductSpace, domain: ProductSpace, coupled: Sector,
                      dtype: Dtype) -> Block:
    """Project a dense array (internal basis order) onto the block of one coupled sector."""
    backend = get_block_backend()
    num_legs = codomain.num_spaces + domain.num_spaces
    perm = _split_leg_perm(num_legs)
    dim_c = codomain.symmetry.sector_dim(coupled)
    block = backend.zero_block([codomain.blockdim(coupled), domain.blockdim(coupled)], dtype)
    for entry_1 in codomain.fusion_layout(coupled):
        rows = _entry_range(entry_1)
        for entry_2 in domain.fusion_layout(coupled):
            cols = _entry_range(entry_2)
            slices, mults, dims = _entry_pair_geometry(codomain, domain, entry_1, entry_2)
            entries = a[tuple(slices)]
            # [(m1,d1), (m2,d2), ...] -> [m1, d1, m2, d2, ...] -> [m1, m2, ..., d1, d2, ...]
            entries = backend.block_reshape(entries, [x for md in zip(mults, dims) for x in md])
            entries = backend.block_permute_axes(entries, perm)
            X = tree_pair_tensor(entry_1.tree, entry_2.tree)
            # the tree pair tensors are orthogonal with norm squared dim_c
            sub = backend.block_tdot(entries, np.conj(X), list(range(num_legs, 2 * num_legs)),
                                     list(range(num_legs)))
            block[rows, cols] = backend.block_reshape(sub, (rows.stop - rows.start,
                                                            cols.stop - cols.start)) / dim_c
    return block


def _dense_from_blocks(data: BlockStore, codomain: ProductSpace, domain: ProductSpace,
                       dtype: Dtype) -> Block:
    """The dense array (internal basis order) of the tensor with given blocks."""
    backend = get_block_backend()
    num_legs = codomain.num_spaces + domain.num_spaces
    inv_perm = inverse_permutation(_split_leg_perm(num_legs))
    res = backend.zero_block(codomain.dims + domain.dims, dtype)
    for c, block in data.blocks():
        for entry_1 in codomain.fusion_layout(c):
            rows = _entry_range(entry_1)
            for entry_2 in domain.fusion_layout(c):
                cols = _entry_range(entry_2)
                slices, mults, dims = _entry_pair_geometry(codomain, domain, entry_1, entry_2)
                sub = backend.block_reshape(block[rows, cols], mults)
                X = tree_pair_tensor(entry_1.tree, entry_2.tree)
                piece = backend.block_outer(sub, X)  # [m1, m2, ..., d1, d2, ...]
                piece = backend.block_permute_axes(piece, inv_perm)
                piece = backend.block_reshape(piece, [m * d for m, d in zip(mults, dims)])
                res[tuple(slices)] += piece
    return res


def blocksectors(codomain: ProductSpace, domain: ProductSpace) -> SectorArray:
    """The coupled sectors that appear in both `codomain` and `domain`, in canonical order."""
    idcs = [i for i, _ in iter_common_sorted_arrays(codomain.sectors, domain.sectors)]
    return codomain.sectors[np.array(idcs, dtype=int)]


def check_same_spaces(t1: TensorMap, t2: TensorMap):
    """Raise a :class:`SpaceMismatch` if the tensors have different codomains or domains."""
    if t1.codomain != t2.codomain:
        raise SpaceMismatch('Mismatching codomains.')
    if t1.domain != t2.domain:
        raise SpaceMismatch('Mismatching domains.')


def _is_complex_scalar(a: Number) -> bool:
    return bool(np.iscomplexobj(a) and np.imag(a) != 0)


def _inplace_scalar(a: Number, dtype: Dtype) -> Number:
    """Check that a scalar can be multiplied into a tensor of the given dtype in place."""
    if not isinstance(a, Number):
        raise TypeError(f'Expected a scalar, got {type(a).__name__}')
    if dtype.is_real:
        if _is_complex_scalar(a):
            raise TypeError(f'Can not multiply a tensor with dtype {dtype.name} by {a} in place.')
        return float(np.real(a))
    return a


def _result_dtype(dtypes: list[Dtype], scalars: list[Number]) -> Dtype:
    res = Dtype.common(*dtypes)
    if any(_is_complex_scalar(a) for a in scalars):
        res = res.to_complex
    return res


# ALGEBRA


def iadd(y: TensorMap, alpha: Number, x: TensorMap, beta: Number) -> TensorMap:
    """In place ``y <- alpha * y + beta * x``.

    Returns
    -------
    y : TensorMap
        The modified `y`, for convenience.

    Raises
    ------
    SpaceMismatch
        If codomain and domain of `x` and `y` do not match exactly.
    TypeError
        If `y` has a real dtype, but the result would be complex.
    """
    check_same_spaces(y, x)
    dtype = y.dtype
    alpha = _inplace_scalar(alpha, dtype)
    beta = _inplace_scalar(beta, dtype)
    if dtype.is_real and not x.dtype.is_real:
        raise TypeError(f'Can not add {x.dtype.name} data to a tensor with dtype {dtype.name} in place.')
    backend = get_block_backend()
    blocks = [backend.block_to_dtype(alpha * b_y + beta * b_x, dtype)
              for b_y, b_x in zip(y.data.block_list, x.data.block_list)]
    y._set_blocks(blocks, dtype)
    return y


def iscale(y: TensorMap, x: TensorMap, alpha: Number) -> TensorMap:
    """In place ``y <- alpha * x``. In particular, ``iscale(y, y, alpha)`` rescales `y`.

    Raises like :func:`iadd`.
    """
    check_same_spaces(y, x)
    dtype = y.dtype
    alpha = _inplace_scalar(alpha, dtype)
    if dtype.is_real and not x.dtype.is_real:
        raise TypeError(f'Can not write {x.dtype.name} data to a tensor with dtype {dtype.name}.')
    backend = get_block_backend()
    blocks = [backend.block_to_dtype(alpha * b, dtype) for b in x.data.block_list]
    y._set_blocks(blocks, dtype)
    return y


def axpy(alpha: Number, x: TensorMap, y: TensorMap) -> TensorMap:
    """In place ``y <- y + alpha * x``."""
    return iadd(y, 1, x, alpha)


def scalar_multiply(a: Number, v: TensorMap) -> TensorMap:
    """The scalar multiple ``a * v``, as a new tensor."""
    if not isinstance(a, Number):
        raise TypeError(f'Expected a scalar, got {type(a).__name__}')
    dtype = _result_dtype([v.dtype], [a])
    backend = get_block_backend()
    data = v.data
    blocks = [backend.block_to_dtype(a * b, dtype) for b in data.block_list]
    return TensorMap(BlockStore(data.sectors.copy(), blocks, dtype), v.codomain, v.domain)


def linear_combination(a: Number, v: TensorMap, b: Number, w: TensorMap) -> TensorMap:
    """The linear combination ``a * v + b * w``, as a new tensor."""
    check_same_spaces(v, w)
    dtype = _result_dtype([v.dtype, w.dtype], [a, b])
    backend = get_block_backend()
    data_v = v.data
    blocks = [backend.block_to_dtype(a * b_v + b * b_w, dtype)
              for b_v, b_w in zip(data_v.block_list, w.data.block_list)]
    return TensorMap(BlockStore(data_v.sectors.copy(), blocks, dtype), v.codomain, v.domain)


def compose(t1: TensorMap, t2: TensorMap) -> TensorMap:
    """The composition ``t1 ∘ t2``, i.e. the map ``t2.domain -> t1.codomain``.

    Blockwise matrix products. A coupled sector of the result, for which one of the operands has
    no block, gets a zero block.

    Raises
    ------
    SpaceMismatch
        If ``t1.domain != t2.codomain``.
    """
    if t1.domain != t2.codomain:
        raise SpaceMismatch('Can not compose: the domain of t1 is not the codomain of t2.')
    backend = get_block_backend()
    codomain = t1.codomain
    domain = t2.domain
    dtype = Dtype.common(t1.dtype, t2.dtype)
    data_1 = t1.data
    data_2 = t2.data
    sectors = blocksectors(codomain, domain)
    blocks = []
    for c in sectors:
        b_1 = data_1.get(c)
        b_2 = data_2.get(c)
        if b_1 is None or b_2 is None:
            block = backend.zero_block([codomain.blockdim(c), domain.blockdim(c)], dtype)
        else:
            block = backend.block_to_dtype(backend.matrix_dot(b_1, b_2), dtype)
        blocks.append(block)
    return TensorMap(BlockStore(sectors, blocks, dtype), codomain, domain)


def adjoint(t: TensorMap) -> TensorMap:
    """The adjoint (conjugate transpose) ``domain <- codomain``, as a lazy view.

    See :class:`AdjointTensorMap`. The adjoint of an attached view is its parent.

    Raises
    ------
    NotAnInnerProductSpace
        If the codomain or domain is not euclidean.
    """
    if isinstance(t, AdjointTensorMap) and t.parent is not None:
        return t.parent
    if not t.is_euclidean:
        raise NotAnInnerProductSpace('The adjoint is only defined for inner product spaces.')
    return AdjointTensorMap(t)


def norm(t: TensorMap) -> float:
    r"""The Frobenius norm of the tensor, i.e. of its dense array.

    Each block appears :math:`\dim(c)` times in the dense array, such that
    ``norm(t) ** 2 == sum_c dim(c) * norm(block(c)) ** 2``.
    """
    if not t.is_euclidean:
        raise NotAnInnerProductSpace('The norm is only defined for inner product spaces.')
    backend = get_block_backend()
    data = t.data
    dims = t.symmetry.batch_sector_dim(data.sectors)
    norm_sq = sum(d * backend.block_norm(b) ** 2 for d, b in zip(dims, data.block_list))
    return float(np.sqrt(norm_sq))


def trace(t: TensorMap) -> float | complex:
    """The trace ``sum_c dim(c) * tr(block(c))`` of an endomorphism."""
    if not t.is_endomorphism:
        raise SpaceMismatch('The trace is only defined for endomorphisms.')
    backend = get_block_backend()
    data = t.data
    dims = t.symmetry.batch_sector_dim(data.sectors)
    res = sum((int(d) * backend.block_trace(b) for d, b in zip(dims, data.block_list)),
              t.dtype.zero_scalar)
    return res


def inner(t1: TensorMap, t2: TensorMap) -> float | complex:
    """The Frobenius inner product ``<t1|t2>``, which is antilinear in `t1`."""
    check_same_spaces(t1, t2)
    if not t1.is_euclidean:
        raise NotAnInnerProductSpace('The inner product is only defined for inner product spaces.')
    backend = get_block_backend()
    data_1 = t1.data
    dims = t1.symmetry.batch_sector_dim(data_1.sectors)
    res = sum((int(d) * backend.block_inner(b_1, b_2)
               for d, b_1, b_2 in zip(dims, data_1.block_list, t2.data.block_list)),
              Dtype.common(t1.dtype, t2.dtype).zero_scalar)
    return res


def almost_equal(t1: TensorMap, t2: TensorMap, rtol: float = 1e-5, atol: float = 1e-8) -> bool:
    """Checks if two tensors are equal up to numerical tolerance.

    We compare the blocks, i.e. the free parameters of the tensors, entry by entry with
    ``abs(a1 - a2) <= atol + rtol * abs(a2)``.

    Raises
    ------
    SpaceMismatch
        If the tensors have different codomain or domain.
    """
    check_same_spaces(t1, t2)
    backend = get_block_backend()
    return all(backend.block_allclose(b_1, b_2, rtol=rtol, atol=atol)
               for b_1, b_2 in zip(t1.data.block_list, t2.data.block_list))
