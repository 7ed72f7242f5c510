"""The interface of single-block dense kernels.

The tensor engine never calls a numerical library directly. All operations on a single dense
block (a matrix for the block of one coupled sector, or a higher-dimensional array for subblocks
and dense representations) go through a :class:`BlockBackend`.
Each kernel acts on one block only and is not re-entrant on the same block.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3
from __future__ import annotations
from abc import ABCMeta, abstractmethod
from typing import TypeVar, TYPE_CHECKING

import numpy as np

from ..dtypes import Dtype

if TYPE_CHECKING:
    from ..spaces import ElementarySpace

__all__ = ['Block', 'BlockBackend']

Block = TypeVar('Block')


class BlockBackend(metaclass=ABCMeta):
    """Abstract base class that defines the operation on dense blocks."""
    svd_algorithms: list[str]  # first is default
    BlockCls = None  # to be set by subclass

    def apply_basis_perm(self, block: Block, legs: list[ElementarySpace], inv: bool = False) -> Block:
        """Apply basis_perm of a ElementarySpace (or its inverse) on every axis of a dense block"""
        perms = []
        for leg in legs:
            p = leg._inverse_basis_perm if inv else leg._basis_perm
            if p is None:
                p = np.arange(leg.dim)
            perms.append(p)
        return self.apply_leg_permutations(block, perms)

    def apply_leg_permutations(self, block: Block, perms: list[np.ndarray]) -> Block:
        """Apply permutations to every axis of a dense block"""
        if len(perms) == 0:
            return block
        return block[np.ix_(*perms)]

    @abstractmethod
    def as_block(self, a, dtype: Dtype = None, return_dtype: bool = False
                 ) -> Block | tuple[Block, Dtype]:
        """Convert objects to blocks.

        Should support blocks, numpy arrays, nested python containers.
        Convert to `dtype`, if given.

        Returns
        -------
        block: Block
            The new block
        dtype: Dtype, optional
            The new dtype of the block. Only returned if `return_dtype`.
        """
        ...

    @abstractmethod
    def block_allclose(self, a: Block, b: Block, rtol: float = 1e-5, atol: float = 1e-8) -> bool:
        ...

    @abstractmethod
    def block_copy(self, a: Block) -> Block:
        ...

    @abstractmethod
    def block_dagger(self, a: Block) -> Block:
        """Conjugate transpose of a matrix"""
        ...

    @abstractmethod
    def block_dtype(self, a: Block) -> Dtype:
        ...

    @abstractmethod
    def block_inner(self, a: Block, b: Block) -> float | complex:
        """Frobenius inner product ``sum(conj(a) * b)`` of two blocks with the same shape."""
        ...

    @abstractmethod
    def block_is_hermitian(self, a: Block, tol: float) -> bool:
        """Whether a square matrix is hermitian, up to an absolute deviation `tol`."""
        ...

    @abstractmethod
    def block_norm(self, a: Block, order: int | float = 2) -> float:
        """The p-norm of the entries of a block, viewed as a vector."""
        ...

    @abstractmethod
    def block_outer(self, a: Block, b: Block) -> Block:
        """Outer product of blocks, ``res[i1,...,in,j1,...,jm] = a[i1,...,in] * b[j1,...,jm]``"""
        ...

    @abstractmethod
    def block_permute_axes(self, a: Block, permutation: list[int]) -> Block:
        ...

    @abstractmethod
    def block_random_normal(self, dims: list[int], dtype: Dtype, sigma: float,
                            rng: np.random.Generator = None) -> Block:
        ...

    @abstractmethod
    def block_random_uniform(self, dims: list[int], dtype: Dtype,
                             rng: np.random.Generator = None) -> Block:
        ...

    @abstractmethod
    def block_reshape(self, a: Block, shape: tuple[int]) -> Block:
        ...

    @abstractmethod
    def block_tdot(self, a: Block, b: Block, idcs_a: list[int], idcs_b: list[int]) -> Block:
        ...

    @abstractmethod
    def block_to_dtype(self, a: Block, dtype: Dtype) -> Block:
        ...

    @abstractmethod
    def block_trace(self, a: Block) -> float | complex:
        """Trace of a square matrix"""
        ...

    @abstractmethod
    def eye_matrix(self, dim: int, dtype: Dtype) -> Block:
        ...

    @abstractmethod
    def matrix_dot(self, a: Block, b: Block) -> Block:
        """As in numpy.dot, both a and b might be matrix or vector."""
        ...

    @abstractmethod
    def matrix_eig(self, a: Block) -> tuple[Block, Block]:
        """Eigenvalues and right eigenvectors (columns) of a general square matrix."""
        ...

    @abstractmethod
    def matrix_eigh(self, a: Block) -> tuple[Block, Block]:
        """Real eigenvalues (ascending) and orthonormal eigenvectors of a hermitian matrix."""
        ...

    @abstractmethod
    def matrix_lq(self, a: Block, full: bool) -> tuple[Block, Block]:
        """LQ decomposition ``a == l @ q`` of a matrix, with unit-norm rows of ``q``."""
        ...

    @abstractmethod
    def matrix_qr(self, a: Block, full: bool) -> tuple[Block, Block]:
        """QR decomposition of a matrix. If not `full`, the economic version."""
        ...

    @abstractmethod
    def matrix_svd(self, a: Block, algorithm: str | None, full: bool = False
                   ) -> tuple[Block, Block, Block]:
        """SVD ``a == u @ diag(s) @ vh`` with descending non-negative `s`.

        `algorithm` is one of :attr:`svd_algorithms`, ``None`` for the default.
        """
        ...

    @abstractmethod
    def zero_block(self, shape: list[int], dtype: Dtype) -> Block:
        ...

    def block_repr_lines(self, a: Block, indent: str, max_width: int, max_lines: int) -> list[str]:
        """Lines for the string representation of a block"""
        return [f'{indent}{line}' for line in str(a).split('\n')][:max_lines]
