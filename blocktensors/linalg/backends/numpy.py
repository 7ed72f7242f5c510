"""Dense kernels for numpy arrays, with :mod:`scipy.linalg` for the factorizations."""
# Copyright (C) TeNPy Developers, GNU GPLv3
from __future__ import annotations

import numpy as np
import scipy.linalg

from .abstract_backend import BlockBackend, Block
from ..dtypes import Dtype, _numpy_dtype_to_blocktensors, _blocktensors_dtype_to_numpy
from .. import svd_robust
from ..dummy_config import printoptions

__all__ = ['NumpyBlockBackend']


class NumpyBlockBackend(BlockBackend):
    BlockCls = np.ndarray
    svd_algorithms = ['gesdd', 'gesvd', 'robust', 'robust_silent']

    blocktensors_dtype_map = _numpy_dtype_to_blocktensors
    backend_dtype_map = _blocktensors_dtype_to_numpy

    def as_block(self, a, dtype: Dtype = None, return_dtype: bool = False) -> Block:
        block = np.asarray(a, dtype=self.backend_dtype_map[dtype])
        if np.issubdtype(block.dtype, np.integer):
            block = block.astype(np.float64, copy=False)
        if return_dtype:
            return block, self.blocktensors_dtype_map[block.dtype]
        return block

    def block_allclose(self, a: Block, b: Block, rtol: float = 1e-5, atol: float = 1e-8) -> bool:
        return np.allclose(a, b, rtol=rtol, atol=atol)

    def block_copy(self, a: Block) -> Block:
        return np.copy(a)

    def block_dagger(self, a: Block) -> Block:
        return np.conj(np.transpose(a))

    def block_dtype(self, a: Block) -> Dtype:
        return self.blocktensors_dtype_map[a.dtype]

    def block_inner(self, a: Block, b: Block) -> float | complex:
        return np.vdot(a, b).item()

    def block_is_hermitian(self, a: Block, tol: float) -> bool:
        if a.shape[0] != a.shape[1]:
            return False
        if a.size == 0:
            return True
        return bool(np.max(np.abs(a - np.conj(a.T))) <= tol)

    def block_norm(self, a: Block, order: int | float = 2) -> float:
        return np.linalg.norm(a.ravel(), ord=order).item()

    def block_outer(self, a: Block, b: Block) -> Block:
        return np.tensordot(a, b, ((), ()))

    def block_permute_axes(self, a: Block, permutation: list[int]) -> Block:
        return np.transpose(a, permutation)

    def block_random_normal(self, dims: list[int], dtype: Dtype, sigma: float,
                            rng: np.random.Generator = None) -> Block:
        if rng is None:
            rng = np.random.default_rng()
        res = rng.normal(loc=0, scale=sigma, size=dims)
        if not dtype.is_real:
            res = res + 1.j * rng.normal(loc=0, scale=sigma, size=dims)
        return self.block_to_dtype(res, dtype)

    def block_random_uniform(self, dims: list[int], dtype: Dtype,
                             rng: np.random.Generator = None) -> Block:
        if rng is None:
            rng = np.random.default_rng()
        res = rng.uniform(-1, 1, size=dims)
        if not dtype.is_real:
            res = res + 1.j * rng.uniform(-1, 1, size=dims)
        return self.block_to_dtype(res, dtype)

    def block_repr_lines(self, a: Block, indent: str, max_width: int, max_lines: int) -> list[str]:
        with np.printoptions(linewidth=max_width - len(indent), precision=printoptions.precision):
            lines = [f'{indent}{line}' for line in str(a).split('\n')]
        if len(lines) > max_lines:
            first = (max_lines - 1) // 2
            last = max_lines - 1 - first
            lines = lines[:first] + [f'{indent}...'] + lines[-last:]
        return lines

    def block_reshape(self, a: Block, shape: tuple[int]) -> Block:
        return np.reshape(a, shape)

    def block_tdot(self, a: Block, b: Block, idcs_a: list[int], idcs_b: list[int]) -> Block:
        return np.tensordot(a, b, (idcs_a, idcs_b))

    def block_to_dtype(self, a: Block, dtype: Dtype) -> Block:
        return np.asarray(a, dtype=self.backend_dtype_map[dtype])

    def block_trace(self, a: Block) -> float | complex:
        return np.trace(a).item()

    def eye_matrix(self, dim: int, dtype: Dtype) -> Block:
        return np.eye(dim, dtype=self.backend_dtype_map[dtype])

    def matrix_dot(self, a: Block, b: Block) -> Block:
        return np.dot(a, b)

    def matrix_eig(self, a: Block) -> tuple[Block, Block]:
        w, v = scipy.linalg.eig(a)
        return w.astype(np.result_type(w, 1.j), copy=False), v.astype(np.result_type(v, 1.j), copy=False)

    def matrix_eigh(self, a: Block) -> tuple[Block, Block]:
        return scipy.linalg.eigh(a)

    def matrix_lq(self, a: Block, full: bool) -> tuple[Block, Block]:
        # a^T = q' r'  =>  a = r'^T q'^T
        q, r = self.matrix_qr(np.transpose(a), full=full)
        return np.transpose(r), np.transpose(q)

    def matrix_qr(self, a: Block, full: bool) -> tuple[Block, Block]:
        return scipy.linalg.qr(a, mode='full' if full else 'economic')

    def matrix_svd(self, a: Block, algorithm: str | None, full: bool = False
                   ) -> tuple[Block, Block, Block]:
        if algorithm is None:
            algorithm = 'gesdd'

        if algorithm == 'gesdd':
            return scipy.linalg.svd(a, full_matrices=full)

        elif algorithm in ['robust', 'robust_silent']:
            silent = algorithm == 'robust_silent'
            return svd_robust.svd(a, full_matrices=full, warn=not silent)

        elif algorithm == 'gesvd':
            return scipy.linalg.svd(a, full_matrices=full, lapack_driver='gesvd')

        else:
            raise ValueError(f'SVD algorithm not supported: {algorithm}')

    def zero_block(self, shape: list[int], dtype: Dtype) -> Block:
        return np.zeros(shape, dtype=self.backend_dtype_map[dtype])
