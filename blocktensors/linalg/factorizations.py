r"""Blockwise matrix factorizations of tensor maps.

Since a :class:`~blocktensors.linalg.tensors.TensorMap` is block diagonal in the coupled sectors,
its factorizations act on each block separately. The new space ``W`` which connects the factors
is an :class:`~blocktensors.linalg.spaces.ElementarySpace` whose multiplicity of a coupled sector
is the rank kept in the corresponding block.

All factorizations act on ``t`` viewed as a map ``domain -> codomain``. Optionally, a different
partition of the legs can be given by ``p1, p2``, in which case they act on
``permute(t, p1, p2)``. If only one of them is given, the other one consists of the remaining legs,
in ascending order. The input is never modified.

==================  ==================================================================
Function            Factorization
==================  ==================================================================
:func:`svd`         ``t == U @ S @ Vh``, with isometries ``U``, ``Vh`` and real ``S >= 0``
:func:`tsvd`        truncated :func:`svd`, see :mod:`~blocktensors.linalg.truncation`
:func:`leftorth`    ``t == Q @ R``, isometric ``Q``
:func:`rightorth`   ``t == L @ Q``, ``Q`` with orthonormal rows
:func:`leftnull`    ``adjoint(N) @ t == 0`` with isometric ``N``
:func:`rightnull`   ``t @ adjoint(N) == 0`` with ``N @ adjoint(N) == 1``
:func:`eigh`        ``t @ V == V @ D`` for hermitian ``t``, unitary ``V``
:func:`eig`         ``t @ V == V @ D``, complex ``D``
:func:`eigen`       dispatches to :func:`eigh` or :func:`eig`
==================  ==================================================================

If a dense kernel fails for one of the blocks, we raise a
:class:`~blocktensors.linalg.errors.NumericalFailure` which names the coupled sector.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3
from __future__ import annotations
import logging
from typing import Sequence

import numpy as np

from .backends import Block, get_block_backend
from .blocks import BlockStore
from .dtypes import Dtype
from .dummy_config import config
from .errors import SpaceMismatch, NotAnInnerProductSpace, NumericalFailure
from .permutations import permute
from .spaces import ElementarySpace, ProductSpace
from .symmetries import Symmetry, SectorArray
from .tensors import TensorMap, norm
from .truncation import (Spectrum, TruncationScheme, NoTruncation, truncate,
                         truncation_from_options)
from ..tools.params import asConfig

__all__ = ['svd', 'tsvd', 'leftorth', 'rightorth', 'leftnull', 'rightnull', 'eigh', 'eig',
           'eigen']

logger = logging.getLogger(__name__)


def _bipartition(t: TensorMap, p1: Sequence[int] | None, p2: Sequence[int] | None) -> TensorMap:
    """The tensor to factorize: `t` itself, or ``permute(t, p1, p2)``."""
    if p1 is None and p2 is None:
        return t
    num_legs = t.num_legs
    if p1 is None:
        p1 = [i for i in range(num_legs) if i not in p2]
    if p2 is None:
        p2 = [i for i in range(num_legs) if i not in p1]
    return permute(t, p1, p2)


def _require_euclidean(t: TensorMap, name: str):
    if not t.is_euclidean:
        raise NotAnInnerProductSpace(f'{name} requires inner product spaces.')


def _new_space(symmetry: Symmetry, sectors: SectorArray, multiplicities: Sequence[int],
               is_real: bool) -> ElementarySpace:
    """The (non-dual) space between the factors. Sectors with zero multiplicity are dropped."""
    sectors = np.asarray(sectors, dtype=int).reshape(-1, symmetry.sector_ind_len)
    multiplicities = np.asarray(multiplicities, dtype=int)
    mask = multiplicities > 0
    return ElementarySpace(symmetry, sectors[mask], multiplicities[mask], is_dual=False,
                           is_real=is_real)


def _tensor(blocks: list[tuple], codomain: ProductSpace | list[ElementarySpace],
            domain: ProductSpace | list[ElementarySpace], dtype: Dtype,
            symmetry: Symmetry) -> TensorMap:
    """Build a tensor from a list of ``(sector, block)`` pairs, dropping empty blocks.

    All blocks have nonzero size and are already converted to `dtype`.
    """
    sectors = [c for c, b in blocks if b.shape[0] > 0 and b.shape[1] > 0]
    block_list = [b for c, b in blocks if b.shape[0] > 0 and b.shape[1] > 0]
    sectors = np.array(sectors, dtype=int).reshape(-1, symmetry.sector_ind_len)
    return TensorMap(BlockStore(sectors, block_list, dtype), codomain, domain, symmetry)


def _diag(values: Block, dtype: Dtype) -> Block:
    backend = get_block_backend()
    return backend.block_to_dtype(np.diag(values), dtype)


# SVD


def _svd_algorithm(options) -> str:
    algorithm = options.get('svd_algorithm', 'gesdd', str)
    if algorithm not in get_block_backend().svd_algorithms:
        raise ValueError(f'SVD algorithm not supported: {algorithm}')
    return algorithm


def _block_svds(t: TensorMap, algorithm: str, full: bool = False) -> list[tuple[Block, Block, Block]]:
    """SVDs of all blocks. Fails before anything is built if one of them does not converge."""
    backend = get_block_backend()
    res = []
    for c, block in t.data.blocks():
        try:
            res.append(backend.matrix_svd(block, algorithm, full=full))
        except np.linalg.LinAlgError as err:
            raise NumericalFailure(f'SVD ({algorithm}) did not converge', sector=c) from err
    return res


def _svd(t: TensorMap, trunc: TruncationScheme, algorithm: str
         ) -> tuple[TensorMap, TensorMap, TensorMap, float]:
    _require_euclidean(t, 'The SVD')
    backend = get_block_backend()
    data = t.data
    symmetry = t.symmetry
    factors = _block_svds(t, algorithm)
    spectrum = Spectrum(symmetry, data.sectors, [s for _, s, _ in factors])
    keep, err = truncate(spectrum, trunc)
    logger.debug('SVD: keeping %d of %d singular values in %d sectors, %r',
                 int(np.sum(keep)), int(np.sum(spectrum.lengths)), len(keep), err)
    W = _new_space(symmetry, data.sectors, keep, t.codomain.is_real and t.domain.is_real)
    dtype = t.dtype
    s_dtype = dtype.to_real
    u_blocks = []
    s_blocks = []
    vh_blocks = []
    for c, (u, s, vh), k in zip(data.sectors, factors, keep):
        if k == 0:
            continue
        u_blocks.append((c, backend.block_to_dtype(u[:, :k], dtype)))
        s_blocks.append((c, _diag(s[:k], s_dtype)))
        vh_blocks.append((c, backend.block_to_dtype(vh[:k, :], dtype)))
    U = _tensor(u_blocks, t.codomain, [W], dtype, symmetry)
    S = _tensor(s_blocks, [W], [W], s_dtype, symmetry)
    Vh = _tensor(vh_blocks, [W], t.domain, dtype, symmetry)
    return U, S, Vh, err.eps


def tsvd(t: TensorMap, p1: Sequence[int] = None, p2: Sequence[int] = None,
         trunc: TruncationScheme = None, options=None
         ) -> tuple[TensorMap, TensorMap, TensorMap, float]:
    r"""Truncated singular value decomposition ``t ~= U @ S @ Vh``.

    Parameters
    ----------
    t : TensorMap
        The tensor to decompose.
    p1, p2 : list of int, optional
        Decompose ``permute(t, p1, p2)`` instead of `t`.
    trunc : :class:`~blocktensors.linalg.truncation.TruncationScheme`, optional
        Which singular values to keep. By default, build it from the `options`
        with :func:`~blocktensors.linalg.truncation.truncation_from_options`, which results in
        :class:`~blocktensors.linalg.truncation.NoTruncation` if no truncation keys are given.
    options : dict | :class:`~blocktensors.tools.params.Config`, optional
        Options, see below.

    Options
    -------
    .. cfg:config:: svd
        :include: truncation

        svd_algorithm : str
            The dense SVD kernel, one of ``'gesdd'`` (default), ``'gesvd'``, ``'robust'``,
            ``'robust_silent'``. See :func:`~blocktensors.linalg.svd_robust.svd`.

    Returns
    -------
    U : TensorMap
        Isometry ``W -> codomain``, i.e. ``adjoint(U) @ U`` is the identity on `W`.
    S : TensorMap
        The kept singular values, as a diagonal endomorphism of ``W`` with real dtype.
    Vh : TensorMap
        Map ``domain -> W`` with ``Vh @ adjoint(Vh)`` the identity on `W`.
    eps : float
        The truncation error, see :class:`~blocktensors.linalg.truncation.TruncationError`.
        For ``p == 2``, this is ``norm(t - U @ S @ Vh)``.

    Raises
    ------
    NotAnInnerProductSpace
        If the spaces of `t` are not euclidean.
    SpaceMismatch
        If the truncation scheme does not fit to the tensor, e.g. a
        :class:`~blocktensors.linalg.truncation.MaxSpace` of a different symmetry.
    NumericalFailure
        If the SVD of one of the blocks fails.
    """
    options = asConfig(options, 'svd')
    algorithm = _svd_algorithm(options)
    if trunc is None:
        trunc = truncation_from_options(options)
    t = _bipartition(t, p1, p2)
    return _svd(t, trunc, algorithm)


def svd(t: TensorMap, p1: Sequence[int] = None, p2: Sequence[int] = None, options=None
        ) -> tuple[TensorMap, TensorMap, TensorMap]:
    """Singular value decomposition ``t == U @ S @ Vh``, without truncation.

    Exact zero singular values are kept. See :func:`tsvd` for the parameters.
    """
    options = asConfig(options, 'svd')
    algorithm = _svd_algorithm(options)
    t = _bipartition(t, p1, p2)
    U, S, Vh, _ = _svd(t, NoTruncation(), algorithm)
    return U, S, Vh


def _svd_rank(s: Block, tol: float) -> int:
    return int(np.sum(s > tol))


def _svd_tolerance(t: TensorMap, atol: float, rtol: float | None) -> float:
    if rtol is None:
        return atol
    return max(atol, rtol * norm(t))


# QR / LQ


def _positive_diagonal_phases(diag: Block) -> Block:
    """Phases ``d / |d|`` of a diagonal, with ``1`` for zero entries."""
    abs_diag = np.abs(diag)
    phases = np.ones_like(diag)
    nonzero = abs_diag > 0
    phases[nonzero] = diag[nonzero] / abs_diag[nonzero]
    return phases


def leftorth(t: TensorMap, p1: Sequence[int] = None, p2: Sequence[int] = None,
             alg: str = 'qr', atol: float = 0., rtol: float = None
             ) -> tuple[TensorMap, TensorMap]:
    """Factorize ``t == Q @ R`` with an isometry ``Q``.

    Parameters
    ----------
    t, p1, p2
        As for :func:`tsvd`.
    alg : ``'qr' | 'svd'``
        With ``'qr'``, do a thin QR decomposition of each block, and fix the gauge such that the
        diagonal of `R` is real and non-negative.
        With ``'svd'``, ``Q = U`` and ``R = S @ Vh`` from an SVD, keeping only singular values
        larger than ``max(atol, rtol * norm(t))``.
    atol, rtol : float
        Tolerances for ``alg='svd'``. ``rtol=None`` means that only `atol` is used.

    Returns
    -------
    Q : TensorMap
        Isometry ``W -> codomain``.
    R : TensorMap
        Map ``domain -> W``.
    """
    t = _bipartition(t, p1, p2)
    _require_euclidean(t, 'leftorth')
    backend = get_block_backend()
    symmetry = t.symmetry
    data = t.data
    dtype = t.dtype
    is_real = t.codomain.is_real and t.domain.is_real
    if alg == 'qr':
        factors = []
        for c, block in data.blocks():
            try:
                factors.append(backend.matrix_qr(block, full=False))
            except np.linalg.LinAlgError as err:
                raise NumericalFailure('QR decomposition failed', sector=c) from err
        q_blocks = []
        r_blocks = []
        for c, (q, r) in zip(data.sectors, factors):
            phases = _positive_diagonal_phases(np.diag(r))
            q_blocks.append((c, backend.block_to_dtype(q * phases[None, :], dtype)))
            r_blocks.append((c, backend.block_to_dtype(np.conj(phases)[:, None] * r, dtype)))
        ranks = [q.shape[1] for q, _ in factors]
    elif alg == 'svd':
        factors = _block_svds(t, 'gesdd')
        tol = _svd_tolerance(t, atol, rtol)
        q_blocks = []
        r_blocks = []
        ranks = []
        for c, (u, s, vh) in zip(data.sectors, factors):
            k = _svd_rank(s, tol)
            ranks.append(k)
            q_blocks.append((c, backend.block_to_dtype(u[:, :k], dtype)))
            r_blocks.append((c, backend.block_to_dtype(s[:k, None] * vh[:k, :], dtype)))
    else:
        raise ValueError(f'Unknown algorithm for leftorth: {alg}')
    W = _new_space(symmetry, data.sectors, ranks, is_real)
    Q = _tensor(q_blocks, t.codomain, [W], dtype, symmetry)
    R = _tensor(r_blocks, [W], t.domain, dtype, symmetry)
    return Q, R


def rightorth(t: TensorMap, p1: Sequence[int] = None, p2: Sequence[int] = None,
              alg: str = 'lq', atol: float = 0., rtol: float = None
              ) -> tuple[TensorMap, TensorMap]:
    """Factorize ``t == L @ Q``, where ``Q`` has orthonormal rows.

    Like :func:`leftorth`, with ``alg='lq'`` (or its alias ``'qr'``) for a thin LQ decomposition
    with a real non-negative diagonal of `L`, and ``alg='svd'`` for ``L = U @ S``, ``Q = Vh``.

    Returns
    -------
    L : TensorMap
        Map ``W -> codomain``.
    Q : TensorMap
        Map ``domain -> W`` with ``Q @ adjoint(Q)`` the identity on `W`.
    """
    t = _bipartition(t, p1, p2)
    _require_euclidean(t, 'rightorth')
    backend = get_block_backend()
    symmetry = t.symmetry
    data = t.data
    dtype = t.dtype
    is_real = t.codomain.is_real and t.domain.is_real
    if alg in ['lq', 'qr']:
        factors = []
        for c, block in data.blocks():
            try:
                factors.append(backend.matrix_lq(block, full=False))
            except np.linalg.LinAlgError as err:
                raise NumericalFailure('LQ decomposition failed', sector=c) from err
        l_blocks = []
        q_blocks = []
        for c, (l, q) in zip(data.sectors, factors):
            phases = _positive_diagonal_phases(np.diag(l))
            l_blocks.append((c, backend.block_to_dtype(l * np.conj(phases)[None, :], dtype)))
            q_blocks.append((c, backend.block_to_dtype(phases[:, None] * q, dtype)))
        ranks = [q.shape[0] for _, q in factors]
    elif alg == 'svd':
        factors = _block_svds(t, 'gesdd')
        tol = _svd_tolerance(t, atol, rtol)
        l_blocks = []
        q_blocks = []
        ranks = []
        for c, (u, s, vh) in zip(data.sectors, factors):
            k = _svd_rank(s, tol)
            ranks.append(k)
            l_blocks.append((c, backend.block_to_dtype(u[:, :k] * s[None, :k], dtype)))
            q_blocks.append((c, backend.block_to_dtype(vh[:k, :], dtype)))
    else:
        raise ValueError(f'Unknown algorithm for rightorth: {alg}')
    W = _new_space(symmetry, data.sectors, ranks, is_real)
    L = _tensor(l_blocks, t.codomain, [W], dtype, symmetry)
    Q = _tensor(q_blocks, [W], t.domain, dtype, symmetry)
    return L, Q


# NULL SPACES


def leftnull(t: TensorMap, p1: Sequence[int] = None, p2: Sequence[int] = None,
             alg: str = 'qr', atol: float = 0., rtol: float = None) -> TensorMap:
    """An isometry ``N`` onto the orthogonal complement of the image of `t`.

    That is ``adjoint(N) @ t == 0`` and ``adjoint(N) @ N == 1``, and ``N`` together with the
    image of `t` spans the codomain. A coupled sector of the codomain which does not appear in
    the domain is entirely in the null space.

    Parameters
    ----------
    t, p1, p2
        As for :func:`tsvd`.
    alg : ``'qr' | 'svd'``
        With ``'qr'``, a full QR decomposition is used, which assumes that every block has full
        rank. With ``'svd'``, the rank is determined from the singular values which are larger
        than ``max(atol, rtol * norm(t))``.
    atol, rtol : float
        Tolerances for ``alg='svd'``.

    Returns
    -------
    N : TensorMap
        Isometry ``W -> codomain``.
    """
    t = _bipartition(t, p1, p2)
    _require_euclidean(t, 'leftnull')
    if alg not in ['qr', 'svd']:
        raise ValueError(f'Unknown algorithm for leftnull: {alg}')
    backend = get_block_backend()
    symmetry = t.symmetry
    data = t.data
    dtype = t.dtype
    tol = _svd_tolerance(t, atol, rtol) if alg == 'svd' else None
    null_blocks = []
    for c, m in zip(t.codomain.sectors, t.codomain.multiplicities):
        block = data.get(c)
        if block is None:
            null_blocks.append((c, backend.eye_matrix(int(m), dtype)))
            continue
        try:
            if alg == 'qr':
                q, _ = backend.matrix_qr(block, full=True)
                rank = min(block.shape)
            else:
                q, s, _ = backend.matrix_svd(block, 'gesdd', full=True)
                rank = _svd_rank(s, tol)
        except np.linalg.LinAlgError as err:
            raise NumericalFailure('leftnull: decomposition failed', sector=c) from err
        null_blocks.append((c, backend.block_to_dtype(q[:, rank:], dtype)))
    W = _new_space(symmetry, [c for c, _ in null_blocks], [b.shape[1] for _, b in null_blocks],
                   t.codomain.is_real)
    return _tensor(null_blocks, t.codomain, [W], dtype, symmetry)


def rightnull(t: TensorMap, p1: Sequence[int] = None, p2: Sequence[int] = None,
              alg: str = 'lq', atol: float = 0., rtol: float = None) -> TensorMap:
    """A map ``N`` with orthonormal rows that spans the kernel of `t`.

    That is ``t @ adjoint(N) == 0`` and ``N @ adjoint(N) == 1``.
    Analogous to :func:`leftnull`, with ``alg='lq'`` (or ``'qr'``) or ``'svd'``.

    Returns
    -------
    N : TensorMap
        Map ``domain -> W``.
    """
    t = _bipartition(t, p1, p2)
    _require_euclidean(t, 'rightnull')
    if alg not in ['lq', 'qr', 'svd']:
        raise ValueError(f'Unknown algorithm for rightnull: {alg}')
    backend = get_block_backend()
    symmetry = t.symmetry
    data = t.data
    dtype = t.dtype
    tol = _svd_tolerance(t, atol, rtol) if alg == 'svd' else None
    null_blocks = []
    for c, n in zip(t.domain.sectors, t.domain.multiplicities):
        block = data.get(c)
        if block is None:
            null_blocks.append((c, backend.eye_matrix(int(n), dtype)))
            continue
        try:
            if alg == 'svd':
                _, s, q = backend.matrix_svd(block, 'gesdd', full=True)
                rank = _svd_rank(s, tol)
            else:
                _, q = backend.matrix_lq(block, full=True)
                rank = min(block.shape)
        except np.linalg.LinAlgError as err:
            raise NumericalFailure('rightnull: decomposition failed', sector=c) from err
        null_blocks.append((c, backend.block_to_dtype(q[rank:, :], dtype)))
    W = _new_space(symmetry, [c for c, _ in null_blocks], [b.shape[0] for _, b in null_blocks],
                   t.domain.is_real)
    return _tensor(null_blocks, [W], t.domain, dtype, symmetry)


# EIGENDECOMPOSITION


def _require_endomorphism(t: TensorMap, name: str):
    if not t.is_endomorphism:
        raise SpaceMismatch(f'{name} requires an endomorphism, i.e. codomain == domain.')


def eigh(t: TensorMap) -> tuple[TensorMap, TensorMap]:
    """Eigendecomposition of a hermitian endomorphism, ``t @ V == V @ D``.

    Hermiticity is assumed, not checked; only the lower triangle of each block is used.

    Returns
    -------
    D : TensorMap
        The eigenvalues, ascending per sector, as a diagonal endomorphism of ``W`` with real
        dtype.
    V : TensorMap
        Unitary ``W -> codomain``, whose columns are the eigenvectors.
    """
    _require_endomorphism(t, 'eigh')
    _require_euclidean(t, 'eigh')
    backend = get_block_backend()
    data = t.data
    factors = []
    for c, block in data.blocks():
        try:
            factors.append(backend.matrix_eigh(block))
        except np.linalg.LinAlgError as err:
            raise NumericalFailure('eigh did not converge', sector=c) from err
    dtype = t.dtype
    d_dtype = dtype.to_real
    W = _new_space(t.symmetry, data.sectors, [len(w) for w, _ in factors], t.codomain.is_real)
    d_blocks = [(c, _diag(w, d_dtype)) for c, (w, _) in zip(data.sectors, factors)]
    v_blocks = [(c, backend.block_to_dtype(v, dtype)) for c, (_, v) in zip(data.sectors, factors)]
    D = _tensor(d_blocks, [W], [W], d_dtype, t.symmetry)
    V = _tensor(v_blocks, t.codomain, [W], dtype, t.symmetry)
    return D, V


def eig(t: TensorMap) -> tuple[TensorMap, TensorMap]:
    """Eigendecomposition of a general endomorphism, ``t @ V == V @ D``.

    Returns
    -------
    D : TensorMap
        The eigenvalues, as a diagonal endomorphism of ``W`` with complex dtype.
    V : TensorMap
        Invertible ``W -> codomain`` with complex dtype, whose columns are the (normalized)
        eigenvectors.
    """
    _require_endomorphism(t, 'eig')
    backend = get_block_backend()
    data = t.data
    factors = []
    for c, block in data.blocks():
        try:
            factors.append(backend.matrix_eig(block))
        except np.linalg.LinAlgError as err:
            raise NumericalFailure('eig did not converge', sector=c) from err
    dtype = t.dtype.to_complex
    W = _new_space(t.symmetry, data.sectors, [len(w) for w, _ in factors], False)
    d_blocks = [(c, _diag(w, dtype)) for c, (w, _) in zip(data.sectors, factors)]
    v_blocks = [(c, backend.block_to_dtype(v, dtype)) for c, (_, v) in zip(data.sectors, factors)]
    D = _tensor(d_blocks, [W], [W], dtype, t.symmetry)
    V = _tensor(v_blocks, t.codomain, [W], dtype, t.symmetry)
    return D, V


def eigen(t: TensorMap, tol: float = None) -> tuple[TensorMap, TensorMap]:
    """Eigendecomposition, via :func:`eigh` if all blocks are hermitian, else :func:`eig`.

    Parameters
    ----------
    t : TensorMap
        The endomorphism to decompose.
    tol : float, optional
        Absolute tolerance for the hermiticity check of the blocks.
        Defaults to ``config.hermitian_tol``.
    """
    _require_endomorphism(t, 'eigen')
    if tol is None:
        tol = config.hermitian_tol
    backend = get_block_backend()
    hermitian = t.is_euclidean and all(backend.block_is_hermitian(b, tol)
                                       for b in t.data.block_list)
    logger.debug('eigen: dispatching to %s', 'eigh' if hermitian else 'eig')
    if hermitian:
        return eigh(t)
    return eig(t)
