r"""Re-partitioning the legs of a tensor between codomain and domain.

The legs of a :class:`~blocktensors.linalg.tensors.TensorMap` with ``N1`` codomain legs and
``N2`` domain legs are numbered ``0, ..., N1 + N2 - 1``, the codomain legs first.
:func:`permute` reorders them and moves them across the codomain/domain boundary. A domain leg
``W`` that is moved to the codomain becomes ``W.dual``, and vice versa. Since the dual of a space
keeps the public basis order, the dense array of the result is simply the transpose of the dense
array of the input::

    permute(t, p1, p2).to_dense_block() == np.transpose(t.to_dense_block(), [*p1, *p2])

The blocks, however, need to be recomputed. Dispatch is on the fusion style of the symmetry:

- without symmetry, the single block is a reshape of the raw array, which is transposed.
- for abelian symmetries, every subblock is moved to a new position and transposed, since all
  recoupling coefficients are one.
- for non-abelian symmetries, each subblock of a tree pair ``(f1, f2)`` contributes to the
  subblocks of all new tree pairs ``(g1, g2)`` with the same uncoupled sectors, weighted by the
  recoupling coefficients. These are the overlaps of the respective (transposed)
  :func:`~blocktensors.linalg.trees.tree_pair_tensor` s.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3
from __future__ import annotations
from functools import lru_cache
import logging
from typing import Sequence

import numpy as np

from .backends import get_block_backend
from .blocks import BlockStore, sector_key
from .errors import InvalidPermutation
from .spaces import ElementarySpace, ProductSpace, FusionLayoutEntry
from .symmetries import Symmetry, NoSymmetry
from .tensors import TensorMap, blocksectors
from .trees import FusionTree, tree_pair_tensor
from ..tools.misc import inverse_permutation, is_permutation

__all__ = ['permute', 'inverse_partition', 'permuted_spaces']

logger = logging.getLogger(__name__)


def _check_partition(p1: Sequence[int], p2: Sequence[int], num_legs: int
                     ) -> tuple[list[int], list[int]]:
    p1 = list(p1)
    p2 = list(p2)
    if not is_permutation(p1 + p2, num_legs):
        msg = f'({p1}, {p2}) is not a partition of a permutation of {num_legs} legs.'
        raise InvalidPermutation(msg)
    return [int(i) for i in p1], [int(i) for i in p2]


def permuted_spaces(codomain: ProductSpace, domain: ProductSpace, p1: Sequence[int],
                    p2: Sequence[int]) -> tuple[ProductSpace, ProductSpace]:
    """The codomain and domain of ``permute(t, p1, p2)`` for a tensor `t` with given spaces."""
    num_legs = codomain.num_spaces + domain.num_spaces
    p1, p2 = _check_partition(p1, p2, num_legs)
    as_codomain = codomain.spaces + [W.dual for W in domain.spaces]
    new_codomain = ProductSpace([as_codomain[i] for i in p1], symmetry=codomain.symmetry)
    new_domain = ProductSpace([as_codomain[i].dual for i in p2], symmetry=codomain.symmetry)
    return new_codomain, new_domain


def inverse_partition(p1: Sequence[int], p2: Sequence[int], num_codomain_legs: int
                      ) -> tuple[list[int], list[int]]:
    """The partition ``(q1, q2)`` that undoes ``permute(t, p1, p2)``.

    That is ``permute(permute(t, p1, p2), q1, q2) == t`` for a tensor `t` with
    `num_codomain_legs` codomain legs.
    """
    p1, p2 = _check_partition(p1, p2, len(p1) + len(p2))
    inv = inverse_permutation(p1 + p2)
    q1 = [int(inv[i]) for i in range(num_codomain_legs)]
    q2 = [int(inv[i]) for i in range(num_codomain_legs, len(inv))]
    return q1, q2


def permute(t: TensorMap, p1: Sequence[int], p2: Sequence[int] = ()) -> TensorMap:
    """Reorder the legs of a tensor and repartition them into codomain and domain.

    Parameters
    ----------
    t : :class:`~blocktensors.linalg.tensors.TensorMap`
        The tensor. Is not modified.
    p1 : list of int
        The legs of `t` that form the new codomain, in order. Leg ``i < t.num_codomain_legs``
        is codomain leg ``i``, leg ``t.num_codomain_legs + j`` is domain leg ``j``.
    p2 : list of int
        The legs of `t` that form the new domain, in order.

    Returns
    -------
    :class:`~blocktensors.linalg.tensors.TensorMap`
        A new tensor with codomain ``[L[i] for i in p1]`` and domain ``[L[i].dual for i in p2]``
        where ``L = [*t.codomain, *(W.dual for W in t.domain)]``.

    Raises
    ------
    InvalidPermutation
        If ``[*p1, *p2]`` is not a permutation of ``range(t.num_legs)``.
    """
    N1 = t.num_codomain_legs
    p1, p2 = _check_partition(p1, p2, t.num_legs)
    if p1 == list(range(N1)) and p2 == list(range(N1, t.num_legs)):
        logger.debug('permute: trivial permutation, copying')
        return t.copy()
    new_codomain, new_domain = permuted_spaces(t.codomain, t.domain, p1, p2)
    if isinstance(t.symmetry, NoSymmetry):
        logger.debug('permute: no symmetry, transposing the raw array')
        return _permute_no_symmetry(t, p1, p2, new_codomain, new_domain)
    sector_maps = _sector_index_maps(t, p1, p2)
    if t.symmetry.is_abelian:
        logger.debug('permute: abelian symmetry, moving subblocks')
        new_blocks = _permute_abelian(t, p1, p2, new_codomain, new_domain, sector_maps)
    else:
        logger.debug('permute: non-abelian symmetry, recoupling fusion trees')
        new_blocks = _permute_recoupling(t, p1, p2, new_codomain, new_domain, sector_maps)
    sectors = blocksectors(new_codomain, new_domain)
    blocks = [new_blocks[sector_key(c)] for c in sectors]
    return TensorMap(BlockStore(sectors, blocks, t.dtype), new_codomain, new_domain)


def _permute_no_symmetry(t: TensorMap, p1: list[int], p2: list[int],
                         new_codomain: ProductSpace, new_domain: ProductSpace) -> TensorMap:
    backend = get_block_backend()
    sectors = blocksectors(new_codomain, new_domain)
    blocks = []
    if len(sectors) > 0:
        raw = backend.block_permute_axes(t.raw(), p1 + p2)
        shape = (int(np.prod(new_codomain.dims)), int(np.prod(new_domain.dims)))
        blocks.append(backend.block_copy(backend.block_reshape(raw, shape)))
    return TensorMap(BlockStore(sectors, blocks, t.dtype), new_codomain, new_domain)


def _dual_sector_idcs(space: ElementarySpace) -> np.ndarray:
    """For every sector index of `space`, the index of its dual sector in ``space.dual``."""
    dual = space.dual
    dual_sectors = space.symmetry.dual_sectors(space.sectors)
    return np.array([dual.sectors_where(s) for s in dual_sectors], dtype=int)


def _sector_index_maps(t: TensorMap, p1: list[int], p2: list[int]) -> list[np.ndarray]:
    """How sector indices of the legs translate to the new codomain and domain.

    Returns a list, with one entry per new leg (new codomain legs first), which maps the sector
    index of the old leg ``(p1 + p2)[k]`` to the sector index of new leg `k`.
    """
    N1 = t.num_codomain_legs
    old_legs = t.legs
    maps = []
    for k, i in enumerate(p1 + p2):
        leg = old_legs[i]
        # a leg changes to its dual if it crosses from codomain to domain or vice versa
        crosses = (i < N1) != (k < len(p1))
        if crosses:
            maps.append(_dual_sector_idcs(leg))
        else:
            maps.append(np.arange(leg.num_sectors, dtype=int))
    return maps


def _entries_by_uncoupled(space: ProductSpace, coupled_sectors) -> dict:
    """Group the layout entries for the given coupled sectors by their uncoupled sectors."""
    res = {}
    for c in coupled_sectors:
        for entry in space.fusion_layout(c):
            res.setdefault(entry.uncoupled_idcs, []).append(entry)
    return res


def _new_uncoupled_idcs(entry_1: FusionLayoutEntry, entry_2: FusionLayoutEntry, p1: list[int],
                        p2: list[int], sector_maps: list[np.ndarray]
                        ) -> tuple[tuple[int, ...], tuple[int, ...]]:
    old_idcs = entry_1.uncoupled_idcs + entry_2.uncoupled_idcs
    new_idcs = [int(sector_maps[k][old_idcs[i]]) for k, i in enumerate(p1 + p2)]
    return tuple(new_idcs[:len(p1)]), tuple(new_idcs[len(p1):])


def _permute_abelian(t: TensorMap, p1: list[int], p2: list[int], new_codomain: ProductSpace,
                     new_domain: ProductSpace, sector_maps: list[np.ndarray]) -> dict:
    """New blocks by sector key. All recoupling coefficients are one."""
    backend = get_block_backend()
    new_sectors = blocksectors(new_codomain, new_domain)
    new_blocks = {
        sector_key(c): backend.zero_block([new_codomain.blockdim(c), new_domain.blockdim(c)],
                                          t.dtype)
        for c in new_sectors
    }
    # for abelian symmetries, there is exactly one tree per uncoupled sectors
    new_entries_1 = _entries_by_uncoupled(new_codomain, new_sectors)
    new_entries_2 = _entries_by_uncoupled(new_domain, new_sectors)
    perm = p1 + p2
    for c, block in t.data.blocks():
        for entry_1 in t.codomain.fusion_layout(c):
            rows = slice(entry_1.start, entry_1.start + int(np.prod(entry_1.shape)))
            for entry_2 in t.domain.fusion_layout(c):
                cols = slice(entry_2.start, entry_2.start + int(np.prod(entry_2.shape)))
                idcs_1, idcs_2 = _new_uncoupled_idcs(entry_1, entry_2, p1, p2, sector_maps)
                new_entry_1, = new_entries_1[idcs_1]
                new_entry_2, = new_entries_2[idcs_2]
                sub = backend.block_reshape(block[rows, cols], entry_1.shape + entry_2.shape)
                sub = backend.block_permute_axes(sub, perm)
                new_rows = slice(new_entry_1.start,
                                 new_entry_1.start + int(np.prod(new_entry_1.shape)))
                new_cols = slice(new_entry_2.start,
                                 new_entry_2.start + int(np.prod(new_entry_2.shape)))
                shape = (new_rows.stop - new_rows.start, new_cols.stop - new_cols.start)
                new_block = new_blocks[sector_key(new_entry_1.tree.coupled)]
                new_block[new_rows, new_cols] = backend.block_reshape(sub, shape)
    return new_blocks


@lru_cache(maxsize=2 ** 14)
def _recoupling_coefficient(symmetry: Symmetry, tree_1: FusionTree, tree_2: FusionTree,
                            new_tree_1: FusionTree, new_tree_2: FusionTree, perm: tuple[int, ...]
                            ) -> float:
    """Overlap of the permuted basis morphism ``(tree_1, tree_2)`` with ``(new_tree_1, new_tree_2)``."""
    old = np.transpose(tree_pair_tensor(tree_1, tree_2), perm)
    new = tree_pair_tensor(new_tree_1, new_tree_2)
    return np.vdot(new, old).item() / symmetry.sector_dim(new_tree_1.coupled)


def _permute_recoupling(t: TensorMap, p1: list[int], p2: list[int], new_codomain: ProductSpace,
                        new_domain: ProductSpace, sector_maps: list[np.ndarray]) -> dict:
    """New blocks by sector key, by recoupling the subblocks of every tree pair."""
    backend = get_block_backend()
    symmetry = t.symmetry
    new_sectors = blocksectors(new_codomain, new_domain)
    new_blocks = {
        sector_key(c): backend.zero_block([new_codomain.blockdim(c), new_domain.blockdim(c)],
                                          t.dtype)
        for c in new_sectors
    }
    new_entries_1 = _entries_by_uncoupled(new_codomain, new_sectors)
    new_entries_2 = _entries_by_uncoupled(new_domain, new_sectors)
    perm = tuple(p1 + p2)
    for c, block in t.data.blocks():
        for entry_1 in t.codomain.fusion_layout(c):
            rows = slice(entry_1.start, entry_1.start + int(np.prod(entry_1.shape)))
            for entry_2 in t.domain.fusion_layout(c):
                cols = slice(entry_2.start, entry_2.start + int(np.prod(entry_2.shape)))
                idcs_1, idcs_2 = _new_uncoupled_idcs(entry_1, entry_2, p1, p2, sector_maps)
                sub = backend.block_reshape(block[rows, cols], entry_1.shape + entry_2.shape)
                sub = backend.block_permute_axes(sub, perm)
                for new_entry_1 in new_entries_1.get(idcs_1, []):
                    new_rows = slice(new_entry_1.start,
                                     new_entry_1.start + int(np.prod(new_entry_1.shape)))
                    for new_entry_2 in new_entries_2.get(idcs_2, []):
                        if not np.all(new_entry_1.tree.coupled == new_entry_2.tree.coupled):
                            continue
                        coeff = _recoupling_coefficient(symmetry, entry_1.tree, entry_2.tree,
                                                        new_entry_1.tree, new_entry_2.tree, perm)
                        if coeff == 0.:
                            continue
                        new_cols = slice(new_entry_2.start,
                                         new_entry_2.start + int(np.prod(new_entry_2.shape)))
                        shape = (new_rows.stop - new_rows.start, new_cols.stop - new_cols.start)
                        new_block = new_blocks[sector_key(new_entry_1.tree.coupled)]
                        new_block[new_rows, new_cols] += coeff * backend.block_reshape(sub, shape)
    return new_blocks
