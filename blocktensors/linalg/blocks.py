"""Storage of the dense blocks of a tensor, keyed by coupled sector.

A :class:`BlockStore` owns one dense 2D block for each coupled sector that it holds.
Iteration is always in the canonical sector order (``np.lexsort(sectors.T)``),
independent of the order in which the blocks were given.
Everything that is handed out (blocks, subblock views) aliases the owned storage.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3
from __future__ import annotations
from typing import Iterator

import numpy as np

from .dtypes import Dtype
from .errors import NoSuchSector
from .symmetries import Sector, SectorArray
from .backends import Block

__all__ = ['sector_key', 'BlockStore']


def sector_key(sector: Sector) -> tuple[int, ...]:
    """A hashable key for a sector"""
    return tuple(int(q) for q in np.asarray(sector).ravel())


class BlockStore:
    """Mapping from coupled sectors to owned dense blocks.

    Parameters
    ----------
    sectors : 2D array of int
        The coupled sectors, one per row, in any order. Must be unique.
    blocks : list of Block
        The 2D blocks, in the same order as the `sectors`. Ownership is taken, no copy is made.
    dtype : :class:`~blocktensors.linalg.dtypes.Dtype`
        The common dtype of all blocks.

    Attributes
    ----------
    sectors : 2D array of int
        The coupled sectors, unique and sorted.
    dtype : Dtype
    """

    def __init__(self, sectors: SectorArray, blocks: list[Block], dtype: Dtype):
        sectors = np.asarray(sectors, dtype=int)
        if sectors.ndim != 2:
            raise ValueError(f'Expected 2D array of sectors, got shape {sectors.shape}')
        if len(sectors) != len(blocks):
            raise ValueError('Need exactly one block per sector.')
        perm = np.lexsort(sectors.T)
        self.sectors = sectors[perm]
        self._blocks = [blocks[i] for i in perm]
        self._index = {sector_key(c): n for n, c in enumerate(self.sectors)}
        if len(self._index) != len(self.sectors):
            raise ValueError('Duplicate sectors.')
        self.dtype = dtype

    def test_sanity(self):
        assert np.all(np.lexsort(self.sectors.T) == np.arange(len(self.sectors)))
        assert len(self._blocks) == len(self.sectors)
        for b in self._blocks:
            assert b.ndim == 2
            assert Dtype.from_numpy_dtype(b.dtype) == self.dtype

    @classmethod
    def from_dict(cls, blocks: dict[tuple[int, ...], Block], dtype: Dtype, sector_ind_len: int
                  ) -> BlockStore:
        """Create from a dictionary ``{sector_key: block}``."""
        sectors = np.array(list(blocks.keys()), dtype=int).reshape(-1, sector_ind_len)
        return cls(sectors, list(blocks.values()), dtype)

    def __len__(self) -> int:
        return len(self._blocks)

    def __contains__(self, sector) -> bool:
        return sector_key(sector) in self._index

    def __iter__(self) -> Iterator[Sector]:
        return iter(self.sectors)

    def index(self, sector: Sector) -> int:
        """Position of a sector in the canonical order. ``NoSuchSector`` if absent."""
        try:
            return self._index[sector_key(sector)]
        except KeyError:
            raise NoSuchSector(f'No block for coupled sector {list(sector_key(sector))}') from None

    def block(self, sector: Sector) -> Block:
        """The block of a coupled sector. Is a view, i.e. aliases the owned storage."""
        return self._blocks[self.index(sector)]

    def get(self, sector: Sector, default=None) -> Block | None:
        n = self._index.get(sector_key(sector), None)
        if n is None:
            return default
        return self._blocks[n]

    def blocks(self) -> list[tuple[Sector, Block]]:
        """All ``(sector, block)`` pairs in canonical sector order."""
        return list(zip(self.sectors, self._blocks))

    @property
    def block_list(self) -> list[Block]:
        """The blocks in canonical sector order, without the sectors."""
        return self._blocks

    @property
    def nbytes(self) -> int:
        return sum(b.nbytes for b in self._blocks)

    def copy(self, deep: bool = True) -> BlockStore:
        if deep:
            blocks = [np.copy(b) for b in self._blocks]
        else:
            blocks = list(self._blocks)
        return BlockStore(self.sectors.copy(), blocks, self.dtype)

    def zeros_like(self) -> BlockStore:
        return BlockStore(self.sectors.copy(), [np.zeros_like(b) for b in self._blocks],
                          self.dtype)

    def replace_blocks(self, blocks: list[Block], dtype: Dtype = None):
        """Replace all blocks at once, keeping the sectors.

        Used to commit the result of an in-place operation after all of its blocks were computed.
        """
        if len(blocks) != len(self._blocks):
            raise ValueError('Need exactly one block per sector.')
        self._blocks = list(blocks)
        if dtype is not None:
            self.dtype = dtype
