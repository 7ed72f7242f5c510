"""Provide test configuration: random generators for sectors, spaces, blocks and tensors.

=============================  ======================  ===========================================
Fixture                        Depends on / # cases    Description
=============================  ======================  ===========================================
np_random                      -                       From ``tests/conftest.py``. A numpy random
                                                       Generator, use this for reproducibility.
-----------------------------  ----------------------  -------------------------------------------
symmetry                       Generates 5 cases       Goes over some representative symmetries.
-----------------------------  ----------------------  -------------------------------------------
abelian_symmetry               Generates 4 cases       Like `symmetry`, without SU(2).
-----------------------------  ----------------------  -------------------------------------------
make_sectors                   symmetry                RNG for unique sectors.
                                                       ``make(num, sort=False)``
-----------------------------  ----------------------  -------------------------------------------
make_space                     symmetry                RNG for spaces.
                                                       ``make(max_sectors=3, max_mult=3, is_dual=None)``
-----------------------------  ----------------------  -------------------------------------------
make_tensor                    symmetry                RNG for tensors with at least one block.
                                                       ``make(codomain=2, domain=1, dtype=...)``
=============================  ======================  ===========================================

The codomain and domain arguments of ``make_tensor`` are either the number of legs, in which
case random legs are generated, or a list of :class:`ElementarySpace` s.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import pytest

from blocktensors.linalg import symmetries
from blocktensors.linalg.dtypes import Dtype
from blocktensors.linalg.spaces import ElementarySpace, ProductSpace
from blocktensors.linalg.tensors import TensorMap


_symmetries = {
    'NoSymm': symmetries.no_symmetry,
    'U(1)': symmetries.u1_symmetry,
    'Z2': symmetries.z2_symmetry,
    'Z4_named': symmetries.ZNSymmetry(4, 'My_Z4_symmetry'),
    'SU(2)': symmetries.su2_symmetry,
}


@pytest.fixture(params=list(_symmetries.values()), ids=list(_symmetries.keys()))
def symmetry(request) -> symmetries.Symmetry:
    return request.param


@pytest.fixture(params=[s for s in _symmetries.values() if s.is_abelian],
                ids=[k for k, s in _symmetries.items() if s.is_abelian])
def abelian_symmetry(request) -> symmetries.Symmetry:
    return request.param


@pytest.fixture
def make_sectors(symmetry, np_random):
    def make(num: int, sort: bool = False) -> symmetries.SectorArray:
        # return SectorArray
        return random_symmetry_sectors(symmetry, num, sort, np_random=np_random)
    return make


@pytest.fixture
def make_space(symmetry, np_random):
    def make(max_sectors: int = 3, max_mult: int = 3, is_dual: bool = None) -> ElementarySpace:
        # return ElementarySpace
        return random_space(symmetry, max_sectors, max_mult, is_dual, np_random=np_random)
    return make


@pytest.fixture
def make_tensor(symmetry, np_random):
    def make(codomain=2, domain=1, dtype: Dtype = Dtype.float64, max_sectors: int = 3,
             max_mult: int = 3) -> TensorMap:
        # return TensorMap
        return random_tensor(symmetry, codomain, domain, dtype, max_sectors, max_mult,
                             np_random=np_random)
    return make


def random_symmetry_sectors(symmetry: symmetries.Symmetry, num: int, sort: bool = False,
                            np_random=np.random.default_rng()) -> symmetries.SectorArray:
    """random unique symmetry sectors, optionally sorted"""
    if isinstance(symmetry, symmetries.SU2Symmetry):
        res = np_random.choice(int(1.3 * num) + 1, replace=False, size=(num, 1))
    elif isinstance(symmetry, symmetries.U1Symmetry):
        vals = list(range(-num, num)) + [123]
        res = np_random.choice(vals, replace=False, size=(num, 1))
    elif symmetry.num_sectors < np.inf:
        if symmetry.num_sectors <= num:
            res = np_random.permutation(symmetry.all_sectors())
        else:
            which = np_random.choice(symmetry.num_sectors, replace=False, size=num)
            res = symmetry.all_sectors()[which, :]
    else:
        pytest.skip("don't know how to get symmetry sectors")  # raises Skipped
    if sort:
        order = np.lexsort(res.T)
        res = res[order]
    return res


def random_space(symmetry, max_sectors=3, max_mult=3, is_dual=None, np_random=None):
    if np_random is None:
        np_random = np.random.default_rng()
    num_sectors = np_random.integers(1, max_sectors, endpoint=True)
    sectors = random_symmetry_sectors(symmetry, num_sectors, sort=True, np_random=np_random)
    # if there are very few sectors, e.g. for symmetry==NoSymmetry(), dont let them be one-dimensional
    min_mult = min(max_mult, max(3 - len(sectors), 1))
    mults = np_random.integers(min_mult, max_mult, size=(len(sectors),), endpoint=True)
    if symmetry.is_abelian:
        dim = np.sum(symmetry.batch_sector_dim(sectors) * mults)
        basis_perm = np_random.permutation(dim) if np_random.random() < 0.7 else None
    else:
        basis_perm = None
    res = ElementarySpace(symmetry, sectors, mults, basis_perm=basis_perm)
    if (is_dual is None and np_random.random() < 0.5) or (is_dual is True):
        res = res.dual
    res.test_sanity()
    return res


def compatible_space(symmetry, legs: list[ElementarySpace], target: ElementarySpace | None,
                     max_sectors=3, max_mult=3, np_random=None) -> ElementarySpace:
    """A space ``L`` such that ``legs + [L]`` has a coupled sector in common with `target`.

    ``target=None`` means the trivial sector.
    """
    if np_random is None:
        np_random = np.random.default_rng()
    fused = [leg.dual for leg in reversed(legs)]
    if target is not None:
        fused.append(target)
    candidates = ProductSpace(fused, symmetry=symmetry).as_ElementarySpace()
    num = min(candidates.num_sectors, max_sectors)
    which = np.sort(np_random.choice(candidates.num_sectors, replace=False, size=num))
    mults = np.minimum(candidates.multiplicities[which], max_mult)
    res = ElementarySpace(symmetry, candidates.sectors[which], mults)
    if np_random.random() < 0.5:
        res = res.dual
    return res


def random_tensor(symmetry, codomain=2, domain=1, dtype=Dtype.float64, max_sectors=3, max_mult=3,
                  np_random=None) -> TensorMap:
    """A random tensor. Random legs are generated such that there is at least one block."""
    if np_random is None:
        np_random = np.random.default_rng()
    generate_codomain = isinstance(codomain, int)
    generate_domain = isinstance(domain, int)
    if generate_codomain:
        codomain = [random_space(symmetry, max_sectors, max_mult, np_random=np_random)
                    for _ in range(codomain)]
    if generate_domain:
        domain = [random_space(symmetry, max_sectors, max_mult, np_random=np_random)
                  for _ in range(domain)]
    codomain = list(codomain)
    domain = list(domain)
    if generate_domain and len(domain) > 0:
        target = ProductSpace(codomain, symmetry=symmetry).as_ElementarySpace()
        domain[-1] = compatible_space(symmetry, domain[:-1], target, max_sectors, max_mult,
                                      np_random=np_random)
    elif generate_codomain and len(codomain) > 0:
        target = ProductSpace(domain, symmetry=symmetry).as_ElementarySpace()
        codomain[-1] = compatible_space(symmetry, codomain[:-1], target, max_sectors, max_mult,
                                        np_random=np_random)
    res = TensorMap.random_normal(codomain, domain, symmetry=symmetry, dtype=dtype,
                                  rng=np_random)
    res.test_sanity()
    return res
