"""A collection of tests for blocktensors.linalg.spaces."""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import numpy.testing as npt
import pytest

from blocktensors.linalg import spaces, symmetries
from blocktensors.linalg.spaces import ElementarySpace, ProductSpace, SpaceStyle


def test_elementary_space(symmetry, make_sectors, np_random):
    sectors = make_sectors(4, sort=True)
    mults = np_random.integers(1, 5, size=len(sectors))
    s1 = ElementarySpace(symmetry, sectors, mults)
    s1.test_sanity()
    s2 = ElementarySpace.from_trivial_sector(dim=8)
    s2.test_sanity()

    print('checking sectors and dims')
    npt.assert_array_equal(s2.sectors, symmetries.no_symmetry.trivial_sector[None, :])
    assert s1.dim == np.sum(symmetry.batch_sector_dim(sectors) * mults)
    assert s2.dim == 8
    for n, (a, m) in enumerate(zip(sectors, mults)):
        assert s1.sectors_where(a) == n
        assert s1.sector_multiplicity(a) == m

    print('checking str and repr')
    _ = str(s1)
    _ = repr(s1)
    _ = repr(s2)

    print('checking duality and equality')
    assert s1 == s1
    assert s1 != s1.dual
    assert s1.dual.dual == s1
    assert s1.dual.is_dual
    dual_sectors = symmetry.dual_sectors(sectors)
    order = np.lexsort(dual_sectors.T)
    npt.assert_array_equal(s1.dual.sectors, dual_sectors[order])
    npt.assert_array_equal(s1.dual.multiplicities, mults[order])
    wrong_mults = mults.copy()
    wrong_mults[0] += 1
    assert s1 != ElementarySpace(symmetry, sectors, wrong_mults)
    assert s1 != s1.with_space_style(SpaceStyle.generic)
    assert s1.is_euclidean
    assert not s1.with_space_style(SpaceStyle.generic).is_euclidean

    print('checking is_trivial')
    assert not s2.is_trivial
    assert ElementarySpace.from_trivial_sector(dim=1).is_trivial
    assert ElementarySpace(symmetry, symmetry.trivial_sector[None, :]).is_trivial


def test_basis_perm(abelian_symmetry, np_random):
    if abelian_symmetry.num_sectors < np.inf:
        sectors = abelian_symmetry.all_sectors()
    else:
        sectors = np.array([[-1], [0], [1]])
    mults = np.full(len(sectors), 2)
    dim = int(np.sum(mults))
    perm = np.roll(np_random.permutation(dim), 1)
    if np.all(perm == np.arange(dim)):
        perm = perm[::-1]
    space = ElementarySpace(abelian_symmetry, sectors, mults, basis_perm=perm)
    space.test_sanity()
    npt.assert_array_equal(space.basis_perm, perm)
    npt.assert_array_equal(space.basis_perm[space.inverse_basis_perm], np.arange(dim))
    # the dual keeps the public basis order
    dual = space.dual
    dual.test_sanity()
    public_sectors = space.sectors_of_basis
    npt.assert_array_equal(dual.sectors_of_basis, abelian_symmetry.dual_sectors(public_sectors))
    assert dual.dual == space
    assert space != ElementarySpace(abelian_symmetry, sectors, mults)


def test_from_sectors(symmetry, make_sectors, np_random):
    sectors = make_sectors(3)
    num = len(sectors)  # less than 3 if the symmetry has fewer sectors
    # duplicates and unsorted
    all_sectors = np.concatenate([sectors, sectors[:1]], axis=0)
    mults = np.arange(1, num + 2)
    space = ElementarySpace.from_sectors(symmetry, all_sectors, mults)
    space.test_sanity()
    assert space.num_sectors == num
    assert space.sector_multiplicity(sectors[0]) == 1 + mults[-1]
    for a, m in zip(sectors[1:], mults[1:]):
        assert space.sector_multiplicity(a) == m
    assert space.dim == np.sum(symmetry.batch_sector_dim(all_sectors) * mults)
    # public basis: in the order of `all_sectors`
    expect = np.concatenate([np.repeat(a[None, :], m * symmetry.sector_dim(a), axis=0)
                             for a, m in zip(all_sectors, mults)], axis=0)
    npt.assert_array_equal(space.sectors_of_basis, expect)
    # zero multiplicities are dropped
    if num > 1:
        space = ElementarySpace.from_sectors(symmetry, sectors, [0] + [1] * (num - 1))
        space.test_sanity()
        assert space.num_sectors == num - 1
        assert space.sector_multiplicity(sectors[0]) == 0
    # the null space
    null = ElementarySpace.from_null_space(symmetry)
    null.test_sanity()
    assert null.dim == 0
    assert ElementarySpace.from_trivial_sector(0, symmetry) == null


def test_invalid_spaces():
    with pytest.raises(ValueError):
        ElementarySpace(symmetries.u1_symmetry, [0, 1])  # 1D sectors
    with pytest.raises(symmetries.SymmetryError):
        ElementarySpace.from_sectors(symmetries.z2_symmetry, [[0], [2]])
    with pytest.raises(ValueError):
        ElementarySpace(symmetries.u1_symmetry, [[0]], [3], basis_perm=[1, 0])


def test_product_space(symmetry, make_space):
    s1 = make_space()
    s2 = make_space()
    s3 = make_space()
    p = ProductSpace([s1, s2, s3])
    p.test_sanity()
    _ = str(p)
    _ = repr(p)
    assert p.num_spaces == 3
    assert p.dims == [s1.dim, s2.dim, s3.dim]
    assert p.are_dual == [s1.is_dual, s2.is_dual, s3.is_dual]
    # the total dimension is conserved by the fusion
    assert p.dim == s1.dim * s2.dim * s3.dim
    assert p == ProductSpace([s1, s2, s3])
    assert p != ProductSpace([s1, s2])
    assert p.dual == ProductSpace([s3.dual, s2.dual, s1.dual])
    assert p.dual.dual == p
    assert p.left_multiply(s3) == ProductSpace([s3, s1, s2, s3])
    assert p.right_multiply(s1) == ProductSpace([s1, s2, s3, s1])

    print('checking the fusion layout')
    for c, mult in zip(p.sectors, p.multiplicities):
        assert p.blockdim(c) == mult
        layout = p.fusion_layout(c)
        start = 0
        for entry in layout:
            assert entry.start == start
            npt.assert_array_equal(entry.tree.coupled, c)
            assert entry.shape == tuple(sp.multiplicities[i]
                                        for sp, i in zip(p.spaces, entry.uncoupled_idcs))
            assert p.entry_for(entry.tree) == entry
            size = int(np.prod(entry.shape))
            assert p.tree_slice(entry.tree) == slice(start, start + size)
            start += size
        assert start == mult

    print('checking the coupled space')
    coupled = p.as_ElementarySpace()
    coupled.test_sanity()
    npt.assert_array_equal(coupled.sectors, p.sectors)
    npt.assert_array_equal(coupled.multiplicities, p.multiplicities)
    assert p.as_ElementarySpace(is_dual=True) == coupled.dual


def test_empty_product_space(symmetry, make_space):
    p = ProductSpace([], symmetry=symmetry)
    p.test_sanity()
    assert p.dim == 1
    npt.assert_array_equal(p.sectors, symmetry.trivial_sector[None, :])
    assert p.blockdim(symmetry.trivial_sector) == 1
    assert len(p.fusion_layout(symmetry.trivial_sector)) == 1
    with pytest.raises(ValueError):
        ProductSpace([])
    s = make_space()
    single = ProductSpace([s])
    npt.assert_array_equal(single.sectors, s.sectors)
    npt.assert_array_equal(single.multiplicities, s.multiplicities)


def test_product_space_mismatched_symmetry():
    s1 = ElementarySpace(symmetries.z2_symmetry, [[0], [1]])
    s2 = ElementarySpace(symmetries.u1_symmetry, [[0], [1]])
    with pytest.raises(symmetries.SymmetryError):
        ProductSpace([s1, s2])


def test_su2_product_space():
    spin_half = ElementarySpace(symmetries.su2_symmetry, [[1]])
    p = ProductSpace([spin_half, spin_half, spin_half])
    p.test_sanity()
    # 1/2 x 1/2 x 1/2 = 1/2 + 1/2 + 3/2
    npt.assert_array_equal(p.sectors, [[1], [3]])
    npt.assert_array_equal(p.multiplicities, [2, 1])
    assert p.dim == 8
    assert [e.uncoupled_idcs for e in p.fusion_layout(np.array([1]))] == [(0, 0, 0), (0, 0, 0)]
    assert p.fusion_layout(np.array([5])) == []


def test_spaces_module_api():
    assert spaces.FusionLayoutEntry._fields == ('uncoupled_idcs', 'tree', 'start', 'shape')
    assert spaces.SpaceStyle.euclidean != spaces.SpaceStyle.generic
