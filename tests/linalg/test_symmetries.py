"""A collection of tests for blocktensors.linalg.symmetries."""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import numpy.testing as npt
import pytest

from blocktensors.linalg import symmetries


def test_symmetry_basics(symmetry, make_sectors):
    sectors = make_sectors(3)
    assert symmetry.are_valid_sectors(sectors)
    assert symmetry.is_valid_sector(symmetry.trivial_sector)
    assert symmetry.empty_sector_array.shape == (0, symmetry.sector_ind_len)
    _ = str(symmetry)
    _ = repr(symmetry)
    assert symmetry == symmetry
    for a in sectors:
        dual = symmetry.dual_sector(a)
        assert symmetry.is_valid_sector(dual)
        npt.assert_array_equal(symmetry.dual_sector(dual), a)
        # a x dual(a) contains the trivial sector exactly once
        assert symmetry.n_symbol(a, dual, symmetry.trivial_sector) == 1
        # the trivial sector is the unit of the fusion
        npt.assert_array_equal(symmetry.fusion_outcomes(a, symmetry.trivial_sector), a[None, :])
    npt.assert_array_equal(symmetry.batch_sector_dim(sectors),
                           [symmetry.sector_dim(a) for a in sectors])
    npt.assert_array_equal(symmetry.dual_sectors(sectors),
                           np.stack([symmetry.dual_sector(a) for a in sectors]))


def test_fusion_outcomes_are_sorted(symmetry, make_sectors):
    sectors = make_sectors(3)
    for a in sectors:
        for b in sectors:
            outcomes = symmetry.fusion_outcomes(a, b)
            assert symmetry.are_valid_sectors(outcomes)
            assert np.all(np.lexsort(outcomes.T) == np.arange(len(outcomes)))
            # dimensions add up
            assert np.sum(symmetry.batch_sector_dim(outcomes)) == \
                symmetry.sector_dim(a) * symmetry.sector_dim(b)


def test_fusion_tensors_are_isometric(symmetry, make_sectors):
    sectors = make_sectors(3)
    for a in sectors:
        for b in sectors:
            for c in symmetry.fusion_outcomes(a, b):
                X = symmetry.fusion_tensor(a, b, c)
                d_c = symmetry.sector_dim(c)
                assert X.shape == (symmetry.n_symbol(a, b, c), symmetry.sector_dim(a),
                                   symmetry.sector_dim(b), d_c)
                for mu in range(X.shape[0]):
                    overlap = np.tensordot(np.conj(X[mu]), X[mu], [[0, 1], [0, 1]])
                    npt.assert_allclose(overlap, np.eye(d_c), atol=1e-12)


def test_Z_iso_is_unitary(symmetry, make_sectors):
    for a in make_sectors(3):
        Z = symmetry.Z_iso(a)
        d = symmetry.sector_dim(a)
        npt.assert_allclose(np.conj(Z.T) @ Z, np.eye(d), atol=1e-12)


def test_invalid_fusion_tensor():
    with pytest.raises(symmetries.SymmetryError):
        symmetries.su2_symmetry.fusion_tensor(np.array([1]), np.array([1]), np.array([1]))
    with pytest.raises(symmetries.SymmetryError):
        symmetries.u1_symmetry.fusion_tensor(np.array([1]), np.array([2]), np.array([2]))


def test_su2_fusion_rules():
    su2 = symmetries.su2_symmetry
    spin_half = np.array([1])
    spin_one = np.array([2])
    npt.assert_array_equal(su2.fusion_outcomes(spin_half, spin_half), [[0], [2]])
    npt.assert_array_equal(su2.fusion_outcomes(spin_one, spin_half), [[1], [3]])
    assert su2.can_fuse_to(spin_one, spin_one, np.array([0]))
    assert not su2.can_fuse_to(spin_one, spin_half, np.array([2]))
    assert su2.sector_dim(spin_one) == 3
    assert su2.sector_str(spin_half) == '1 (J=1/2)'
    assert not su2.is_abelian


def test_symmetry_equality():
    assert symmetries.z4_symmetry == symmetries.ZNSymmetry(4)
    assert symmetries.z4_symmetry != symmetries.ZNSymmetry(4, 'My_Z4_symmetry')
    assert symmetries.z4_symmetry != symmetries.z3_symmetry
    assert symmetries.u1_symmetry != symmetries.no_symmetry
    assert symmetries.u1_symmetry.is_abelian
    npt.assert_array_equal(symmetries.z3_symmetry.fusion_outcomes(np.array([2]), np.array([2])),
                           [[1]])
    npt.assert_array_equal(symmetries.z3_symmetry.dual_sector(np.array([1])), [2])
    npt.assert_array_equal(symmetries.u1_symmetry.dual_sector(np.array([3])), [-3])
