"""A collection of tests for blocktensors.linalg.truncation."""
# Copyright (C) TeNPy Developers, GNU GPLv3

import warnings

import numpy as np
import numpy.testing as npt
import pytest

from blocktensors.linalg.errors import SpaceMismatch
from blocktensors.linalg.spaces import ElementarySpace
from blocktensors.linalg.symmetries import no_symmetry, u1_symmetry, z2_symmetry, su2_symmetry
from blocktensors.linalg.truncation import (Spectrum, TruncationError, NoTruncation,
                                            ErrorTolerance, MaxTotalDim, MaxSpace, ValueFloor,
                                            CombinedTruncation, truncate,
                                            truncation_from_options)
from blocktensors.tools.params import Config


def u1_spectrum():
    return Spectrum(u1_symmetry, [[-1], [0], [2]],
                    [np.array([0.9, 0.3]), np.array([1., 0.5, 0.05]), np.array([0.2])])


def test_spectrum():
    s = u1_spectrum()
    assert s.num_sectors == 3
    npt.assert_array_equal(s.lengths, [2, 3, 1])
    values, weights, which = s.ascending()
    npt.assert_array_equal(values, [0.05, 0.2, 0.3, 0.5, 0.9, 1.])
    npt.assert_array_equal(weights, [1] * 6)
    npt.assert_array_equal(which, [1, 2, 0, 1, 0, 1])
    with pytest.raises(ValueError):
        Spectrum(u1_symmetry, [[0]], [])


def test_no_truncation():
    s = u1_spectrum()
    keep, err = truncate(s, NoTruncation())
    npt.assert_array_equal(keep, s.lengths)
    assert err.eps == 0.
    assert repr(err) == 'TruncationError()'


def test_error_tolerance():
    s = Spectrum(no_symmetry, [[0]], [np.array([1., 0.2, 0.1])])
    keep, err = truncate(s, ErrorTolerance(0.15))
    npt.assert_array_equal(keep, [2])
    npt.assert_allclose(err.eps, 0.1)
    # discarding 0.2 as well would give sqrt(0.05) > 0.15
    keep, err = truncate(s, ErrorTolerance(np.sqrt(0.05) + 1e-10))
    npt.assert_array_equal(keep, [1])
    npt.assert_allclose(err.eps, np.sqrt(0.05))
    keep, err = truncate(s, ErrorTolerance(0.))
    npt.assert_array_equal(keep, [3])
    # with p=1
    keep, err = truncate(s, ErrorTolerance(0.35, p=1))
    npt.assert_array_equal(keep, [1])
    npt.assert_allclose(err.eps, 0.3)
    assert err.p == 1
    with pytest.raises(ValueError):
        ErrorTolerance(-1.)


@pytest.mark.parametrize('scheme', [ErrorTolerance(0.15), MaxTotalDim(2), ValueFloor(0.15)])
def test_first_good_cut(scheme):
    values = np.array([0.1, 0.2, 1.])  # ascending, one-dimensional sectors
    weights = np.ones(3, int)
    good = scheme._good_cuts(values, weights)
    assert len(good) == 4
    assert good[-1]
    first = np.nonzero(good)[0][0]
    assert np.all(good[first:])
    # all three schemes discard exactly the value 0.1: the tolerance allows discarding 0.1
    # but not also 0.2, two values fit and 0.1 is below the floor
    assert first == 1
    s = Spectrum(no_symmetry, [[0]], [values[::-1].copy()])
    keep, _ = truncate(s, scheme)
    npt.assert_array_equal(keep, [2])


def test_error_tolerance_counts_sector_dims():
    # the value 0.1 in the spin-1 sector appears three times in the dense map
    s = Spectrum(su2_symmetry, [[0], [2]], [np.array([1., 0.12]), np.array([0.1])])
    keep, err = truncate(s, ErrorTolerance(0.15))
    npt.assert_array_equal(keep, [2, 1])
    assert err.eps == 0.
    keep, err = truncate(s, ErrorTolerance(0.2))
    npt.assert_array_equal(keep, [2, 0])
    npt.assert_allclose(err.eps, np.sqrt(3 * 0.1 ** 2))
    keep, err = truncate(s, ErrorTolerance(0.25))
    npt.assert_array_equal(keep, [1, 0])
    npt.assert_allclose(err.eps, np.sqrt(3 * 0.1 ** 2 + 0.12 ** 2))


def test_max_total_dim():
    s = u1_spectrum()
    keep, err = truncate(s, MaxTotalDim(3))
    npt.assert_array_equal(keep, [1, 2, 0])
    npt.assert_allclose(err.eps, np.sqrt(0.3 ** 2 + 0.05 ** 2 + 0.2 ** 2))
    keep, _ = truncate(s, MaxTotalDim(10))
    npt.assert_array_equal(keep, s.lengths)
    # weighted by the sector dimensions
    s = Spectrum(su2_symmetry, [[0], [2]], [np.array([1., 0.2]), np.array([0.5])])
    keep, _ = truncate(s, MaxTotalDim(3))
    npt.assert_array_equal(keep, [1, 0])  # 0.2 is not kept once 0.5 does not fit
    keep, _ = truncate(s, MaxTotalDim(4))
    npt.assert_array_equal(keep, [1, 1])
    keep, _ = truncate(s, MaxTotalDim(5))
    npt.assert_array_equal(keep, [2, 1])
    with pytest.raises(ValueError):
        MaxTotalDim(-1)


def test_value_floor():
    s = u1_spectrum()
    keep, err = truncate(s, ValueFloor(0.3))
    npt.assert_array_equal(keep, [2, 2, 0])
    npt.assert_allclose(err.eps, np.sqrt(0.05 ** 2 + 0.2 ** 2))


def test_max_space():
    s = u1_spectrum()
    space = ElementarySpace(u1_symmetry, [[-1], [2], [5]], [1, 3, 2])
    keep, err = truncate(s, MaxSpace(space))
    # sector 0 is not in the space, sector 2 has only one value
    npt.assert_array_equal(keep, [1, 0, 1])
    npt.assert_allclose(err.eps, np.sqrt(0.3 ** 2 + 1. + 0.5 ** 2 + 0.05 ** 2))
    with pytest.raises(SpaceMismatch):
        truncate(s, MaxSpace(ElementarySpace(z2_symmetry, [[0]], [2])))


def test_combined_truncation():
    s = u1_spectrum()
    scheme = MaxTotalDim(4) & ValueFloor(0.25)
    assert isinstance(scheme, CombinedTruncation)
    keep, _ = truncate(s, scheme)
    npt.assert_array_equal(keep, [2, 2, 0])
    scheme = MaxTotalDim(2) & ValueFloor(0.25)
    keep, _ = truncate(s, scheme)
    npt.assert_array_equal(keep, [1, 1, 0])
    # flattened, and the error order is taken from the schemes
    scheme = scheme & ErrorTolerance(0.1, p=1)
    assert len(scheme.schemes) == 3
    assert scheme.error_p == 1
    _ = repr(scheme)
    space = ElementarySpace(u1_symmetry, [[0]], [1])
    keep, _ = truncate(s, NoTruncation() & MaxSpace(space))
    npt.assert_array_equal(keep, [0, 1, 0])


def test_empty_spectrum():
    s = Spectrum(u1_symmetry, np.zeros((0, 1), int), [])
    for scheme in [NoTruncation(), ErrorTolerance(0.1), MaxTotalDim(2), ValueFloor(0.1),
                   MaxSpace(ElementarySpace(u1_symmetry, [[0]]))]:
        with warnings.catch_warnings():
            warnings.simplefilter('error')
            keep, err = truncate(s, scheme)
        assert len(keep) == 0
        assert err.eps == 0.


def test_discarding_everything_warns():
    s = u1_spectrum()
    with pytest.warns(UserWarning, match='discards all'):
        keep, err = truncate(s, MaxTotalDim(0))
    npt.assert_array_equal(keep, [0, 0, 0])
    all_values = np.concatenate(s.values)
    npt.assert_allclose(err.eps, np.linalg.norm(all_values))


def test_truncation_error():
    e1 = TruncationError(0.3)
    e2 = TruncationError(0.4)
    npt.assert_allclose((e1 + e2).eps, 0.5)
    assert repr(e1 + e2).startswith('TruncationError(eps=')
    e3 = e1.copy()
    assert e3.eps == e1.eps and e3 is not e1
    with pytest.raises(ValueError):
        _ = e1 + TruncationError(0.1, p=1)


def test_truncation_from_options():
    assert isinstance(truncation_from_options({}), NoTruncation)
    scheme = truncation_from_options({'chi_max': 5})
    assert isinstance(scheme, MaxTotalDim)
    assert scheme.chi == 5
    scheme = truncation_from_options(Config({'trunc_cut': 1e-3, 'trunc_p': 1, 'svd_min': 1e-8},
                                            'trunc_params'))
    assert isinstance(scheme, CombinedTruncation)
    assert [type(s) for s in scheme.schemes] == [ErrorTolerance, ValueFloor]
    assert scheme.error_p == 1
    space = ElementarySpace(u1_symmetry, [[0]], [3])
    scheme = truncation_from_options({'max_space': space, 'chi_max': 2})
    assert [type(s) for s in scheme.schemes] == [MaxTotalDim, MaxSpace]
