"""A collection of tests for blocktensors.linalg.tensors."""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import numpy.testing as npt
import pytest

from blocktensors.linalg import tensors
from blocktensors.linalg.dtypes import Dtype
from blocktensors.linalg.errors import (SpaceMismatch, NoSuchSector, MismatchedCoupledSector,
                                        NotAnInnerProductSpace)
from blocktensors.linalg.spaces import ElementarySpace, ProductSpace, SpaceStyle
from blocktensors.linalg.symmetries import (SymmetryError, no_symmetry, u1_symmetry, z2_symmetry,
                                            su2_symmetry)
from blocktensors.linalg.tensors import TensorMap, AdjointTensorMap
from blocktensors.linalg.trees import fusion_trees


def dagger(t: TensorMap, a: np.ndarray) -> np.ndarray:
    """The dense array of the adjoint, given the dense array `a` of `t`."""
    N1 = t.num_codomain_legs
    perm = [*range(N1, t.num_legs), *range(N1)]
    return np.conj(np.transpose(a, perm))


def test_block_of_tensor_without_symmetry():
    # a map C^2 x C^3 <- C^2 without symmetry has a single block, the reshaped array
    codomain = [ElementarySpace.from_trivial_sector(2), ElementarySpace.from_trivial_sector(3)]
    domain = [ElementarySpace.from_trivial_sector(2)]
    arr = np.arange(12.).reshape(2, 3, 2)
    t = TensorMap.from_dense_block(arr, codomain, domain)
    t.test_sanity()
    assert t.symmetry == no_symmetry
    assert t.shape == (2, 3, 2)
    assert (t.num_codomain_legs, t.num_domain_legs, t.num_legs) == (2, 1, 3)
    assert len(t.data) == 1
    npt.assert_array_equal(t.block(no_symmetry.trivial_sector), arr.reshape(6, 2))
    npt.assert_array_equal(t[()], arr)
    npt.assert_array_equal(t.raw(), arr)
    npt.assert_array_equal(t.to_dense_block(), arr)
    # the block aliases the storage
    t.block(no_symmetry.trivial_sector)[0, 0] = -1.
    assert t.raw()[0, 0, 0] == -1.


def test_z2_identity():
    V = ElementarySpace(z2_symmetry, [[0], [1]], [2, 1])
    t = TensorMap.from_sector_dict({0: np.eye(2), 1: np.eye(1)}, [V], [V])
    t.test_sanity()
    npt.assert_array_equal(t.to_dense_block(), np.eye(3))
    eye = TensorMap.from_eye([V])
    assert t == eye
    res = tensors.compose(tensors.adjoint(t), t)
    assert tensors.almost_equal(res, eye)
    assert tensors.trace(t) == 3.
    npt.assert_allclose(tensors.norm(t), np.sqrt(3))


def test_dense_round_trip(make_tensor):
    t = make_tensor()
    assert len(t.data) > 0
    dense = t.to_dense_block()
    assert dense.shape == t.shape
    t2 = TensorMap.from_dense_block(dense, t.codomain, t.domain)
    t2.test_sanity()
    assert tensors.almost_equal(t, t2)
    # norm and inner product agree with the dense arrays
    npt.assert_allclose(tensors.norm(t), np.linalg.norm(dense))
    t3 = make_tensor(t.codomain.spaces, t.domain.spaces)
    npt.assert_allclose(tensors.inner(t, t3), np.vdot(dense, t3.to_dense_block()), atol=1e-12)


def test_from_dense_block_rejects_non_symmetric(make_tensor, np_random):
    t = make_tensor()
    dense = t.to_dense_block()
    if t.symmetry == no_symmetry:
        pytest.skip('Every array is symmetric')
    noise = np_random.random(dense.shape)
    projected = TensorMap.from_dense_block(noise, t.codomain, t.domain, tol=None)
    if np.allclose(projected.to_dense_block(), noise):
        pytest.skip('Random array happens to be symmetric')
    with pytest.raises(ValueError):
        TensorMap.from_dense_block(noise, t.codomain, t.domain)
    with pytest.raises(ValueError):
        TensorMap.from_dense_block(dense[..., None], t.codomain, t.domain)


def test_from_dense_block_zero_tolerance():
    V = ElementarySpace(z2_symmetry, [[0], [1]], [1, 1])
    arr = np.array([[1., 1.], [0., 1.]])  # the off-diagonal entry breaks the Z2 symmetry
    with pytest.raises(ValueError, match='not symmetric'):
        TensorMap.from_dense_block(arr, [V], [V], tol=0.)
    t = TensorMap.from_dense_block(arr, [V], [V], tol=None)
    npt.assert_array_equal(t.to_dense_block(), np.eye(2))
    zero = TensorMap.from_dense_block(np.zeros((2, 2)), [V], [V], tol=0.)
    assert tensors.norm(zero) == 0.


def test_norm_from_blocks(make_tensor):
    t = make_tensor(dtype=Dtype.complex128)
    expect = sum(t.symmetry.sector_dim(c) * np.linalg.norm(b) ** 2 for c, b in t.blocks())
    npt.assert_allclose(tensors.norm(t) ** 2, expect)
    npt.assert_allclose(tensors.norm(t) ** 2, tensors.inner(t, t).real)


def test_trace(make_space, np_random, symmetry):
    V = make_space()
    W = make_space()
    t = TensorMap.random_normal([V, W], [V, W], rng=np_random)
    t.test_sanity()
    assert t.is_endomorphism
    D = V.dim * W.dim
    expect = np.trace(t.to_dense_block().reshape(D, D))
    npt.assert_allclose(tensors.trace(t), expect)
    with pytest.raises(SpaceMismatch):
        tensors.trace(TensorMap.zeros([V, W], [W, V]) if V != W else TensorMap.zeros([V], [W, V]))


def test_linear_algebra(make_tensor):
    t1 = make_tensor()
    t2 = TensorMap.random_normal(t1.codomain, t1.domain, dtype=Dtype.complex128)
    d1 = t1.to_dense_block()
    d2 = t2.to_dense_block()

    res = tensors.linear_combination(2., t1, -1.j, t2)
    assert res.dtype == Dtype.complex128
    npt.assert_allclose(res.to_dense_block(), 2. * d1 - 1.j * d2, atol=1e-12)
    npt.assert_allclose((t1 + t2).to_dense_block(), d1 + d2, atol=1e-12)
    npt.assert_allclose((t1 - t2).to_dense_block(), d1 - d2, atol=1e-12)
    npt.assert_allclose((-t1).to_dense_block(), -d1, atol=1e-12)
    npt.assert_allclose((3 * t1).to_dense_block(), 3 * d1, atol=1e-12)
    npt.assert_allclose((t1 * 1.j).to_dense_block(), 1.j * d1, atol=1e-12)
    npt.assert_allclose((t1 / 2).to_dense_block(), d1 / 2, atol=1e-12)
    assert (1.j * t1).dtype == Dtype.complex128
    assert (2 * t1).dtype == Dtype.float64
    assert +t1 is t1
    with pytest.raises(ValueError):
        _ = t1 / 0

    y = t2.copy()
    tensors.iadd(y, 0.5, t1, 2.)
    npt.assert_allclose(y.to_dense_block(), 0.5 * d2 + 2. * d1, atol=1e-12)
    y = t2.copy()
    tensors.axpy(-1., t1, y)
    npt.assert_allclose(y.to_dense_block(), d2 - d1, atol=1e-12)
    y = t1.copy()
    tensors.iscale(y, y, 3.)
    npt.assert_allclose(y.to_dense_block(), 3 * d1, atol=1e-12)
    npt.assert_allclose(t1.to_dense_block(), d1)  # copy is independent


def test_inplace_operations_do_not_partially_commit(make_tensor):
    y = make_tensor(dtype=Dtype.float64)
    x = TensorMap.random_normal(y.codomain, y.domain, dtype=Dtype.complex128)
    before = y.copy()
    # real tensor can not hold a complex result
    with pytest.raises(TypeError):
        tensors.iadd(y, 1., y, 1.j)
    with pytest.raises(TypeError):
        tensors.iadd(y, 1., x, 1.)
    with pytest.raises(TypeError):
        tensors.iscale(y, y, 2.j)
    assert y == before
    # mismatched spaces
    other = TensorMap.zeros(y.domain, y.codomain)
    if other.codomain != y.codomain:
        with pytest.raises(SpaceMismatch):
            tensors.iadd(y, 1., other, 1.)
    with pytest.raises(SpaceMismatch):
        tensors.iadd(y, 1., TensorMap.zeros(y.codomain.spaces[:1], y.domain), 1.)
    assert y == before


def test_compose(make_tensor, make_space, np_random):
    t1 = make_tensor(codomain=2, domain=2)
    X = make_space()
    t2 = TensorMap.random_normal(t1.domain, [X], rng=np_random)
    res = tensors.compose(t1, t2)
    res.test_sanity()
    assert res.codomain == t1.codomain
    assert res.domain == t2.domain
    expect = np.tensordot(t1.to_dense_block(), t2.to_dense_block(), axes=2)
    npt.assert_allclose(res.to_dense_block(), expect, atol=1e-12)
    npt.assert_allclose((t1 @ t2).to_dense_block(), expect, atol=1e-12)
    with pytest.raises(SpaceMismatch):
        tensors.compose(t2, t1)


def test_compose_associativity(make_space, np_random):
    A, B, C, D = [make_space() for _ in range(4)]
    t1 = TensorMap.random_normal([A], [B, C], rng=np_random)
    t2 = TensorMap.random_normal([B, C], [D], rng=np_random)
    t3 = TensorMap.random_normal([D], [A, B], rng=np_random)
    left = tensors.compose(tensors.compose(t1, t2), t3)
    right = tensors.compose(t1, tensors.compose(t2, t3))
    assert tensors.almost_equal(left, right, atol=1e-12)


def test_adjoint(make_tensor):
    t = make_tensor(dtype=Dtype.complex128)
    dense = t.to_dense_block()
    a = tensors.adjoint(t)
    assert isinstance(a, AdjointTensorMap)
    assert a.is_attached
    a.test_sanity()
    assert a.codomain == t.domain
    assert a.domain == t.codomain
    npt.assert_allclose(a.to_dense_block(), dagger(t, dense), atol=1e-12)
    for (c, b), (c2, b2) in zip(t.blocks(), a.blocks()):
        npt.assert_array_equal(c, c2)
        npt.assert_array_equal(b2, np.conj(b.T))
    assert tensors.adjoint(a) is t
    assert t.adjoint() is not t
    npt.assert_allclose(tensors.norm(a), tensors.norm(t))
    npt.assert_allclose(tensors.inner(a, a), np.conj(tensors.inner(t, t)))


def test_adjoint_copy_on_write(make_tensor):
    t = make_tensor()
    before = t.copy()
    a = tensors.adjoint(t)
    # changes of the parent are visible through an attached view
    c = t.sectors[0]
    old = t.block(c)[0, 0]
    t.block(c)[0, 0] = old + 1.
    assert a.block(c)[0, 0] == t.block(c)[0, 0]
    t.block(c)[0, 0] = old
    # an in-place operation detaches the view, the parent is not modified
    tensors.iscale(a, a, 2.)
    assert not a.is_attached
    a.test_sanity()
    assert t == before
    npt.assert_allclose(a.to_dense_block(), 2 * dagger(t, t.to_dense_block()), atol=1e-12)
    # from now on, changes of the parent are not visible
    t.block(c)[0, 0] += 1.
    npt.assert_allclose(a.block(c), 2 * np.conj(before.block(c).T))
    # materialize
    b = tensors.adjoint(t)
    b.materialize()
    assert not b.is_attached
    assert tensors.adjoint(b) is not t


def test_adjoint_of_generic_space_fails():
    V = ElementarySpace(u1_symmetry, [[-1], [1]], [1, 2], space_style=SpaceStyle.generic)
    t = TensorMap.from_eye([V])
    assert not t.is_euclidean
    with pytest.raises(NotAnInnerProductSpace):
        tensors.adjoint(t)
    with pytest.raises(NotAnInnerProductSpace):
        tensors.norm(t)
    with pytest.raises(NotAnInnerProductSpace):
        tensors.inner(t, t)
    assert tensors.trace(t) == 3.


def test_subblocks_abelian():
    V = ElementarySpace(u1_symmetry, [[-1], [1]], [1, 2])
    t = TensorMap.random_uniform([V, V], [V, V])
    dense = t.to_dense_block()
    # internal order: sector -1 is index 0, sector 1 are indices 1, 2
    sub = t[[[1], [-1]], [[-1], [1]]]
    npt.assert_array_equal(sub, dense[1:3, 0:1, 0:1, 1:3])
    sub = t[[[1], [1]], [[1], [1]]]
    assert sub.shape == (2, 2, 2, 2)
    npt.assert_array_equal(sub, dense[1:3, 1:3, 1:3, 1:3])
    # tree pair access gives the same view
    tree_1, = fusion_trees(u1_symmetry, [[1], [-1]], np.array([0]))
    tree_2, = fusion_trees(u1_symmetry, [[-1], [1]], np.array([0]))
    npt.assert_array_equal(t[tree_1, tree_2], dense[1:3, 0:1, 0:1, 1:3])
    t[tree_1, tree_2][0, 0, 0, 0] = 5.
    assert t.to_dense_block()[1, 0, 0, 1] == 5.

    print('errors')
    with pytest.raises(NoSuchSector):
        t[[[1], [3]], [[1], [1]]]  # 3 is not a sector of V
    with pytest.raises(NoSuchSector):
        t[[[1], [1]], [[-1], [-1]]]  # no common coupled sector
    tree_3, = fusion_trees(u1_symmetry, [[1], [1]], np.array([2]))
    with pytest.raises(MismatchedCoupledSector):
        t.subblock(tree_1, tree_3)
    with pytest.raises(SymmetryError):
        t[()]
    with pytest.raises(IndexError):
        t[0]
    with pytest.raises(TypeError):
        t[()] = 0


def test_subblocks_su2():
    spin_half = ElementarySpace(su2_symmetry, [[1]], [2])
    t = TensorMap.random_uniform([spin_half, spin_half], [spin_half, spin_half])
    t.test_sanity()
    # two pairs of trees (singlet and triplet channel) have the same uncoupled sectors
    with pytest.raises(ValueError):
        t[[[1], [1]], [[1], [1]]]
    for c in t.sectors:
        for tree_1 in fusion_trees(su2_symmetry, [[1], [1]], c):
            for tree_2 in fusion_trees(su2_symmetry, [[1], [1]], c):
                sub = t[tree_1, tree_2]
                assert sub.shape == (2, 2, 2, 2)
    # a single leg has a unique tree
    t = TensorMap.random_uniform([spin_half], [spin_half])
    assert t[[[1]], [[1]]].shape == (2, 2)


def test_constructors(make_tensor, symmetry):
    t = make_tensor()
    z = TensorMap.zeros(t.codomain, t.domain)
    z.test_sanity()
    assert tensors.norm(z) == 0.
    npt.assert_array_equal(z.sectors, t.sectors)

    f = TensorMap.from_block_func(np.ones, t.codomain, t.domain)
    f.test_sanity()
    assert all(np.all(b == 1.) for b in f.data.block_list)

    g = TensorMap.from_sector_block_func(lambda shape, c: np.full(shape, float(c[0])),
                                         t.codomain, t.domain)
    for c, b in g.blocks():
        assert np.all(b == c[0])

    blocks = {tuple(c): np.ones(b.shape) for c, b in t.blocks()}
    h = TensorMap.from_sector_dict(blocks, t.codomain, t.domain)
    assert tensors.almost_equal(h, f)
    with pytest.raises(SpaceMismatch):
        bad_blocks = {k: np.ones((v.shape[0], v.shape[1] + 1)) for k, v in blocks.items()}
        TensorMap.from_sector_dict(bad_blocks, t.codomain, t.domain)
    with pytest.raises(ValueError):
        TensorMap.from_block_func(lambda shape: np.ones((shape[0] + 1, shape[1])),
                                  t.codomain, t.domain)

    eye = TensorMap.from_eye(t.codomain)
    eye.test_sanity()
    assert eye.is_endomorphism
    D = int(np.prod(t.codomain.dims))
    npt.assert_allclose(eye.to_dense_block().reshape(D, D), np.eye(D), atol=1e-12)
    npt.assert_allclose(tensors.trace(eye), D)


def test_from_sector_dict_unknown_sector():
    V = ElementarySpace(u1_symmetry, [[0], [1]], [1, 1])
    W = ElementarySpace(u1_symmetry, [[1], [2]], [1, 1])
    with pytest.raises(NoSuchSector):
        TensorMap.from_sector_dict({2: np.ones((1, 1))}, [V], [W])
    t = TensorMap.from_sector_dict({1: 2 * np.ones((1, 1))}, [V], [W])
    npt.assert_array_equal(t.to_dense_block(), [[0., 0.], [2., 0.]])
    with pytest.raises(NoSuchSector):
        t.block([0])


def test_invalid_construction():
    V = ElementarySpace(u1_symmetry, [[0], [1]], [1, 1])
    W = ElementarySpace(z2_symmetry, [[0], [1]], [1, 1])
    with pytest.raises(SpaceMismatch):
        TensorMap.zeros([V], [W])
    with pytest.raises(ValueError):
        TensorMap.zeros([], [])
    t = TensorMap.zeros([V], [V])
    with pytest.raises(TypeError):
        TensorMap(np.zeros((2, 2)), [V], [V])
    bool_data = t.data.copy()
    bool_data.replace_blocks([np.zeros((1, 1), bool)] * 2, Dtype.bool)
    with pytest.raises(TypeError):
        TensorMap(bool_data, [V], [V])
    with pytest.raises(SpaceMismatch):
        TensorMap(t.data.copy(), [V], [V.dual])


def test_empty_codomain(symmetry):
    V = ElementarySpace(symmetry, symmetry.trivial_sector[None, :], [3])
    t = TensorMap.from_dense_block([1., 2., 3.], [], [V], symmetry=symmetry)
    t.test_sanity()
    assert t.num_codomain_legs == 0
    npt.assert_array_equal(t.to_dense_block(), [1., 2., 3.])
    npt.assert_allclose(tensors.norm(t), np.sqrt(14.))
    scalar = TensorMap.from_eye([], symmetry=symmetry)
    assert tensors.trace(scalar) == 1.


def test_repr(make_tensor):
    t = make_tensor()
    _ = repr(t)
    _ = repr(tensors.adjoint(t))
    assert 'TensorMap' in repr(t)


def test_equality(make_tensor):
    t = make_tensor()
    assert t == t.copy()
    t2 = t.copy()
    t2.data.block_list[0][:] += 1.
    assert t != t2
    assert t != TensorMap.zeros(t.codomain, t.domain)
