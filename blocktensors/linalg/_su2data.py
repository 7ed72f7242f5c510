"""Compute symmetry data for SU(2)"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from __future__ import annotations
import numpy as np
from functools import lru_cache

from sympy import S as sympy_S
from sympy.physics.wigner import clebsch_gordan as sympy_cg

CACHE_SIZE = 10_000


def as_j(a: int):
    """Convert sector label to sympy symbol for the spin quantum number"""
    return sympy_S(a) / 2


@lru_cache(maxsize=CACHE_SIZE)
def fusion_tensor(a: int, b: int, c: int) -> np.ndarray:
    """The Clebsch-Gordan coefficients ``<j_a m_a j_b m_b | j_c m_c>`` as array [1, m_a, m_b, m_c].

    Note: we need to take hashable inputs to use cache. numpy arrays are not hashable.
    The basis of each sector is ordered by ascending ``m``.
    """
    dim_a = a + 1
    dim_b = b + 1
    dim_c = c + 1
    X = np.zeros((1, dim_a, dim_b, dim_c), dtype=np.float64)
    for k_a in range(dim_a):
        for k_b in range(dim_b):
            k_c = k_a + k_b - (a + b - c) // 2  # m_c = m_a + m_b, all other entries vanish
            if 0 <= k_c < dim_c:
                X[0, k_a, k_b, k_c] = clebsch_gordan(a, k_a, b, k_b, c, k_c)
    X.setflags(write=False)
    return X


@lru_cache(maxsize=CACHE_SIZE)
def Z_iso(a: int) -> np.ndarray:
    d_a = a + 1  # 2 j_a + 1
    Z = np.zeros((d_a, d_a), dtype=float)
    for k in range(d_a):  # m == -j + k == -a/2 + k
        # Z[k, -k] = Z_{m,-m} = (-1) ** (j - m)
        # (-1) ** (j - m) == 1 - 2 * (j - m) % 2 = 1 - 2 * (a - k) % 2
        Z[k, d_a - 1 - k] = 1 - 2 * np.mod(a - k, 2)
    Z.setflags(write=False)
    return Z


def clebsch_gordan(a: int, k_a: int, b: int, k_b: int, c: int, k_c: int) -> float:
    """The sectors are ``a == 2 * j_a``, and ``k_a = m_a + j_a = 0, 1, ..., 2 * j_a``"""
    j_a = as_j(a)
    j_b = as_j(b)
    j_c = as_j(c)
    m_a = k_a - j_a
    m_b = k_b - j_b
    m_c = k_c - j_c
    cg = sympy_cg(j_a, j_b, j_c, m_a, m_b, m_c)
    return float(cg.doit())
