"""Provide test configuration shared by all tests.

=============================  ======================  ===========================================
Fixture                        Depends on / # cases    Description
=============================  ======================  ===========================================
np_random                      -                       A numpy random Generator. Use this for
                                                       reproducibility.
=============================  ======================  ===========================================

The fixtures for symmetries, spaces and tensors are in ``tests/linalg/conftest.py``.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import pytest


@pytest.fixture
def np_random() -> np.random.Generator:
    return np.random.default_rng(seed=12345)
