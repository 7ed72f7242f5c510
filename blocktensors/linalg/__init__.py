r"""Block-sparse tensor maps and their linear algebra.

The central object is the :class:`~blocktensors.linalg.tensors.TensorMap`, a linear map between
two :class:`~blocktensors.linalg.spaces.ProductSpace` s which commutes with a symmetry and is
therefore stored as one dense block per coupled sector.

.. rubric:: Submodules

.. autosummary::
    :toctree: .

    symmetries
    spaces
    trees
    dtypes
    errors
    blocks
    backends
    tensors
    permutations
    truncation
    factorizations
    svd_robust
    dummy_config
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from . import (backends, blocks, dtypes, dummy_config, errors, factorizations, permutations,
               spaces, svd_robust, symmetries, tensors, trees, truncation)
from .blocks import *
from .dtypes import *
from .errors import *
from .factorizations import *
from .permutations import *
from .spaces import *
from .symmetries import *
from .tensors import *
from .trees import *
from .truncation import *

__all__ = ['backends', 'blocks', 'dtypes', 'dummy_config', 'errors', 'factorizations',
           'permutations', 'spaces', 'svd_robust', 'symmetries', 'tensors', 'trees', 'truncation',
           *blocks.__all__,
           *dtypes.__all__,
           *errors.__all__,
           *factorizations.__all__,
           *permutations.__all__,
           *spaces.__all__,
           *symmetries.__all__,
           *tensors.__all__,
           *trees.__all__,
           *truncation.__all__,
           ]
