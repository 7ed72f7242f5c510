"""blocktensors - block-sparse tensor maps between symmetric vector spaces

A tensor map is a linear map between tensor products of vector spaces which are graded by the
sectors of a symmetry. Only the blocks allowed by the symmetry are stored, one dense matrix per
coupled sector. On top of this storage, the package provides the linear algebra of tensor maps,
the re-partitioning of their legs and blockwise matrix factorizations with truncation.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3
# This file marks this directory as a python package.

# Note: all external packages that are imported should be `del`-ed at the end of the file!
import logging

# main logger for blocktensors
logger = logging.getLogger(__name__)

# load and provide sub packages on first input
# note that the order matters!
from . import tools
from . import linalg
from . import version

# provide the more important functions and classes directly from the main namespace:
from .linalg.symmetries import (no_symmetry, u1_symmetry, z2_symmetry, z3_symmetry, z4_symmetry,
                                su2_symmetry, NoSymmetry, U1Symmetry, ZNSymmetry, SU2Symmetry)
from .linalg.spaces import ElementarySpace, ProductSpace, SpaceStyle
from .linalg.tensors import (TensorMap, AdjointTensorMap, iadd, iscale, axpy, scalar_multiply,
                             linear_combination, compose, adjoint, norm, trace, inner,
                             almost_equal)
from .linalg.permutations import permute, inverse_partition
from .linalg.truncation import (NoTruncation, ErrorTolerance, MaxTotalDim, MaxSpace, ValueFloor,
                                TruncationError)
from .linalg.factorizations import (svd, tsvd, leftorth, rightorth, leftnull, rightnull, eigh,
                                    eig, eigen)
from .linalg.errors import (BlockTensorError, SpaceMismatch, MismatchedSpace, InvalidPermutation,
                            NoSuchSector, MismatchedCoupledSector, NotAnInnerProductSpace,
                            NumericalFailure)
from .tools.misc import setup_logging
from .tools.params import Config, asConfig

#: hard-coded version string
__version__ = version.version

#: full version from git description, and numpy/scipy/sympy/python versions
__full_version__ = version.full_version

__all__ = [
    # subpackages
    'linalg', 'tools', 'version',
    # from blocktensors.linalg
    'no_symmetry', 'u1_symmetry', 'z2_symmetry', 'z3_symmetry', 'z4_symmetry', 'su2_symmetry',
    'NoSymmetry', 'U1Symmetry', 'ZNSymmetry', 'SU2Symmetry', 'ElementarySpace', 'ProductSpace',
    'SpaceStyle', 'TensorMap', 'AdjointTensorMap', 'iadd', 'iscale', 'axpy', 'scalar_multiply',
    'linear_combination', 'compose', 'adjoint', 'norm', 'trace', 'inner', 'almost_equal',
    'permute', 'inverse_partition', 'NoTruncation', 'ErrorTolerance', 'MaxTotalDim', 'MaxSpace',
    'ValueFloor', 'TruncationError', 'svd', 'tsvd', 'leftorth', 'rightorth', 'leftnull',
    'rightnull', 'eigh', 'eig', 'eigen', 'BlockTensorError', 'SpaceMismatch', 'MismatchedSpace',
    'InvalidPermutation', 'NoSuchSector', 'MismatchedCoupledSector', 'NotAnInnerProductSpace',
    'NumericalFailure',
    # from blocktensors.tools
    'setup_logging', 'Config', 'asConfig',
    # from blocktensors.__init__, i.e. defined below
    'show_config',
]


def show_config():
    """Print information about the version of blocktensors, numpy, scipy and sympy."""
    print(version.version_summary)


del logging
