r"""(More) robust version of singular value decomposition.

Both :func:`numpy.linalg.svd` and :func:`scipy.linalg.svd` call the LAPACK function `#gesdd`
(where `#` depends on the data type) by default. It takes an iterative divide-and-conquer approach
which is usually much faster than the alternative `#gesvd`, but can fail to converge,
raising ``LinAlgError("SVD did not converge")``.

The function :func:`svd` has the call signature of scipy's svd and keeps calling the faster
`#gesdd`. But if that fails, it falls back to `#gesvd` and emits a warning.
The :class:`~blocktensors.linalg.backends.numpy.NumpyBlockBackend` uses it for the
``'robust'`` SVD algorithm.

Examples
--------
>>> from blocktensors.linalg.svd_robust import svd
>>> U, S, VT = svd([[1., 1.], [0., 1.]])
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import logging
import warnings

import numpy as np
import scipy.linalg

__all__ = ['svd']

logger = logging.getLogger(__name__)


def svd(a,
        full_matrices=True,
        compute_uv=True,
        overwrite_a=False,
        check_finite=True,
        lapack_driver='gesdd',
        warn=True):
    """Wrapper around :func:`scipy.linalg.svd` with `gesvd` backup plan.

    Parameters not described below are as in :func:`scipy.linalg.svd`

    Parameters
    ----------
    overwrite_a : bool
        Ignored (i.e. set to ``False``) if ``lapack_driver='gesdd'``, since the input is needed
        again for the backup. Otherwise described in :func:`scipy.linalg.svd`.
    lapack_driver : {'gesdd', 'gesvd'}, optional
        Whether to use the more efficient divide-and-conquer approach (``'gesdd'``)
        or general rectangular approach (``'gesvd'``) to compute the SVD.
        If ``'gesdd'`` fails, ``'gesvd'`` is used as backup.
    warn : bool
        Whether to create a warning when the SVD failed.

    Returns
    -------
    U, S, Vh : ndarray
        As described in doc-string of :func:`scipy.linalg.svd`.
        If ``'gesvd'`` fails as well, its ``LinAlgError`` is raised.
    """
    if lapack_driver not in ['gesdd', 'gesvd']:
        raise ValueError("invalid `lapack_driver`: " + str(lapack_driver))
    if lapack_driver == 'gesdd':
        try:
            return scipy.linalg.svd(a, full_matrices, compute_uv, False, check_finite)
        except np.linalg.LinAlgError:
            # 'gesdd' failed to converge, so we continue with the backup plan
            if warn:
                warnings.warn("SVD with lapack_driver 'gesdd' failed. Use backup 'gesvd'",
                              stacklevel=2)
            logger.debug("SVD with 'gesdd' failed for shape %r, retrying with 'gesvd'",
                         np.shape(a))
    return scipy.linalg.svd(a, full_matrices, compute_uv, overwrite_a, check_finite, 'gesvd')
