"""The :class:`Dtype` of tensor data and its relation to numpy dtypes."""
# Copyright (C) TeNPy Developers, GNU GPLv3
from __future__ import annotations

from enum import Enum
import numpy as np


__all__ = ['Dtype']


class Dtype(Enum):
    # value = num_bytes * 2 + int(not is_real)
    bool = 2
    float32 = 8
    complex64 = 9
    float64 = 16
    complex128 = 17

    @property
    def is_real(dtype):
        return dtype.value % 2 == 0

    @property
    def to_complex(dtype):
        if dtype.value == 2:
            raise ValueError('Dtype.bool can not be converted to complex')
        if dtype.value % 2 == 1:
            return dtype
        return Dtype(dtype.value + 1)

    @property
    def to_real(dtype):
        if dtype.value == 2:
            raise ValueError('Dtype.bool can not be converted to real')
        if dtype.value % 2 == 0:
            return dtype
        return Dtype(dtype.value - 1)

    @property
    def python_type(dtype):
        if dtype.value == 2:
            return bool
        if dtype.is_real:
            return float
        return complex

    @property
    def zero_scalar(dtype):
        return dtype.python_type(0)

    def __repr__(self) -> str:
        return f'Dtype.{self.name}'

    def common(*dtypes):
        res = Dtype(max(t.value for t in dtypes))
        if res.is_real:
            if not all(t.is_real for t in dtypes):
                return Dtype(res.value + 1)  # = res.to_complex
        return res

    def to_numpy_dtype(dtype):
        return _blocktensors_dtype_to_numpy[dtype]

    @classmethod
    def from_numpy_dtype(cls, dtype):
        return _numpy_dtype_to_blocktensors[np.dtype(dtype)]


_numpy_dtype_to_blocktensors = {
    np.dtype('float32'): Dtype.float32,
    np.dtype('float64'): Dtype.float64,
    np.dtype('complex64'): Dtype.complex64,
    np.dtype('complex128'): Dtype.complex128,
    np.dtype('bool'): Dtype.bool,
}


_blocktensors_dtype_to_numpy = {
    Dtype.float32: np.float32,
    Dtype.float64: np.float64,
    Dtype.complex64: np.complex64,
    Dtype.complex128: np.complex128,
    Dtype.bool: np.bool_,
    None: None,
}
