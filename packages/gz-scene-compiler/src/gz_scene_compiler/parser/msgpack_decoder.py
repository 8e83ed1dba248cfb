# SPDX-License-Identifier: MIT
"""Wire frame decoding: msgpack with typed array extensions, or JSON text."""

from __future__ import annotations

import json
from typing import Any

import msgpack
import numpy as np

# Extension type codes used for typed arrays (heightmap samples, buffers)
EXT_UINT8_ARRAY = 0x12  # 18
EXT_INT32_ARRAY = 0x15  # 21
EXT_UINT32_ARRAY = 0x16  # 22
EXT_FLOAT32_ARRAY = 0x17  # 23
EXT_FLOAT64_ARRAY = 0x1A  # 26

_EXT_DTYPES = {
    EXT_UINT8_ARRAY: np.uint8,
    EXT_INT32_ARRAY: np.int32,
    EXT_UINT32_ARRAY: np.uint32,
    EXT_FLOAT32_ARRAY: np.float32,
    EXT_FLOAT64_ARRAY: np.float64,
}


def decode_typed_array(code: int, data: bytes) -> Any:
    """Decode a msgpack extension type to a numpy array."""
    dtype = _EXT_DTYPES.get(code)
    if dtype is None:
        # Return raw data for unknown extension types
        return data
    return np.frombuffer(data, dtype=dtype)


def ext_hook(code: int, data: bytes) -> Any:
    """Hook for handling msgpack extension types."""
    return decode_typed_array(code, data)


def decode_msgpack(data: bytes) -> Any:
    """Decode msgpack data with support for typed arrays.

    Args:
        data: Raw msgpack bytes

    Returns:
        Decoded Python object (dict, list, etc.)
    """
    return msgpack.unpackb(data, ext_hook=ext_hook, raw=False, strict_map_key=False)


def decode_frame(frame: bytes | str) -> Any:
    """Decode one transport frame.

    Text frames are JSON; binary frames are msgpack.
    """
    if isinstance(frame, str):
        return json.loads(frame)
    return decode_msgpack(frame)


def numpy_to_list(obj: Any) -> Any:
    """Recursively convert numpy arrays to lists for JSON serialization."""
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, dict):
        return {k: numpy_to_list(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [numpy_to_list(item) for item in obj]
    else:
        return obj
