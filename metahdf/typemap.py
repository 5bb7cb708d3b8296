"""
HDF4 类型编码 ⇄ numpy dtype 对照表（只读，构建一次后按引用传递）
"""
from __future__ import annotations
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, FrozenSet

import numpy as np

from .config import HDFType
from .exceptions import TypeMappingError


@dataclass(frozen=True)
class TypeTable:
    to_dtype:   Mapping[int, np.dtype]
    to_code:    Mapping[np.dtype, int]
    narrowing:  Mapping[np.dtype, int]
    text_codes: FrozenSet[int]

    def dtype_for(self, code: int) -> np.dtype:
        try:
            return self.to_dtype[int(code)]
        except KeyError:
            raise TypeMappingError(f"HDF 类型编码 {code} 没有对应的 numpy 类型") from None

    def is_text(self, code: int) -> bool:
        return int(code) in self.text_codes

    def code_for(self, dtype) -> int:
        dtype = np.dtype(dtype)
        if dtype in self.to_code:
            return self.to_code[dtype]
        if dtype in self.narrowing:
            return self.narrowing[dtype]
        raise TypeMappingError(f"numpy 类型 {dtype} 在 HDF4 中没有对应编码")

    def prepare(self, data) -> tuple[int, np.ndarray]:
        """返回 (类型编码, 可直接交给底层库的数组)；int64/uint64 仅在取值不越界时收窄"""
        arr = np.asarray(data)
        code = self.code_for(arr.dtype)
        target = self.to_dtype[code]
        if arr.dtype in self.narrowing and arr.size:
            info = np.iinfo(target)
            if arr.min() < info.min or arr.max() > info.max:
                raise TypeMappingError(
                    f"{arr.dtype} 数据超出 {target} 取值范围，HDF4 不支持 64 位整数"
                )
        return code, arr.astype(target, copy=False)

    def conform(self, data, code: int) -> np.ndarray:
        """写入已有数据集：转成 code 对应的 dtype；跨类（浮点➜整数）或整数越界 ⇒ TypeMappingError"""
        arr = np.asarray(data)
        target = self.dtype_for(code)
        if target.kind in "iu" and arr.dtype.kind in "iu":
            info = np.iinfo(target)
            if arr.size and (arr.min() < info.min or arr.max() > info.max):
                raise TypeMappingError(f"{arr.dtype} 数据超出 {target} 取值范围")
        elif not np.can_cast(arr.dtype, target, casting="same_kind"):
            raise TypeMappingError(f"{arr.dtype} 数据不能写入 {target} 数据集")
        return arr.astype(target, copy=False)

    def coerce(self, value, code: int) -> np.ndarray:
        """标量或序列 ➜ 与 code 对应 dtype 的一维数组"""
        return np.atleast_1d(np.asarray(value).astype(self.dtype_for(code))).ravel()


def build_type_table() -> TypeTable:
    to_dtype = {
        HDFType.INT8:    np.dtype(np.int8),
        HDFType.UINT8:   np.dtype(np.uint8),
        HDFType.UCHAR8:  np.dtype(np.uint8),
        HDFType.CHAR8:   np.dtype(np.uint8),
        HDFType.INT16:   np.dtype(np.int16),
        HDFType.UINT16:  np.dtype(np.uint16),
        HDFType.INT32:   np.dtype(np.int32),
        HDFType.UINT32:  np.dtype(np.uint32),
        HDFType.FLOAT32: np.dtype(np.float32),
        HDFType.FLOAT64: np.dtype(np.float64),
    }
    to_code = {
        np.dtype(np.int8):    HDFType.INT8,
        np.dtype(np.uint8):   HDFType.UINT8,
        np.dtype(np.bool_):   HDFType.UINT8,
        np.dtype(np.int16):   HDFType.INT16,
        np.dtype(np.uint16):  HDFType.UINT16,
        np.dtype(np.int32):   HDFType.INT32,
        np.dtype(np.uint32):  HDFType.UINT32,
        np.dtype(np.float32): HDFType.FLOAT32,
        np.dtype(np.float64): HDFType.FLOAT64,
    }
    narrowing = {
        np.dtype(np.int64):  HDFType.INT32,
        np.dtype(np.uint64): HDFType.UINT32,
    }
    return TypeTable(
        to_dtype=MappingProxyType({int(k): v for k, v in to_dtype.items()}),
        to_code=MappingProxyType({k: int(v) for k, v in to_code.items()}),
        narrowing=MappingProxyType({k: int(v) for k, v in narrowing.items()}),
        text_codes=frozenset({int(HDFType.CHAR8)}),
    )


DEFAULT_TYPES = build_type_table()


def decode_text(raw, count: int) -> str:
    """逐个存储单元转成字符再拼接，只取前 count 个，不按 NUL 结尾截断"""
    if isinstance(raw, str):
        return raw[:count]
    if isinstance(raw, (bytes, bytearray)):
        return "".join(chr(b) for b in raw[:count])
    flat = np.atleast_1d(np.asarray(raw)).ravel()[:count]
    if flat.dtype.kind in "SU":
        return "".join(x.decode("latin-1") if isinstance(x, bytes) else str(x) for x in flat)
    return "".join(chr(int(b) & 0xFF) for b in flat)
