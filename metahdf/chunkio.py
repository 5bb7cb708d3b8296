"""
pyhdf 没有封装的 SD 分块接口：SDsetchunk / SDsetchunkcache / SDgetchunkinfo
经 ctypes 直接调用 pyhdf 已经加载的 libmfhdf（SDS 句柄取自 sds._id）
"""
from __future__ import annotations
import ctypes
import ctypes.util
import functools
import glob
import os
from typing import List, Optional, Sequence, Tuple

import pyhdf
from pyhdf import _hdfext
from pyhdf.error import HDF4Error

from .config import (
    MAX_VAR_DIMS,
    HDF_CHUNK,
    HDF_COMP,
    COMP_CODE_NONE,
    COMP_CODE_DEFLATE,
    COMP_MODEL_STDIO,
)
from .utils import log

FAIL = -1


class ChunkDef(ctypes.Structure):
    """HDF_CHUNK_DEF 联合体的 comp 分支；各分支都以 chunk_lengths 开头"""
    _fields_ = [
        ("chunk_lengths", ctypes.c_int32 * MAX_VAR_DIMS),
        ("comp_type",     ctypes.c_int32),
        ("model_type",    ctypes.c_int32),
        ("cinfo",         ctypes.c_int32 * 5),   # comp_info；deflate 只用 cinfo[0] = level
        ("minfo",         ctypes.c_int32),       # model_info
    ]


# ─── 找库 ────────────────────────────────────────────────────────────────
def _candidates() -> List[str]:
    # wheel 安装：auditwheel/delocate 把 libmfhdf 放在 site-packages/pyhdf.libs
    site = os.path.dirname(os.path.dirname(pyhdf.__file__))
    files = sorted(glob.glob(os.path.join(site, "pyhdf.libs", "*mfhdf*")))
    # 扩展模块本身：dlsym 会沿它的依赖查找（conda / 源码编译）
    files.append(_hdfext.__file__)
    name = ctypes.util.find_library("mfhdf")
    if name:
        files.append(name)
    return files


def _declare(lib):
    lib.SDsetchunk.argtypes = [ctypes.c_int32, ChunkDef, ctypes.c_int32]
    lib.SDsetchunk.restype = ctypes.c_int
    lib.SDsetchunkcache.argtypes = [ctypes.c_int32, ctypes.c_int32, ctypes.c_int32]
    lib.SDsetchunkcache.restype = ctypes.c_int
    lib.SDgetchunkinfo.argtypes = [
        ctypes.c_int32, ctypes.POINTER(ChunkDef), ctypes.POINTER(ctypes.c_int32),
    ]
    lib.SDgetchunkinfo.restype = ctypes.c_int
    return lib


@functools.lru_cache(maxsize=None)
def _library():
    tried = []
    for filename in _candidates():
        try:
            lib = ctypes.CDLL(filename)
        except OSError as exc:
            tried.append(f"{filename} ({exc})")
            continue
        if hasattr(lib, "SDsetchunk"):
            log.debug("分块接口取自 %s", filename)
            return _declare(lib)
        tried.append(f"{filename} (没有 SDsetchunk)")
    raise OSError("找不到导出 SDsetchunk 的 libmfhdf: " + ("; ".join(tried) or "无候选"))


# ─── 对外 ────────────────────────────────────────────────────────────────
def set_chunk(sds, lengths: Sequence[int], comp_type: int = COMP_CODE_DEFLATE,
              level: int = 6):
    """分块（存储顺序的 chunk 长度）+ 可选 deflate 压缩；必须在写入数据之前调用"""
    rank = len(lengths)
    cdef = ChunkDef()
    cdef.chunk_lengths[:rank] = [int(n) for n in lengths]
    flags = HDF_CHUNK
    if comp_type != COMP_CODE_NONE:
        cdef.comp_type = comp_type
        cdef.model_type = COMP_MODEL_STDIO
        cdef.cinfo[0] = int(level)
        flags = HDF_CHUNK | HDF_COMP
    if _library().SDsetchunk(sds._id, cdef, flags) == FAIL:
        raise HDF4Error(f"SDsetchunk : cannot execute (lengths={list(lengths)})")


def set_chunk_cache(sds, maxcache: int, flags: int = 0) -> int:
    status = _library().SDsetchunkcache(sds._id, int(maxcache), flags)
    if status == FAIL:
        raise HDF4Error(f"SDsetchunkcache : cannot execute (maxcache={maxcache})")
    return status


def get_chunk_info(sds) -> Tuple[Optional[List[int]], int]:
    """(chunk 长度或 None, flags)；未分块的数据集 flags 为 HDF_NONE"""
    rank = sds.info()[1]
    cdef = ChunkDef()
    flags = ctypes.c_int32(0)
    if _library().SDgetchunkinfo(sds._id, ctypes.pointer(cdef), ctypes.pointer(flags)) == FAIL:
        raise HDF4Error("SDgetchunkinfo : cannot execute")
    if not flags.value & HDF_CHUNK:
        return None, flags.value
    return list(cdef.chunk_lengths[:rank]), flags.value
