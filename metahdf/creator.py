"""
creator.py
首次写入未知名字 ➜ 新建 SDS（可选分块 + deflate 压缩），以及切片写入
"""
from __future__ import annotations
from typing import List, Optional, Sequence

import numpy as np
from pyhdf.error import HDF4Error
from .config import (
    COMP_CODE_DEFLATE,
    DEFAULT_MIN_CHUNK_SIZE,
    DEFAULT_TARGET_CHUNKS,
    DEFAULT_DEFLATE_LEVEL,
)
from .typemap import TypeTable, DEFAULT_TYPES
from .chunking import plan_chunks, ChunkPlan
from .chunkio import set_chunk, set_chunk_cache
from .catalog import Dataset, Dimension, read_dimensions
from .exceptions import WriteError, ChunkConfigError, ValidationError
from .utils import log, storage_order, to_storage


# ──────────────── 内部小工具 ──────────────────────────────────
def release_handle(sds, name: str):
    try:
        sds.endaccess()
    except HDF4Error as exc:
        log.warning("释放未完成的数据集 %s 失败: %s", name, exc)

def _configure_chunks(sds, plan: ChunkPlan, deflate_level: int):
    set_chunk(sds, plan.lengths, COMP_CODE_DEFLATE, deflate_level)
    set_chunk_cache(sds, plan.total, 0)


# ────────────────────────── 主入口 ───────────────────────────
def create_dataset(
    sd,
    name: str,
    data: np.ndarray,
    *,
    chunking: bool = True,
    types: TypeTable = DEFAULT_TYPES,
    min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE,
    target_chunks: int = DEFAULT_TARGET_CHUNKS,
    deflate_level: int = DEFAULT_DEFLATE_LEVEL,
) -> Dataset:
    """
    建立 SDS 并在写入任何数据之前配置分块。
    返回的 Dataset 只是“暂存”状态，由调用方在写入成功后登记进目录。
    分块配置失败 ⇒ 释放句柄并抛 ChunkConfigError。
    """
    if data.size == 0:
        raise ValidationError(f"不能用空数组创建数据集 {name!r}")
    code = types.code_for(data.dtype)
    shape = storage_order(data.shape)

    try:
        sds = sd.create(name, code, list(shape))
    except HDF4Error as exc:
        raise WriteError(f"创建数据集 {name!r} 失败: {exc}") from exc
    log.info("新建数据集 %s type=%d shape=%s", name, code, shape)

    if chunking:
        plan = plan_chunks(shape, min_chunk_size, target_chunks)
        log.debug("分块 %s: lengths=%s total=%d", name, plan.lengths, plan.total)
        try:
            _configure_chunks(sds, plan, deflate_level)
        except (HDF4Error, OSError) as exc:
            release_handle(sds, name)
            raise ChunkConfigError(f"数据集 {name!r} 分块配置失败: {exc}") from exc
        except Exception:
            release_handle(sds, name)
            raise

    return Dataset(name=name, index=-1, code=code, rank=len(shape), handle=sds)


def write_slab(sds, data: np.ndarray, start: Optional[Sequence[int]] = None):
    """写入整块或从 start（存储顺序）开始的切片，stride 恒为 1"""
    buf = to_storage(data)
    count = list(buf.shape)
    if start is None:
        start = [0] * buf.ndim
    elif len(start) != buf.ndim:
        raise ValidationError(f"start 长度 {len(start)} 与数据维数 {buf.ndim} 不符")
    try:
        sds.set(buf, list(start), count, [1] * buf.ndim)
    except HDF4Error as exc:
        raise WriteError(f"写入失败: {exc}") from exc


def describe_dims(sds, rank: int, dim_names: Optional[Sequence] = None) -> List[Dimension]:
    """按存储顺序设置维度名（None 跳过），再重新读取维度信息"""
    try:
        for j, dname in enumerate(dim_names or []):
            if j >= rank:
                raise ValidationError(f"维度名 {len(dim_names)} 个，多于数据维数 {rank}")
            if dname is not None:
                sds.dim(j).setname(str(dname))
        return read_dimensions(sds, rank)
    except HDF4Error as exc:
        raise WriteError(f"设置维度信息失败: {exc}") from exc
