"""
新建数据集的分块几何：每维默认切 10 块，但块长不小于 100
"""
from __future__ import annotations
from dataclasses import dataclass
from math import prod
from typing import Sequence, Tuple

from .config import DEFAULT_MIN_CHUNK_SIZE, DEFAULT_TARGET_CHUNKS
from .exceptions import ValidationError


@dataclass(frozen=True)
class ChunkPlan:
    lengths: Tuple[int, ...]    # 每维块长（与输入 shape 同序）
    counts:  Tuple[int, ...]    # 每维块数

    @property
    def total(self) -> int:
        return prod(self.counts)


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


def plan_chunks(
    shape: Sequence[int],
    min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE,
    target_chunks: int = DEFAULT_TARGET_CHUNKS,
) -> ChunkPlan:
    if min_chunk_size < 1 or target_chunks < 1:
        raise ValidationError(
            f"min_chunk_size={min_chunk_size}, target_chunks={target_chunks} 必须为正整数"
        )
    lengths, counts = [], []
    for extent in shape:
        extent = int(extent)
        if extent < 1:
            raise ValidationError(f"维度长度 {extent} 无法分块")
        length = _ceil_div(extent, target_chunks)
        count = target_chunks
        if length < min_chunk_size:
            length = min_chunk_size
            count = _ceil_div(extent, length)
        lengths.append(length)
        counts.append(count)
    return ChunkPlan(tuple(lengths), tuple(counts))
