"""
打开 HDF4 文件（SD 接口），读写数据集与属性
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

import numpy as np
import xarray as xr
from pyhdf.error import HDF4Error
from pyhdf.SD import SD, SDC

from .config import (
    AccessMode,
    HDFType,
    FILL_VALUE,
    VALID_RANGE,
    SCALE_FACTOR,
    SCALE_FACTOR_ERR,
    ADD_OFFSET,
    ADD_OFFSET_ERR,
    CALIBRATED_NT,
    CALIBRATION_ATTRS,
    DEFAULT_MIN_CHUNK_SIZE,
    DEFAULT_TARGET_CHUNKS,
    DEFAULT_DEFLATE_LEVEL,
    MAX_DEFLATE_LEVEL,
)
from .typemap import TypeTable, DEFAULT_TYPES
from .catalog import Attribute, Catalog, Dataset, build_catalog
from .creator import create_dataset, write_slab, describe_dims, release_handle
from .chunkio import get_chunk_info
from .exceptions import (
    OpenError,
    ClosedFileError,
    DatasetNotFoundError,
    AttributeNotFoundError,
    ValidationError,
    WriteError,
    ReadError,
    ReleaseError,
)
from .utils import log, parse_target, array_order, from_storage


class Calibration(NamedTuple):
    scale_factor:     float
    scale_factor_err: float
    add_offset:       float
    add_offset_err:   float
    calibrated_nt:    int


def _sd_mode(mode: AccessMode) -> int:
    if mode & AccessMode.CREATE:
        return SDC.WRITE | SDC.CREATE | SDC.TRUNC
    if mode & AccessMode.WRITE:
        return SDC.WRITE
    return SDC.READ


def open_file(target, mode: Optional[AccessMode] = None, **options) -> "HDFFile":
    """target 可带前缀："+f.hdf" 读写，"-f.hdf" 新建；显式 mode 优先"""
    path, prefixed = parse_target(target)
    return HDFFile(path, mode if mode is not None else prefixed, **options)

# ────────────────────────────────────────────────────────────────────────
class HDFFile:
    def __init__(
        self,
        path: str | Path,
        mode: AccessMode = AccessMode.READ,
        *,
        chunking: bool = True,
        types: TypeTable = DEFAULT_TYPES,
        min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE,
        target_chunks: int = DEFAULT_TARGET_CHUNKS,
        deflate_level: int = DEFAULT_DEFLATE_LEVEL,
    ):
        self.path  = Path(path)
        self.types = types
        self.min_chunk_size = min_chunk_size
        self.target_chunks  = target_chunks
        self.deflate_level  = deflate_level
        self._chunking = bool(chunking)
        self._sd = None

        mode = AccessMode(mode)
        if mode & AccessMode.CREATE:
            log.info("新建 HDF 文件 %s", self.path)
            try:
                SD(str(self.path), _sd_mode(mode)).end()
            except HDF4Error as exc:
                raise OpenError(f"无法创建 {self.path}: {exc}") from exc
            mode = AccessMode.RDWR
        self.mode = mode

        try:
            self._sd = SD(str(self.path), _sd_mode(mode))
        except HDF4Error as exc:
            raise OpenError(f"无法打开 {self.path}: {exc}") from exc

        try:
            self.catalog: Catalog = build_catalog(self._sd, types)
        except Exception:
            self._sd.end()
            self._sd = None
            raise
        log.info(
            "📂 打开 %s (%d 个数据集, %d 个全局属性)",
            self.path, len(self.catalog.datasets), len(self.catalog.attrs),
        )

    # ---------- 上下文 ----------
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def __repr__(self):
        state = "closed" if self.closed else self.mode.name
        return f"HDFFile({str(self.path)!r}, {state})"

    @property
    def closed(self) -> bool:
        return self._sd is None

    @property
    def chunking(self) -> bool:
        """只影响新建数据集（write 首次写入）"""
        return self._chunking

    @chunking.setter
    def chunking(self, value: bool):
        self._chunking = bool(value)

    # ---------- 内部 ----------
    def _check_open(self):
        if self.closed:
            raise ClosedFileError(f"{self.path} 已关闭")

    def _dataset(self, name: str) -> Dataset:
        self._check_open()
        ds = self.catalog.datasets.get(name)
        if ds is None:
            raise DatasetNotFoundError(f"数据集 {name!r} 不存在")
        return ds

    def _attrs(self, dataset: Optional[str]) -> Dict[str, Attribute]:
        self._check_open()
        if dataset is None:
            return self.catalog.attrs
        return self._dataset(dataset).attrs

    def _attr(self, name: str, dataset: Optional[str] = None) -> Attribute:
        attrs = self._attrs(dataset)
        if name not in attrs:
            where = f"数据集 {dataset!r}" if dataset is not None else "全局"
            raise AttributeNotFoundError(f"{where} 属性 {name!r} 不存在")
        return attrs[name]

    def _owner(self, dataset: Optional[str]):
        return self._sd if dataset is None else self._dataset(dataset).handle

    # ---------- 列表 ----------
    def dataset_names(self) -> List[str]:
        self._check_open()
        return list(self.catalog.datasets.keys())

    def attribute_names(self, dataset: Optional[str] = None) -> List[str]:
        return list(self._attrs(dataset).keys())

    # ---------- 读取元数据 ----------
    def get_attribute(self, name: str, dataset: Optional[str] = None) -> Any:
        return self._attr(name, dataset).value

    def get_fill_value(self, name: str):
        return self._attr(FILL_VALUE, name).value[0]

    def get_range(self, name: str) -> np.ndarray:
        return self._attr(VALID_RANGE, name).value

    def get_scale_factor(self, name: str):
        return self._attr(SCALE_FACTOR, name).value[0]

    def get_calibration(self, name: str) -> Calibration:
        self._attr(SCALE_FACTOR, name)
        values = []
        for key in CALIBRATION_ATTRS:
            attr = self._attrs(name).get(key)
            if attr is None:
                values.append(None)
            elif attr.is_text:
                values.append(attr.value)
            else:
                values.append(attr.value[0].item())
        return Calibration(*values)

    def get_dim_sizes(self, name: str) -> List[int]:
        """声明尺寸（存储顺序，unlimited 维为 0）"""
        return list(self._dataset(name).shape)

    def get_unlimited_dim_sizes(self, name: str) -> List[int]:
        """当前尺寸：unlimited 维即时查询实际长度"""
        ds = self._dataset(name)
        try:
            return list(ds.current_shape())
        except HDF4Error as exc:
            raise ReadError(f"查询 {name!r} 当前尺寸失败: {exc}") from exc

    def get_dim_names(self, name: str) -> List[Optional[str]]:
        return [d.name for d in self._dataset(name).dims]

    def get_chunk_lengths(self, name: str) -> Optional[List[int]]:
        """chunk 长度（存储顺序）；未分块返回 None"""
        ds = self._dataset(name)
        try:
            lengths, _flags = get_chunk_info(ds.handle)
        except (HDF4Error, OSError) as exc:
            raise ReadError(f"查询 {name!r} 分块信息失败: {exc}") from exc
        return lengths

    # ---------- 读取数据 ----------
    def read(
        self,
        name: str,
        start: Optional[Sequence[int]] = None,
        count: Optional[Sequence[int]] = None,
        stride: Optional[Sequence[int]] = None,
    ) -> np.ndarray:
        """
        start / count / stride 为存储顺序；返回数组的维度顺序与之相反。
        省略 count 时读到每维末尾（unlimited 维用实际长度）。
        """
        ds = self._dataset(name)
        dtype = ds.dtype(self.types)
        start = [0] * ds.rank if start is None else list(start)
        stride = [1] * ds.rank if stride is None else list(stride)
        if count is None:
            sizes = self.get_unlimited_dim_sizes(name)
            if len(start) == len(stride) == ds.rank:
                count = [-(-(n - s) // st) for n, s, st in zip(sizes, start, stride)]
            else:
                count = sizes
        for label, seq in (("start", start), ("count", count), ("stride", stride)):
            if len(seq) != ds.rank:
                raise ValidationError(f"{label} 长度 {len(seq)} 与数据集维数 {ds.rank} 不符")

        try:
            buf = ds.handle.get(list(start), list(count), list(stride))
        except HDF4Error as exc:
            raise ReadError(f"读取 {name!r} 失败: {exc}") from exc
        buf = np.asarray(buf)
        if buf.dtype.kind not in "SU":
            buf = buf.astype(dtype, copy=False)
        return from_storage(buf.reshape(tuple(count)))

    # ---------- 写入数据 ----------
    def write(
        self,
        name: str,
        data,
        dim_names: Optional[Sequence[Optional[str]]] = None,
        start: Optional[Sequence[int]] = None,
    ) -> Dataset:
        """
        未知名字 ➜ 新建数据集（类型、形状取自 data），chunking 开启时先配置分块；
        已有数据集 ➜ 整体或从 start 开始写入。
        目录只在全部底层调用成功后才更新。
        """
        self._check_open()
        ds = self.catalog.datasets.get(name)
        created = ds is None

        if created:
            _code, arr = self.types.prepare(data)
            ds = create_dataset(
                self._sd, name, arr,
                chunking=self._chunking,
                types=self.types,
                min_chunk_size=self.min_chunk_size,
                target_chunks=self.target_chunks,
                deflate_level=self.deflate_level,
            )
        else:
            arr = np.asarray(data)
            if arr.ndim != ds.rank:
                raise ValidationError(f"数据维数 {arr.ndim} 与数据集 {name!r} 维数 {ds.rank} 不符")
            arr = self.types.conform(arr, ds.code)

        try:
            write_slab(ds.handle, arr, start)
            dims = describe_dims(ds.handle, ds.rank, dim_names)
        except Exception:
            if created:
                release_handle(ds.handle, name)
            raise

        ds.dims = dims
        if created:
            ds.index = self._index_of(name)
            self.catalog.datasets[name] = ds
            log.info("✅ 写入 %s %s", name, arr.shape)
        return ds

    def _index_of(self, name: str) -> int:
        try:
            return self._sd.nametoindex(name)
        except HDF4Error:
            return len(self.catalog.datasets)

    # ---------- 设置属性（先调用底层，成功后再登记） ----------
    def _commit(self, attrs: Dict[str, Attribute], *staged: Attribute):
        for attr in staged:
            attrs[attr.name] = attr

    def set_fill_value(self, name: str, value):
        ds = self._dataset(name)
        fill = self.types.coerce(value, ds.code)
        try:
            ds.handle.setfillvalue(fill[0].item())
        except HDF4Error as exc:
            raise WriteError(f"设置 {name!r} 填充值失败: {exc}") from exc
        self._commit(ds.attrs, Attribute(FILL_VALUE, ds.code, 1, fill))

    def set_range(self, name: str, valid_range: Sequence):
        ds = self._dataset(name)
        if len(valid_range) != 2:
            raise ValidationError("valid_range 必须是 [min, max]")
        rng = self.types.coerce(valid_range, ds.code)
        try:
            ds.handle.setrange(rng[0].item(), rng[1].item())
        except HDF4Error as exc:
            raise WriteError(f"设置 {name!r} 有效范围失败: {exc}") from exc
        self._commit(ds.attrs, Attribute(VALID_RANGE, ds.code, 2, rng))

    def set_calibration(
        self,
        name: str,
        scale_factor: float = 1.0,
        scale_factor_err: float = 0.0,
        add_offset: float = 0.0,
        add_offset_err: float = 0.0,
        calibrated_nt: int = HDFType.FLOAT64,
    ):
        ds = self._dataset(name)
        cal = Calibration(
            float(scale_factor), float(scale_factor_err),
            float(add_offset), float(add_offset_err), int(calibrated_nt),
        )
        try:
            ds.handle.setcal(*cal)
        except HDF4Error as exc:
            raise WriteError(f"设置 {name!r} 定标失败: {exc}") from exc
        staged = [
            Attribute(key, HDFType.FLOAT64, 1, np.array([val], dtype=np.float64))
            for key, val in zip(CALIBRATION_ATTRS[:4], cal[:4])
        ]
        staged.append(Attribute(CALIBRATED_NT, HDFType.INT32, 1,
                                np.array([cal.calibrated_nt], dtype=np.int32)))
        self._commit(ds.attrs, *staged)

    def set_compression(self, name: str, level: int = DEFAULT_DEFLATE_LEVEL):
        ds = self._dataset(name)
        level = min(int(level), MAX_DEFLATE_LEVEL)
        try:
            ds.handle.setcompress(SDC.COMP_DEFLATE, level)
        except HDF4Error as exc:
            raise WriteError(f"设置 {name!r} 压缩失败: {exc}") from exc

    def set_text_attribute(self, text: str, name: str, dataset: Optional[str] = None):
        attrs = self._attrs(dataset)
        text = str(text)
        try:
            self._owner(dataset).attr(name).set(SDC.CHAR8, text)
        except HDF4Error as exc:
            raise WriteError(f"设置文本属性 {name!r} 失败: {exc}") from exc
        self._commit(attrs, Attribute(name, HDFType.CHAR8, len(text), text))

    def set_value_attribute(self, values, name: str, dataset: Optional[str] = None):
        attrs = self._attrs(dataset)
        code, arr = self.types.prepare(values)
        arr = np.atleast_1d(arr).ravel()
        if arr.size == 0:
            raise ValidationError(f"属性 {name!r} 没有值")
        try:
            self._owner(dataset).attr(name).set(code, arr.tolist())
        except HDF4Error as exc:
            raise WriteError(f"设置属性 {name!r} 失败: {exc}") from exc
        self._commit(attrs, Attribute(name, code, arr.size, arr))

    def set_dim_names(self, name: str, dim_names: Sequence[Optional[str]]):
        """存储顺序；None 占位的维度保持原名"""
        ds = self._dataset(name)
        ds.dims = describe_dims(ds.handle, ds.rank, dim_names)

    # ---------- 导出 xarray ----------
    def to_xarray(self, name: str) -> xr.DataArray:
        ds = self._dataset(name)
        dims, seen = [], set()
        for d in array_order(ds.dims):
            label = d.name or f"dim_{d.index}"
            if label in seen:
                label = f"{label}_{d.index}"
            seen.add(label)
            dims.append(label)
        attrs = {k: _attr_value(a) for k, a in ds.attrs.items()}
        return xr.DataArray(self.read(name), dims=dims, name=name, attrs=attrs)

    def to_dataset(self) -> xr.Dataset:
        self._check_open()
        variables = {n: self.to_xarray(n) for n in self.catalog.datasets}
        attrs = {k: _attr_value(a) for k, a in self.catalog.attrs.items()}
        return xr.Dataset(variables, attrs=attrs)

    # ---------- 关闭 ----------
    def close(self):
        """先释放全部数据集句柄，再结束文件句柄"""
        if self.closed:
            return
        failures = []
        for ds in self.catalog.datasets.values():
            if ds.handle is None:
                continue
            try:
                ds.handle.endaccess()
            except HDF4Error as exc:
                log.warning("释放数据集 %s 失败: %s", ds.name, exc)
                failures.append(ds.name)
            ds.handle = None
        sd, self._sd = self._sd, None
        try:
            sd.end()
        except HDF4Error as exc:
            raise ReleaseError(f"关闭 {self.path} 失败: {exc}") from exc
        log.info("关闭 %s", self.path)
        if failures:
            raise ReleaseError(f"以下数据集句柄释放失败: {', '.join(failures)}")


def _attr_value(attr: Attribute):
    if attr.is_text:
        return attr.value
    return attr.value[0].item() if attr.count == 1 else attr.value
