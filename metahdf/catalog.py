"""
打开文件时建立的元数据目录：全局属性 / 数据集 / 维度 / 数据集属性
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
from pyhdf.error import HDF4Error

from .typemap import TypeTable, DEFAULT_TYPES, decode_text
from .exceptions import CatalogError, TypeMappingError
from .utils import log, trim_name, jsonable


# ────────────────────────────────────────────────────────────────────────
@dataclass(eq=False)
class Attribute:
    name:  str
    code:  int
    count: int
    value: Any          # str（字符类型）或一维 ndarray

    @property
    def is_text(self) -> bool:
        return isinstance(self.value, str)

    def describe(self) -> Dict:
        return {
            "type":  int(self.code),
            "count": int(self.count),
            "value": jsonable(self.value),
        }


@dataclass(eq=False)
class Dimension:
    index:     int
    size:      int                  # 0 ⇒ unlimited
    name:      Optional[str] = None
    handle:    Any = field(default=None, repr=False)
    real_size: Optional[int] = None
    code:      int = 0
    n_attrs:   int = 0

    @property
    def unlimited(self) -> bool:
        return self.size == 0

    def current_size(self, sds) -> int:
        """可用长度；unlimited 维每次都重新查询，不用缓存值"""
        if not self.unlimited:
            return self.size
        self.real_size = _unlimited_extent(sds, self.index)
        return self.real_size

    def describe(self) -> Dict:
        return {
            "index":     self.index,
            "name":      self.name,
            "size":      self.size,
            "real_size": self.real_size,
        }


@dataclass(eq=False)
class Dataset:
    name:   str
    index:  int
    code:   int
    rank:   int
    dims:   List[Dimension] = field(default_factory=list)
    attrs:  Dict[str, Attribute] = field(default_factory=dict)
    handle: Any = field(default=None, repr=False)

    @property
    def shape(self) -> tuple:
        """声明尺寸（存储顺序，unlimited 维为 0）"""
        return tuple(d.size for d in self.dims)

    def current_shape(self) -> tuple:
        return tuple(d.current_size(self.handle) for d in self.dims)

    def dtype(self, types: TypeTable = DEFAULT_TYPES) -> np.dtype:
        return types.dtype_for(self.code)

    def describe(self) -> Dict:
        return {
            "index": self.index,
            "type":  int(self.code),
            "rank":  self.rank,
            "dims":  [d.describe() for d in self.dims],
            "attrs": {k: a.describe() for k, a in self.attrs.items()},
        }


@dataclass(eq=False)
class Catalog:
    attrs:    Dict[str, Attribute] = field(default_factory=dict)
    datasets: Dict[str, Dataset] = field(default_factory=dict)

    def describe(self) -> Dict:
        return {
            "attrs":    {k: a.describe() for k, a in self.attrs.items()},
            "datasets": {k: d.describe() for k, d in self.datasets.items()},
        }


# ────────────────────────────────────────────────────────────────────────
def _unlimited_extent(sds, index: int) -> int:
    _name, _rank, dims, _code, _nattrs = sds.info()
    if isinstance(dims, int):
        dims = [dims]
    return int(dims[index])


def _materialize(raw, code: int, count: int, types: TypeTable):
    if types.is_text(code):
        return decode_text(raw, count)
    if isinstance(raw, (str, bytes)):
        # pyhdf 把 UCHAR8 属性也当文本返回
        buf = raw.encode("latin-1") if isinstance(raw, str) else raw
        raw = np.frombuffer(buf, dtype=np.uint8)
    try:
        dtype = types.dtype_for(code)
    except TypeMappingError:
        log.warning("未知 HDF 类型编码 %s，按原样保留", code)
        dtype = None
    return np.atleast_1d(np.asarray(raw, dtype=dtype)).ravel()[:count]


def read_attribute(attr, types: TypeTable = DEFAULT_TYPES) -> Attribute:
    name, code, count = attr.info()
    value = _materialize(attr.get(), code, count, types)
    return Attribute(name=trim_name(name), code=int(code), count=int(count), value=value)


def read_dimensions(sds, rank: int) -> List[Dimension]:
    dims = []
    for j in range(rank):
        dim = sds.dim(j)
        dname, size, dcode, dnattrs = dim.info()
        d = Dimension(
            index=j,
            size=int(size),
            name=trim_name(dname) if dname else None,
            handle=dim,
            code=int(dcode or 0),
            n_attrs=int(dnattrs or 0),
        )
        if d.unlimited:
            d.real_size = _unlimited_extent(sds, j)
        log.debug("  dim #%d %s size=%d real=%s", j, d.name, d.size, d.real_size)
        dims.append(d)
    return dims


def _load_dataset(sds, index: int, types: TypeTable) -> Dataset:
    name, rank, _dims, code, n_attrs = sds.info()
    ds = Dataset(name=trim_name(name), index=index, code=int(code), rank=int(rank), handle=sds)
    log.debug("载入 SDS #%d %s", index, ds.name)
    ds.dims = read_dimensions(sds, ds.rank)
    for k in range(n_attrs):
        attr = read_attribute(sds.attr(k), types)
        log.debug("  attr #%d %s", k, attr.name)
        ds.attrs[attr.name] = attr
    return ds


def build_catalog(sd, types: TypeTable = DEFAULT_TYPES) -> Catalog:
    """
    对已打开的 SD 句柄逐一查询全局属性、数据集、维度与数据集属性。
    任一查询失败 ⇒ 释放已 select 的句柄并抛 CatalogError（不返回半成品）。
    """
    cat = Catalog()
    selected = []
    try:
        n_datasets, n_attrs = sd.info()
        for i in range(n_attrs):
            attr = read_attribute(sd.attr(i), types)
            log.debug("载入全局属性 #%d %s", i, attr.name)
            cat.attrs[attr.name] = attr

        for i in range(n_datasets):
            sds = sd.select(i)
            selected.append(sds)
            ds = _load_dataset(sds, i, types)
            cat.datasets[ds.name] = ds
    except Exception as exc:
        for sds in selected:
            try:
                sds.endaccess()
            except HDF4Error as end_exc:
                log.warning("释放 SDS 句柄失败: %s", end_exc)
        if isinstance(exc, HDF4Error):
            raise CatalogError(f"读取元数据失败: {exc}") from exc
        raise
    return cat


# ────────────────────────────────────────────────────────────────────────
def list_datasets(cat: Catalog) -> List[str]:
    return list(cat.datasets.keys())

def show_dataset_info(cat: Catalog, name: str) -> Dict:
    ds = cat.datasets.get(name)
    return ds.describe() if ds else {}
