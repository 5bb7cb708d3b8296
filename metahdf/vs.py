"""
VS / V 接口：Vdata 表格与 Vgroup 分组（直接转发到 pyhdf）
"""
from __future__ import annotations
from pathlib import Path
from typing import List, NamedTuple, Optional, Sequence, Tuple

import pandas as pd
from pyhdf.error import HDF4Error
from pyhdf.HDF import HDF, HC
from pyhdf.V import V
from pyhdf.VS import VS

from .config import AccessMode, TAG_KINDS
from .typemap import TypeTable, DEFAULT_TYPES
from .exceptions import (
    OpenError,
    ClosedFileError,
    NotFoundError,
    ReadError,
    WriteError,
    ValidationError,
)
from .utils import log, trim_name


class VdataInfo(NamedTuple):
    name:      str
    vclass:    str
    ref:       int
    records:   int
    fields:    int
    n_attrs:   int
    size:      int
    tag:       int
    interlace: int


class VgroupInfo(NamedTuple):
    ref:     int
    name:    str
    vclass:  str
    members: List[Tuple[int, int]]   # (tag, ref)

    def member_kinds(self) -> List[str]:
        return [TAG_KINDS.get(tag, str(tag)) for tag, _ref in self.members]


def _hdf_mode(mode: AccessMode) -> int:
    if mode & AccessMode.CREATE:
        return HC.WRITE | HC.CREATE
    if mode & AccessMode.WRITE:
        return HC.WRITE
    return HC.READ

# ────────────────────────────────────────────────────────────────────────
class VSFile:
    def __init__(self, path: str | Path, mode: AccessMode = AccessMode.READ,
                 *, types: TypeTable = DEFAULT_TYPES):
        self.path = Path(path)
        self.mode = AccessMode(mode)
        self.types = types
        try:
            self._hdf = HDF(str(self.path), _hdf_mode(self.mode))
            self._vs: VS = self._hdf.vstart()
            self._v: V = self._hdf.vgstart()
        except HDF4Error as exc:
            raise OpenError(f"无法以 VS/V 接口打开 {self.path}: {exc}") from exc

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    @property
    def closed(self) -> bool:
        return self._hdf is None

    def _check_open(self):
        if self.closed:
            raise ClosedFileError(f"{self.path} 已关闭")

    # ---------- Vdata ----------
    def vdata_info(self) -> List[VdataInfo]:
        self._check_open()
        try:
            rows = self._vs.vdatainfo()
        except HDF4Error as exc:
            raise ReadError(f"列出 Vdata 失败: {exc}") from exc
        return [
            VdataInfo(trim_name(r[0]), trim_name(r[1]), *[int(x) for x in r[2:]])
            for r in rows
        ]

    def vdata_names(self) -> List[str]:
        return [info.name for info in self.vdata_info()]

    def _attach_vdata(self, name: str, write: int = 0):
        self._check_open()
        try:
            return self._vs.attach(name, write)
        except HDF4Error as exc:
            raise NotFoundError(f"Vdata {name!r} 不存在") from exc

    def read_vdata(self, name: str) -> pd.DataFrame:
        vd = self._attach_vdata(name)
        try:
            n_records, _interlace, fields, _size, _vname = vd.inquire()
            records = vd.read(n_records) if n_records else []
        except HDF4Error as exc:
            raise ReadError(f"读取 Vdata {name!r} 失败: {exc}") from exc
        finally:
            vd.detach()
        return pd.DataFrame.from_records(records, columns=list(fields))

    def write_vdata(self, name: str, frame: pd.DataFrame, vclass: Optional[str] = None) -> int:
        """以 DataFrame 新建 Vdata（每列一个字段，order=1），返回 ref"""
        self._check_open()
        if frame.empty:
            raise ValidationError(f"Vdata {name!r} 没有记录")
        columns, fields = [], []
        for col in frame.columns:
            code, arr = self.types.prepare(frame[col].to_numpy())
            columns.append(arr)
            fields.append((str(col), code, 1))
        records = [list(row) for row in zip(*(c.tolist() for c in columns))]

        try:
            vd = self._vs.create(name, fields)
        except HDF4Error as exc:
            raise WriteError(f"创建 Vdata {name!r} 失败: {exc}") from exc
        try:
            if vclass:
                vd._class = vclass
            vd.write(records)
            ref = vd._refnum
        except HDF4Error as exc:
            raise WriteError(f"写入 Vdata {name!r} 失败: {exc}") from exc
        finally:
            vd.detach()
        log.info("✅ 写入 Vdata %s (%d 条记录)", name, len(records))
        return ref

    # ---------- Vgroup ----------
    def _attach_vgroup(self, ref, write: int = 0):
        self._check_open()
        try:
            return self._v.attach(ref, write)
        except HDF4Error as exc:
            raise NotFoundError(f"Vgroup {ref!r} 不存在") from exc

    def vgroups(self) -> List[VgroupInfo]:
        self._check_open()
        out, ref = [], -1
        while True:
            try:
                ref = self._v.getid(ref)
            except HDF4Error:
                break   # 没有下一个
            vg = self._attach_vgroup(ref)
            try:
                out.append(VgroupInfo(ref, trim_name(vg._name), trim_name(vg._class),
                                      [tuple(m) for m in vg.tagrefs()]))
            finally:
                vg.detach()
        return out

    def create_vgroup(self, name: str, vclass: Optional[str] = None,
                      members: Sequence[Tuple[int, int]] = ()) -> int:
        self._check_open()
        try:
            vg = self._v.create(name)
        except HDF4Error as exc:
            raise WriteError(f"创建 Vgroup {name!r} 失败: {exc}") from exc
        try:
            if vclass:
                vg._class = vclass
            for tag, ref in members:
                vg.add(tag, ref)
            ref = vg._refnum
        except HDF4Error as exc:
            raise WriteError(f"设置 Vgroup {name!r} 失败: {exc}") from exc
        finally:
            vg.detach()
        return ref

    def get_vgroup_name(self, ref: int) -> str:
        vg = self._attach_vgroup(ref)
        try:
            return trim_name(vg._name)
        finally:
            vg.detach()

    def get_vgroup_class(self, ref: int) -> str:
        vg = self._attach_vgroup(ref)
        try:
            return trim_name(vg._class)
        finally:
            vg.detach()

    def set_vgroup_name(self, ref: int, name: str):
        self._set_vgroup(ref, "_name", name)

    def set_vgroup_class(self, ref: int, vclass: str):
        self._set_vgroup(ref, "_class", vclass)

    def _set_vgroup(self, ref: int, field: str, value: str):
        vg = self._attach_vgroup(ref, write=1)
        try:
            setattr(vg, field, value)
        except HDF4Error as exc:
            raise WriteError(f"设置 Vgroup {ref} {field} 失败: {exc}") from exc
        finally:
            vg.detach()

    # ---------- 关闭 ----------
    def close(self):
        if self.closed:
            return
        hdf, self._hdf = self._hdf, None
        try:
            self._vs.end()
            self._v.end()
        finally:
            hdf.close()
        log.info("关闭 VS/V %s", self.path)


def vdata_table(infos: Sequence[VdataInfo]) -> pd.DataFrame:
    """vdata_info() ➜ 目录表"""
    return pd.DataFrame([i._asdict() for i in infos], columns=list(VdataInfo._fields))
