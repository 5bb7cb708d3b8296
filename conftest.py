"""
pyhdf 形状的内存替身：用于在不触碰磁盘的情况下检验目录构建与暂存/提交语义
"""
import itertools
import logging

import numpy as np
import pytest
from pyhdf.error import HDF4Error

from metahdf.config import HDFType


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, *event):
        self.calls.append(event)

    def names(self):
        return [c[0] for c in self.calls]


class FakeAttr:
    def __init__(self, name, code, value, count=None, owner=None):
        self.name = name
        self.code = code
        self.value = value
        self.count = count if count is not None else np.size(value) if not isinstance(value, (str, bytes)) else len(value)
        self.owner = owner

    def info(self):
        return self.name, self.code, self.count

    def get(self):
        self.owner._maybe_fail("attr.get")
        return self.value

    def set(self, code, value):
        self.owner._maybe_fail("attr.set")
        self.owner.log("attr.set", self.name, code, value)
        self.code, self.value = code, value


class FakeDim:
    def __init__(self, sds, index, name, size):
        self.sds = sds
        self.index = index
        self.name = name
        self.size = size

    def info(self):
        self.sds._maybe_fail("dim.info")
        return self.name, self.size, 0, 0

    def setname(self, name):
        self.sds._maybe_fail("dim.setname")
        self.name = name


class FakeSDS:
    registry = {}
    _ids = itertools.count(1)

    def __init__(self, name, code, shape, attrs=(), dim_names=None, current=None,
                 fail=(), log=None):
        self.name = name
        self.code = code
        self.declared = list(shape)
        self.current = list(current if current is not None else shape)
        self.fail = set(fail)
        self.log = log or Recorder()
        self.attrs = [FakeAttr(n, c, v, owner=self) for n, c, v in attrs]
        names = dim_names or [f"fakeDim{i}" for i in range(len(shape))]
        self.dims = [FakeDim(self, i, n, s) for i, (n, s) in enumerate(zip(names, shape))]
        self.data = None
        self.ended = False
        self.errors = {}
        self.chunk_lengths = None
        self.chunk_flags = 0
        self._id = next(FakeSDS._ids)
        FakeSDS.registry[self._id] = self

    def _maybe_fail(self, op):
        if op in self.errors:
            raise self.errors[op]
        if op in self.fail:
            raise HDF4Error(f"{op}: cannot execute")

    def info(self):
        self._maybe_fail("info")
        return self.name, len(self.declared), list(self.current), self.code, len(self.attrs)

    def dim(self, j):
        self._maybe_fail("dim")
        return self.dims[j]

    def attr(self, key):
        if isinstance(key, int):
            return self.attrs[key]
        for a in self.attrs:
            if a.name == key:
                return a
        a = FakeAttr(key, 0, None, count=0, owner=self)
        self.attrs.append(a)
        return a

    def endaccess(self):
        self.log("endaccess", self.name)
        self._maybe_fail("endaccess")
        self.ended = True

    def set(self, data, start, count, stride):
        self.log("set", self.name, start, count, stride)
        self._maybe_fail("set")
        self.data = np.array(data)

    def get(self, start, count, stride):
        self.log("get", self.name, start, count, stride)
        self._maybe_fail("get")
        return self.data[tuple(slice(s, s + c * st, st) for s, c, st in zip(start, count, stride))]

    def setfillvalue(self, value):
        self.log("setfillvalue", self.name, value)
        self._maybe_fail("setfillvalue")

    def setrange(self, lo, hi):
        self.log("setrange", self.name, lo, hi)
        self._maybe_fail("setrange")

    def setcal(self, *cal):
        self.log("setcal", self.name, cal)
        self._maybe_fail("setcal")

    def setcompress(self, comp_type, value=0, v2=0):
        self.log("setcompress", self.name, comp_type, value)
        self._maybe_fail("setcompress")


class FakeMFHDF:
    """libmfhdf 分块入口的替身：按 sds_id 找回 FakeSDS，失败时返回 FAIL (-1)"""

    def SDsetchunk(self, sds_id, cdef, flags):
        sds = FakeSDS.registry[sds_id]
        rank = len(sds.declared)
        lengths = list(cdef.chunk_lengths[:rank])
        sds.log("setchunk", sds.name, lengths, cdef.comp_type, cdef.cinfo[0], flags)
        if "setchunk" in sds.fail:
            return -1
        sds.chunk_lengths, sds.chunk_flags = lengths, flags
        return 0

    def SDsetchunkcache(self, sds_id, maxcache, flags):
        sds = FakeSDS.registry[sds_id]
        sds.log("setchunkcache", sds.name, maxcache, flags)
        return -1 if "setchunkcache" in sds.fail else maxcache

    def SDgetchunkinfo(self, sds_id, cdef_ptr, flags_ptr):
        sds = FakeSDS.registry[sds_id]
        if "getchunkinfo" in sds.fail:
            return -1
        if sds.chunk_lengths is not None:
            cdef_ptr.contents.chunk_lengths[:len(sds.chunk_lengths)] = sds.chunk_lengths
        flags_ptr.contents.value = sds.chunk_flags
        return 0


class FakeSD:
    def __init__(self, attrs=(), datasets=(), fail=(), log=None, create_fail=()):
        self.log = log or Recorder()
        self.fail = set(fail)
        self.create_fail = set(create_fail)
        self.attrs = [FakeAttr(n, c, v, owner=self) for n, c, v in attrs]
        self.datasets = list(datasets)
        for sds in self.datasets:
            sds.log = self.log
        self.selected = []

    def _maybe_fail(self, op):
        if op in self.fail:
            raise HDF4Error(f"{op}: cannot execute")

    def info(self):
        self._maybe_fail("info")
        return len(self.datasets), len(self.attrs)

    def attr(self, key):
        if isinstance(key, int):
            return self.attrs[key]
        for a in self.attrs:
            if a.name == key:
                return a
        a = FakeAttr(key, 0, None, count=0, owner=self)
        self.attrs.append(a)
        return a

    def select(self, i):
        self._maybe_fail("select")
        sds = self.datasets[i]
        self.selected.append(sds)
        return sds

    def create(self, name, code, shape):
        self.log("create", name, code, list(shape))
        self._maybe_fail("create")
        sds = FakeSDS(name, code, shape, fail=self.create_fail, log=self.log)
        self.datasets.append(sds)
        return sds

    def nametoindex(self, name):
        return [s.name for s in self.datasets].index(name)

    def end(self):
        self.log("end")


@pytest.fixture(autouse=True)
def quiet_logging():
    logging.getLogger("metahdf").setLevel(logging.WARNING)


@pytest.fixture
def sample_sd():
    """两个全局属性 + 两个数据集（其一有 unlimited 维）"""
    temp = FakeSDS(
        "temperature\x00\x00  ", HDFType.FLOAT32, [3, 4],
        attrs=[
            ("units\x00", HDFType.CHAR8, "kelvin"),
            ("_FillValue", HDFType.FLOAT32, -999.0),
        ],
        dim_names=["lat", "lon"],
    )
    temp.data = np.arange(12, dtype=np.float32).reshape(3, 4)
    rec = FakeSDS(
        "records", HDFType.INT32, [0, 2], current=[5, 2],
        attrs=[("valid_range", HDFType.INT32, [0, 100])],
        dim_names=["time", "xy"],
    )
    rec.data = np.arange(10, dtype=np.int32).reshape(5, 2)
    return FakeSD(
        attrs=[
            ("title   ", HDFType.CHAR8, "demo file"),
            ("version", HDFType.INT16, [1, 2, 3]),
        ],
        datasets=[temp, rec],
    )


@pytest.fixture
def fake_mfhdf(monkeypatch):
    lib = FakeMFHDF()
    monkeypatch.setattr("metahdf.chunkio._library", lambda: lib)
    return lib


@pytest.fixture
def patch_sd(monkeypatch, fake_mfhdf):
    """让 HDFFile 打开时拿到给定的 FakeSD（分块入口同时换成替身）"""
    def _install(fake):
        opened = []

        def factory(path, mode):
            opened.append((path, mode))
            return fake

        monkeypatch.setattr("metahdf.accessor.SD", factory)
        return opened
    return _install
