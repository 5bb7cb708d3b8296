"""
同时使用 SD 与 VS/V 接口的组合文件对象
"""
from __future__ import annotations

from .config import AccessMode
from .accessor import HDFFile, open_file
from .vs import VSFile


class HDF4File:
    def __init__(self, target, mode=None, **options):
        self.sd: HDFFile = open_file(target, mode, **options)
        # SD 已完成新建，VS 只需读写打开
        vs_mode = AccessMode.READ if self.sd.mode == AccessMode.READ else AccessMode.RDWR
        try:
            self.vs = VSFile(self.sd.path, vs_mode, types=self.sd.types)
        except Exception:
            self.sd.close()
            raise

    @property
    def path(self):
        return self.sd.path

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        try:
            self.sd.close()
        finally:
            self.vs.close()
