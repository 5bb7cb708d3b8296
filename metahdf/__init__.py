"""
metahdf
=======
基于 pyhdf ‑ numpy ‑ xarray 的 HDF4 SD / VS 数据读写工具包。
"""
from .accessor import HDFFile, open_file                     # SD 读写
from .catalog import build_catalog, list_datasets, show_dataset_info
from .chunking import plan_chunks, ChunkPlan                  # 分块规划
from .hdf import HDF4File                                     # SD + VS
from .vs import VSFile

__all__ = [
    "HDFFile",
    "open_file",
    "build_catalog",
    "list_datasets",
    "show_dataset_info",
    "plan_chunks",
    "ChunkPlan",
    "HDF4File",
    "VSFile",
]
