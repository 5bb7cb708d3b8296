import logging
from pathlib import Path
from typing import Sequence, Tuple
import numpy as np
from .config import TARGET_RE, AccessMode
from .exceptions import ValidationError

log = logging.getLogger("metahdf")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
)

def parse_target(target) -> Tuple[Path, AccessMode]:
    """"+a.hdf" ➜ (a.hdf, RDWR)；"-a.hdf" ➜ (a.hdf, CREATE)；"a.hdf" ➜ (a.hdf, READ)"""
    if isinstance(target, Path):
        return target, AccessMode.READ
    m = TARGET_RE.match(str(target))
    if not m or not m.group("path"):
        raise ValidationError(f"无效的文件目标 {target!r}")
    prefix = m.group("prefix")
    mode = {"+": AccessMode.RDWR, "-": AccessMode.CREATE}.get(prefix, AccessMode.READ)
    return Path(m.group("path")), mode

def trim_name(name) -> str:
    """去掉底层定长缓冲区留下的尾部填充（NUL / 空格）"""
    if isinstance(name, bytes):
        name = name.decode("latin-1")
    return str(name).rstrip("\x00 ")

# ─── 维度顺序：目录按存储顺序，数组按反序 ────────────────────────────────────
def storage_order(seq: Sequence) -> tuple:
    return tuple(reversed(tuple(seq)))

def array_order(seq: Sequence) -> tuple:
    return tuple(reversed(tuple(seq)))

def to_storage(data: np.ndarray) -> np.ndarray:
    """数组 ➜ 存储顺序的连续缓冲区（a[i, j] 存放在 [j, i]）"""
    return np.ascontiguousarray(np.asarray(data).T)

def from_storage(buf: np.ndarray) -> np.ndarray:
    return np.asarray(buf).T

def jsonable(value):
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    return value
