from enum import IntEnum
import re

# ─── 文件访问模式（HDF4 DFACC_* 取值）──────────────────────────────────────────
class AccessMode(IntEnum):
    READ   = 1
    RDONLY = 1
    WRITE  = 2
    RDWR   = 3
    CREATE = 4
    ALL    = 7

class Interlace(IntEnum):
    FULL = 0
    NO   = 1

# ─── HDF4 数值类型编码（与 pyhdf SDC.* 一致）──────────────────────────────────
class HDFType(IntEnum):
    UCHAR8  = 3
    CHAR8   = 4
    FLOAT32 = 5
    FLOAT64 = 6
    INT8    = 20
    UINT8   = 21
    INT16   = 22
    UINT16  = 23
    INT32   = 24
    UINT32  = 25

# ─── HDF 标签 ─────────────────────────────────────────────────────────────────
DFTAG_NDG = 720     # SDS
DFTAG_VH  = 1962    # Vdata
DFTAG_VG  = 1965    # Vgroup

TAG_KINDS = {
    DFTAG_NDG: "sds",
    DFTAG_VH:  "vdata",
    DFTAG_VG:  "vgroup",
}

# ─── 库限制 ───────────────────────────────────────────────────────────────────
MAX_NC_NAME  = 256
MAX_VAR_DIMS = 32
VNAMELENMAX  = 64

# ─── 保留属性名 ───────────────────────────────────────────────────────────────
FILL_VALUE       = "_FillValue"
VALID_RANGE      = "valid_range"
SCALE_FACTOR     = "scale_factor"
SCALE_FACTOR_ERR = "scale_factor_err"
ADD_OFFSET       = "add_offset"
ADD_OFFSET_ERR   = "add_offset_err"
CALIBRATED_NT    = "calibrated_nt"

CALIBRATION_ATTRS = (
    SCALE_FACTOR,
    SCALE_FACTOR_ERR,
    ADD_OFFSET,
    ADD_OFFSET_ERR,
    CALIBRATED_NT,
)

# ─── 分块默认参数 ─────────────────────────────────────────────────────────────
DEFAULT_MIN_CHUNK_SIZE = 100
DEFAULT_TARGET_CHUNKS  = 10
DEFAULT_DEFLATE_LEVEL  = 6
MAX_DEFLATE_LEVEL      = 9

# ─── HDF_CHUNK_DEF 相关（hdf.h / hcomp.h）──────────────────────────────────────
HDF_NONE          = 0x0
HDF_CHUNK         = 0x1
HDF_COMP          = 0x3
COMP_CODE_NONE    = 0
COMP_CODE_DEFLATE = 4
COMP_MODEL_STDIO  = 0

# ─── 文件目标前缀："+x.hdf" 读写，"-x.hdf" 新建（覆盖），其余只读 ──────────────
TARGET_RE = re.compile(r"^(?P<prefix>[+-]?)(?P<path>.*)$", re.DOTALL)
