class MetaHDFError(Exception):
    """基类"""

class OpenError(MetaHDFError):
    """文件打开 / 新建失败"""

class CatalogError(MetaHDFError):
    """打开时读取元数据失败，整个 open 作废"""

class NotFoundError(MetaHDFError, KeyError):
    """目录中不存在该名字（不会调用底层库）"""

    def __str__(self):
        return str(self.args[0]) if self.args else ""

class DatasetNotFoundError(NotFoundError):
    """数据集不存在"""

class AttributeNotFoundError(NotFoundError):
    """属性不存在"""

class WriteError(MetaHDFError):
    """底层库拒绝写入 / 建集 / 设置属性"""

class ChunkConfigError(WriteError):
    """底层库拒绝分块或分块缓存配置"""

class ReadError(MetaHDFError):
    """底层库拒绝读取切片"""

class ValidationError(MetaHDFError, ValueError):
    """用户输入校验相关"""

class TypeMappingError(MetaHDFError, TypeError):
    """numpy 元素类型与 HDF4 类型编码无法对应"""

class ClosedFileError(MetaHDFError):
    """文件已关闭"""

class ReleaseError(MetaHDFError):
    """关闭时有句柄释放失败"""
