"""物化路径列类型

将祖先 ID 列表存储为分隔符包裹的字符串：

    []          -> ""
    [1]         -> "/1/"
    [1, 5, 9]   -> "/1/5/9/"

首尾都带分隔符，保证 "/5/" 这样的片段只会匹配完整的 ID，
子孙查询和前缀替换都可以直接在数据库端用 LIKE / substr 完成。
"""

from typing import Any, Callable, List, Optional, Sequence

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

PATH_SEPARATOR = "/"

# LIKE 转义字符
LIKE_ESCAPE = "\\"


def encode_path(items: Sequence[Any], separator: str = PATH_SEPARATOR) -> str:
    """将 ID 列表编码为路径字符串

    Raises:
        ValueError: ID 为空或包含分隔符
    """
    if not items:
        return ""
    parts = []
    for item in items:
        text = str(item)
        if not text or separator in text:
            raise ValueError(f"路径元素不能为空或包含分隔符 {separator!r}: {item!r}")
        parts.append(text)
    return separator + separator.join(parts) + separator


def decode_path(
    value: Optional[str],
    item_type: Callable[[str], Any] = int,
    separator: str = PATH_SEPARATOR,
) -> List[Any]:
    """将路径字符串解码为 ID 列表"""
    if not value:
        return []
    return [item_type(part) for part in value.strip(separator).split(separator) if part]


def escape_like(value: str, escape: str = LIKE_ESCAPE) -> str:
    """转义 LIKE 模式中的通配符"""
    return (
        value.replace(escape, escape + escape)
        .replace("%", escape + "%")
        .replace("_", escape + "_")
    )


class MaterializedPath(TypeDecorator):
    """物化路径类型

    Python 侧是有序的祖先 ID 列表（从根到父节点），数据库侧是 String。
    绑定参数为字符串时原样传递，便于直接与 LIKE 模式比较。

    Args:
        length: 字符串列长度
        item_type: 路径元素类型，自增主键为 int，UUID 主键为 str
        separator: 分隔符

    使用示例:
        path: Mapped[list] = mapped_column(MaterializedPath(1000, item_type=int), default=list)

        Category.query.filter(Category.path.like("/1/%"))
    """

    impl = String
    cache_ok = True

    def __init__(self, length: int = 1000, item_type: Callable[[str], Any] = int,
                 separator: str = PATH_SEPARATOR, **kwargs):
        super().__init__(length, **kwargs)
        self.item_type = item_type
        self.separator = separator

    @property
    def max_length(self) -> Optional[int]:
        """列长度，编码后的路径不能超过它"""
        return self.impl.length

    @property
    def python_type(self):
        return list

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            return value
        return encode_path(value, self.separator)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return decode_path(value, self.item_type, self.separator)

    def encode(self, items: Sequence[Any]) -> str:
        return encode_path(items, self.separator)

    def decode(self, value: Optional[str]) -> List[Any]:
        return decode_path(value, self.item_type, self.separator)

    def prefix_pattern(self, items: Sequence[Any]) -> str:
        """以指定路径开头的 LIKE 模式（已转义）"""
        return escape_like(self.encode(items)) + "%"

    def contains_pattern(self, item: Any) -> str:
        """包含指定 ID 的 LIKE 模式（已转义）"""
        return "%" + escape_like(self.encode([item])) + "%"
