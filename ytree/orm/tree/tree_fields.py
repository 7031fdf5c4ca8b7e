"""树形结构字段定义

提供标准的树形字段定义 Mixin，简化模型定义。

使用示例:
    from ytree.orm import CoreModel
    from ytree.orm.tree import TreeMixin, TreeFieldsMixin

    class Category(TreeMixin, TreeFieldsMixin, CoreModel):
        __tablename__ = "category"

        # parent_id 需要自行定义（外键目标表名因模型而异）
        parent_id = mapped_column(Integer, ForeignKey("category.id"), nullable=True)

        # path, depth 由 TreeFieldsMixin 自动提供
        title = mapped_column(String(100))
"""

from typing import Optional

from sqlalchemy import Integer
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from ..primary_key import id_column_type, path_item_type
from .path_type import MaterializedPath
from .tree_options import get_tree_settings


class TreeFieldsMixin:
    """树形结构字段 Mixin

    提供标准的树形字段定义：
    - path: 祖先 ID 列表（从根到父节点，不含自身），根节点为 []
    - depth: 节点深度，根节点为 0，始终等于 len(path)

    path 元素类型跟随模型主键策略：自增主键为 int，UUID 类主键为 str。
    路径列长度为 TreeSettings.path_max_length，UUID 主键每层占 37 个字符，
    默认长度下最多约 27 层，超出时移动会抛出 PathTooLongError。
    """

    @declared_attr
    def path(cls) -> Mapped[list]:
        return mapped_column(
            MaterializedPath(get_tree_settings().path_max_length, item_type=path_item_type(cls)),
            nullable=False,
            default=list,
            index=True,
            comment="祖先路径（如 /1/2/）"
        )

    depth: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        index=True,
        comment="节点深度（根节点为0）"
    )


class TreeFieldsWithParentMixin(TreeFieldsMixin):
    """带 parent_id 的树形字段 Mixin

    包含 parent_id 字段，但不带外键约束，类型跟随主键策略。
    如果需要外键约束，使用 TreeFieldsMixin 并自行定义 parent_id。
    """

    @declared_attr
    def parent_id(cls) -> Mapped[Optional[str]]:
        return mapped_column(
            id_column_type(cls),
            nullable=True,
            default=None,
            index=True,
            comment="父节点ID"
        )


__all__ = [
    "TreeFieldsMixin",
    "TreeFieldsWithParentMixin",
]
