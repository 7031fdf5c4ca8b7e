"""树形结构扩展模块

使用物化路径（Materialized Path）模式：每个节点保存祖先 ID 列表 path 和深度 depth。

主要组件:
- TreeMixin: 树形查询、移动、删除、路径修复
- TreeFieldsMixin / TreeFieldsWithParentMixin: 树形字段定义
- MoveCoordinator: 节点移动流程（校验 -> 计算路径 -> 写入自身 -> 级联子孙）
- DescendantUpdater: 子孙路径批量重写（幂等，可重试）
- 工具函数: 内存中的树形数据处理

使用示例:
    from ytree.orm import CoreModel
    from ytree.orm.tree import TreeMixin, TreeFieldsWithParentMixin

    class Category(TreeMixin, TreeFieldsWithParentMixin, CoreModel):
        name = mapped_column(String(100))

    node = Category.get(1)
    node.children().all()          # 直接子节点
    node.descendants().all()       # 所有子孙节点
    node.ancestors().all()         # 所有祖先节点
    node.move_to(new_parent_id)    # 移动节点

    tree = Category.get_tree_list()  # 嵌套树结构
"""

from .tree_mixin import TreeMixin
from .tree_fields import TreeFieldsMixin, TreeFieldsWithParentMixin
from .path_type import MaterializedPath, encode_path, decode_path, escape_like
from .tree_options import TreeOptions, configure_tree, get_tree_settings, reset_tree_settings
from .path_calculator import PathSnapshot, calculate_path, splice_path
from .validators import validate_scope, validate_cyclic, validate_path_length, validate_move
from .descendant_updater import DescendantUpdater, PathChange
from .move import MoveCoordinator, MoveContext, MoveHooks, MoveState
from .exceptions import (
    TreeValidationError,
    ScopeMismatchError,
    CyclicStructureError,
    ParentNotFoundError,
    PathTooLongError,
    MoveVetoedError,
    CascadeIncompleteError,
)
from .tree_utils import (
    build_tree_list,
    flatten_tree,
    find_node_in_tree,
    get_node_path,
    calculate_tree_depth,
    filter_tree,
)

__all__ = [
    # Mixin 类
    "TreeMixin",
    "TreeFieldsMixin",
    "TreeFieldsWithParentMixin",

    # 路径类型与配置
    "MaterializedPath",
    "encode_path",
    "decode_path",
    "escape_like",
    "TreeOptions",
    "configure_tree",
    "get_tree_settings",
    "reset_tree_settings",

    # 移动流程
    "PathSnapshot",
    "calculate_path",
    "splice_path",
    "validate_scope",
    "validate_cyclic",
    "validate_path_length",
    "validate_move",
    "DescendantUpdater",
    "PathChange",
    "MoveCoordinator",
    "MoveContext",
    "MoveHooks",
    "MoveState",

    # 异常
    "TreeValidationError",
    "ScopeMismatchError",
    "CyclicStructureError",
    "ParentNotFoundError",
    "PathTooLongError",
    "MoveVetoedError",
    "CascadeIncompleteError",

    # 工具函数
    "build_tree_list",
    "flatten_tree",
    "find_node_in_tree",
    "get_node_path",
    "calculate_tree_depth",
    "filter_tree",
]
