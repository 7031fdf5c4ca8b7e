"""移动校验

在任何写入之前执行，任一校验失败都会抛出异常，不产生部分写入。
顺序：先范围校验，再循环校验，最后是路径长度校验。
"""

from typing import Any, List, Optional

from sqlalchemy import func, inspect, select
from sqlalchemy.orm import Session

from .exceptions import CyclicStructureError, PathTooLongError, ScopeMismatchError
from .path_type import LIKE_ESCAPE
from .tree_options import TreeOptions


def validate_scope(node: Any, parent: Optional[Any], options: TreeOptions) -> None:
    """父子节点的范围字段必须一致

    根节点或父节点不存在时不校验。

    Raises:
        ScopeMismatchError: 存在不一致的范围字段
    """
    if parent is None or not options.scope:
        return

    mismatched = [
        field for field in options.scope
        if getattr(node, field) != getattr(parent, field)
    ]
    if mismatched:
        raise ScopeMismatchError(field=options.parent_field, scope_fields=mismatched)


def validate_cyclic(node: Any, parent: Optional[Any], options: TreeOptions) -> None:
    """不能以自身或自身的子孙作为父节点

    父节点已经加载，直接检查它的路径是否包含当前节点，不再查询数据库。
    新节点还没有 ID，不可能形成循环。

    Raises:
        CyclicStructureError: 移动会形成循环
    """
    if parent is None or node.id is None:
        return

    if parent.id == node.id or node.id in (getattr(parent, options.path_field) or []):
        raise CyclicStructureError(node.id, parent.id, field=options.parent_field)


def validate_path_length(node: Any, old_path: List[Any], new_path: List[Any],
                         options: TreeOptions, session: Optional[Session] = None) -> None:
    """移动后自身和子孙的路径都不能超过路径列长度

    子孙路径的增长量等于 old_path + [node.id] 与 new_path + [node.id] 编码后的长度差，
    只有路径变长时才查询子孙中最长的路径。

    Raises:
        PathTooLongError: 编码后的路径超过列长度
    """
    path_type = options.path_type
    max_length = path_type.max_length
    if not max_length:
        return

    length = len(path_type.encode(new_path))
    if length > max_length:
        raise PathTooLongError(node.id, length, max_length, field=options.parent_field)

    if session is None or node.id is None or not inspect(node).has_identity:
        return

    growth = len(path_type.encode(list(new_path) + [node.id])) - len(path_type.encode(list(old_path) + [node.id]))
    if growth <= 0:
        return

    path_column = options.path_column()
    longest = session.scalar(
        select(func.max(func.length(path_column))).where(
            path_column.like(path_type.contains_pattern(node.id), escape=LIKE_ESCAPE)
        )
    )
    if longest and longest + growth > max_length:
        raise PathTooLongError(node.id, longest + growth, max_length, field=options.parent_field)


def validate_move(node: Any, parent: Optional[Any], options: TreeOptions) -> None:
    """执行范围和循环校验"""
    validate_scope(node, parent, options)
    validate_cyclic(node, parent, options)
