"""路径计算

纯函数，不访问数据库：根据父节点状态计算节点的新路径和深度。
"""

from typing import Any, List, NamedTuple, Optional, Tuple


class PathSnapshot(NamedTuple):
    """节点路径快照"""
    id: Any
    path: List[Any]
    depth: int

    @classmethod
    def of(cls, node: Any, path_field: str = "path", depth_field: str = "depth") -> "PathSnapshot":
        return cls(node.id, list(getattr(node, path_field) or []), getattr(node, depth_field) or 0)


def calculate_path(parent_id: Any, parent: Optional[PathSnapshot]) -> Tuple[List[Any], int]:
    """计算节点路径和深度

    父节点 ID 为空或父节点不存在时，节点成为根节点。

    Args:
        parent_id: 节点当前的父节点 ID
        parent: 父节点快照，查询不到时为 None

    Returns:
        (new_path, new_depth)

    使用示例:
        >>> calculate_path(None, None)
        ([], 0)
        >>> calculate_path(2, PathSnapshot(2, [1], 1))
        ([1, 2], 2)
    """
    if parent_id is None or parent is None:
        return [], 0
    return list(parent.path) + [parent.id], parent.depth + 1


def splice_path(path: List[Any], node_id: Any, new_path: List[Any]) -> Optional[List[Any]]:
    """把 path 中 node_id 之前的部分替换为 new_path

    用于子孙节点路径的逐行修复：
        splice_path([1, 2, 3, 4], 3, [9]) -> [9, 3, 4]

    Returns:
        新路径，path 中不含 node_id 时返回 None
    """
    try:
        index = path.index(node_id)
    except ValueError:
        return None
    return list(new_path) + list(path[index:])
