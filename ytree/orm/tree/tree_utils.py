"""树形数据工具函数

在内存中处理 to_dict() 得到的节点字典，不访问数据库。

使用示例:
    from ytree.orm.tree import build_tree_list, flatten_tree

    rows = [c.to_dict() for c in Category.roots().first().self_and_descendants()]
    tree = build_tree_list(rows)

    # 导入外部数据前，按嵌套结构重新生成 path / depth
    flat = flatten_tree(tree, path_field="path", depth_field="depth")
"""

from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

NodeDict = Dict[str, Any]
Tree = List[NodeDict]


def build_tree_list(
    nodes: Tree,
    id_field: str = "id",
    parent_field: str = "parent_id",
    children_field: str = "children",
    sort_key: Optional[Callable[[NodeDict], Any]] = None,
) -> Tree:
    """扁平列表转嵌套结构

    父节点为空或不在列表中的节点放在顶层，所以传入一棵子树时子树的根在顶层。
    同级节点保持输入顺序，指定 sort_key 时逐层排序。输入列表中的字典不会被修改。

        build_tree_list([{"id": 1, "parent_id": None}, {"id": 2, "parent_id": 1}])
        # [{"id": 1, "parent_id": None, "children": [{"id": 2, "parent_id": 1, "children": []}]}]
    """
    by_id: Dict[Any, NodeDict] = {}
    for row in nodes:
        by_id[row[id_field]] = {**row, children_field: []}

    top: Tree = []
    for item in by_id.values():
        owner = by_id.get(item.get(parent_field))
        if owner is None or owner is item:
            top.append(item)
        else:
            owner[children_field].append(item)

    if sort_key:
        for level in _levels(top, children_field):
            level.sort(key=sort_key)
    return top


def _levels(tree: Tree, children_field: str) -> Iterator[Tree]:
    pending = [tree]
    while pending:
        siblings = pending.pop()
        yield siblings
        pending.extend(item[children_field] for item in siblings if item.get(children_field))


def _walk(tree: Tree, id_field: str, children_field: str) -> Iterator[Tuple[NodeDict, List[Any]]]:
    """先序遍历，同时给出祖先 ID 列表"""
    stack: List[Tuple[NodeDict, List[Any]]] = [(item, []) for item in reversed(tree)]
    while stack:
        item, ancestors = stack.pop()
        yield item, ancestors
        below = ancestors + [item.get(id_field)]
        stack.extend((child, below) for child in reversed(item.get(children_field) or []))


def flatten_tree(
    tree: Tree,
    id_field: str = "id",
    children_field: str = "children",
    depth_field: Optional[str] = None,
    path_field: Optional[str] = None,
) -> Tree:
    """嵌套结构按先序展平，结果中去掉子节点字段

    Args:
        depth_field: 指定时写入深度，顶层为 0
        path_field: 指定时写入祖先 ID 列表，顶层为 []
    """
    flat: Tree = []
    for item, ancestors in _walk(tree, id_field, children_field):
        row = {key: value for key, value in item.items() if key != children_field}
        if depth_field:
            row[depth_field] = len(ancestors)
        if path_field:
            row[path_field] = list(ancestors)
        flat.append(row)
    return flat


def get_node_path(tree: Tree, target_id: Any, id_field: str = "id", children_field: str = "children") -> Tree:
    """从顶层到目标节点（含）的节点列表，找不到返回 []"""
    by_id: Dict[Any, NodeDict] = {}
    for item, ancestors in _walk(tree, id_field, children_field):
        by_id[item.get(id_field)] = item
        if item.get(id_field) == target_id:
            return [by_id[ancestor] for ancestor in ancestors] + [item]
    return []


def find_node_in_tree(tree: Tree, target_id: Any, id_field: str = "id", children_field: str = "children") -> Optional[NodeDict]:
    path = get_node_path(tree, target_id, id_field, children_field)
    return path[-1] if path else None


def calculate_tree_depth(tree: Tree, children_field: str = "children") -> int:
    """层数：空树为 0，只有顶层节点为 1"""
    depth = 0
    level = tree
    while level:
        depth += 1
        level = [child for item in level for child in (item.get(children_field) or [])]
    return depth


def filter_tree(
    tree: Tree,
    predicate: Callable[[NodeDict], bool],
    children_field: str = "children",
    keep_ancestors: bool = True,
) -> Tree:
    """按条件过滤，返回新树

    Args:
        predicate: 返回 True 的节点保留
        keep_ancestors: 保留匹配节点的祖先，即使祖先本身不匹配
    """
    kept: Tree = []
    for item in tree:
        children = filter_tree(item.get(children_field) or [], predicate, children_field, keep_ancestors)
        if predicate(item) or (keep_ancestors and children):
            kept.append({**item, children_field: children})
    return kept


__all__ = [
    "build_tree_list",
    "flatten_tree",
    "find_node_in_tree",
    "get_node_path",
    "calculate_tree_depth",
    "filter_tree",
]
