"""子孙路径级联更新

节点移动后，所有路径中包含该节点的记录都需要把旧的祖先前缀替换为新前缀：

    旧: old_path + [node_id] + suffix
    新: new_path + [node_id] + suffix

分两步完成，两步都是幂等的：

1. 前缀替换：一条 UPDATE 语句，在数据库端拼接
   path = 新前缀 || substr(path, len(旧前缀) + 1)，depth = depth + delta_depth，
   只匹配以旧前缀开头的记录。
2. 逐行修复：仍包含 node_id 但不以新前缀开头的记录（历史数据不一致），
   在 Python 中按 node_id 的位置切分重算，按主键批量写回。

重复执行时，第1步匹配不到任何记录（已经是新前缀），第2步也没有需要修复的记录。
"""

from typing import Any, Iterable, List, NamedTuple, Optional

from sqlalchemy import and_, literal, String, func, select, update
from sqlalchemy.orm import Session

from ytree.log import get_logger
from .path_calculator import splice_path
from .path_type import LIKE_ESCAPE, escape_like
from .tree_options import TreeOptions, get_tree_settings, resolve_options

logger = get_logger()


class PathChange(NamedTuple):
    """单个节点的路径变更"""
    id: Any
    path: List[Any]
    depth: int


class DescendantUpdater:
    """子孙路径批量更新器

    子孙节点的 path/depth 只能通过这里写入。

    Args:
        model: 树模型类
        session: 数据库 session
        batch_size: 逐行修复时每批写入的行数，默认读取 TreeSettings.cascade_batch_size

    使用示例:
        updater = DescendantUpdater(Category, session)
        count = updater.rewrite(node.id, old_path=[1], new_path=[7, 8])
    """

    def __init__(self, model: type, session: Session, batch_size: Optional[int] = None):
        self.options: TreeOptions = resolve_options(model)
        self.model = self.options.base
        self.session = session
        self.batch_size = batch_size or get_tree_settings().cascade_batch_size
        self.path_type = self.options.path_type

    def rewrite(self, node_id: Any, old_path: List[Any], new_path: List[Any],
                delta_depth: Optional[int] = None) -> int:
        """重写所有子孙节点的路径和深度

        Args:
            node_id: 被移动的节点 ID
            old_path: 节点移动前的路径
            new_path: 节点移动后的路径
            delta_depth: 深度变化量，默认 len(new_path) - len(old_path)

        Returns:
            被重写的记录数
        """
        old_path = list(old_path or [])
        new_path = list(new_path or [])
        expected_delta = len(new_path) - len(old_path)
        if delta_depth is None:
            delta_depth = expected_delta
        elif delta_depth != expected_delta:
            logger.warning(
                f"{self.model.__name__}[{node_id}] 深度变化量 {delta_depth} 与路径长度差 "
                f"{expected_delta} 不一致，以路径为准"
            )
            delta_depth = expected_delta

        if old_path == new_path:
            logger.debug(f"{self.model.__name__}[{node_id}] 路径未变化，跳过级联更新")
            return 0

        old_prefix = self.path_type.encode(old_path + [node_id])
        new_prefix = self.path_type.encode(new_path + [node_id])

        spliced = self._splice_prefix(old_prefix, new_prefix, delta_depth)
        repaired = self._repair_unaligned(node_id, new_path, new_prefix)

        logger.debug(
            f"{self.model.__name__}[{node_id}] 级联更新完成: {old_prefix} -> {new_prefix}, "
            f"前缀替换 {spliced} 条, 逐行修复 {repaired} 条"
        )
        return spliced + repaired

    def _splice_prefix(self, old_prefix: str, new_prefix: str, delta_depth: int) -> int:
        """数据库端替换路径前缀"""
        path_col = self.options.path_column()
        depth_col = self.options.depth_column()

        new_value = literal(new_prefix, String) + func.substr(
            path_col, len(old_prefix) + 1, type_=String
        )
        stmt = (
            update(self.model)
            .where(path_col.like(self._prefix_pattern(old_prefix), escape=LIKE_ESCAPE))
            .values({
                self.options.path_field: new_value,
                self.options.depth_field: depth_col + delta_depth,
            })
            .execution_options(synchronize_session="fetch")
        )
        result = self.session.execute(stmt)
        return result.rowcount or 0

    def _repair_unaligned(self, node_id: Any, new_path: List[Any], new_prefix: str) -> int:
        """逐行修复不以新前缀开头的子孙记录"""
        base = self.model
        path_col = self.options.path_column()

        rows = self.session.execute(
            select(base.id, path_col).where(
                and_(
                    path_col.like(self.path_type.contains_pattern(node_id), escape=LIKE_ESCAPE),
                    path_col.not_like(self._prefix_pattern(new_prefix), escape=LIKE_ESCAPE),
                )
            )
        ).all()
        if not rows:
            return 0

        changes = []
        for row_id, path in rows:
            new_row_path = splice_path(path, node_id, new_path)
            if new_row_path is None:
                continue
            changes.append(PathChange(row_id, new_row_path, len(new_row_path)))

        if changes:
            logger.warning(
                f"{base.__name__}[{node_id}] 有 {len(changes)} 条子孙路径与前缀不一致，已逐行修复"
            )
        return self.apply(changes)

    def apply(self, changes: Iterable[PathChange]) -> int:
        """按主键批量写入路径变更

        使用 ORM 按主键批量 UPDATE，每批 batch_size 条，
        写入后让 session 中已加载的对应实例过期，下次访问时重新加载。

        Returns:
            写入的记录数
        """
        changes = list(changes)
        if not changes:
            return 0

        path_field = self.options.path_field
        depth_field = self.options.depth_field

        for start in range(0, len(changes), self.batch_size):
            batch = changes[start:start + self.batch_size]
            self.session.execute(
                update(self.model),
                [
                    {"id": change.id, path_field: change.path, depth_field: change.depth}
                    for change in batch
                ],
            )

        self._expire_loaded([change.id for change in changes])
        return len(changes)

    def _expire_loaded(self, ids: List[Any]) -> None:
        attrs = [self.options.path_field, self.options.depth_field]
        for row_id in ids:
            key = self.session.identity_key(self.model, row_id)
            instance = self.session.identity_map.get(key)
            if instance is not None:
                self.session.expire(instance, attrs)

    def _prefix_pattern(self, prefix: str) -> str:
        return escape_like(prefix) + "%"
