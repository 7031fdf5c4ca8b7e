"""树形结构 Mixin

提供通用的树形操作方法，使用物化路径（Materialized Path）模式。

物化路径模式说明：
    - 每个节点存储从根到父节点的祖先 ID 列表，如 [1, 2]，数据库中为 "/1/2/"
    - depth 始终等于 len(path)，根节点为 0
    - 查询祖先/子孙只需要对 path 做 IN / LIKE 过滤
    - 移动节点时子孙路径由 DescendantUpdater 批量重写

使用示例:
    from ytree.orm import CoreModel
    from ytree.orm.tree import TreeMixin, TreeFieldsWithParentMixin

    class Category(TreeMixin, TreeFieldsWithParentMixin, CoreModel):
        __tree_scope__ = "tenant_id"

        tenant_id = mapped_column(Integer, nullable=False)
        name = mapped_column(String(100))

    root = Category(tenant_id=1, name="根").save(commit=True)
    child = Category(tenant_id=1, name="子", parent_id=root.id).save(commit=True)

    child.descendants().all()       # 所有子孙
    child.ancestors().all()         # 所有祖先（从根开始）
    child.move_to(None, commit=True)  # 移动为根节点
"""

from itertools import groupby
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy import event, false, or_, select
from sqlalchemy.orm import Query, Session, object_session

from ytree.log import get_logger
from .descendant_updater import DescendantUpdater, PathChange
from .exceptions import MoveVetoedError, TreeValidationError
from .move import MoveContext, MoveCoordinator, MoveHooks, moving_nodes
from .path_calculator import PathSnapshot, calculate_path
from .path_type import LIKE_ESCAPE
from .tree_options import TreeOptions, resolve_options

logger = get_logger()

_BEFORE_MOVE_HOOKS = "_tree_before_move_hooks"
_AFTER_MOVE_HOOKS = "_tree_after_move_hooks"


class TreeMixin:
    """树形结构 Mixin

    必须放在 CoreModel 之前，因为它包装了 save() 和 delete()：

        class Department(TreeMixin, TreeFieldsWithParentMixin, CoreModel):
            ...

    配置见 tree_options 模块（__tree_scope__、__tree_order__ 等类属性）。

    path/depth 由移动流程计算，不要直接赋值。
    """

    # ==================== 配置 ====================

    @classmethod
    def tree_options(cls) -> TreeOptions:
        return resolve_options(cls)

    @classmethod
    def _tree_query(cls) -> Query:
        return cls.tree_options().base.query

    @classmethod
    def _tree_session(cls) -> Session:
        return cls._tree_query().session

    def _node_session(self) -> Session:
        return object_session(self) or self.session

    # ==================== 字段访问 ====================

    @property
    def tree_parent_id(self) -> Any:
        return getattr(self, self.tree_options().parent_field)

    @property
    def tree_path(self) -> List[Any]:
        """祖先 ID 列表的副本"""
        return list(getattr(self, self.tree_options().path_field) or [])

    @property
    def tree_depth(self) -> int:
        return getattr(self, self.tree_options().depth_field) or 0

    def is_root(self) -> bool:
        """判断是否为根节点"""
        return self.tree_parent_id is None

    def is_child(self) -> bool:
        return not self.is_root()

    def is_leaf(self) -> bool:
        """判断是否为叶子节点（无子节点）"""
        return self.get_children_count() == 0

    # ==================== 移动钩子 ====================

    @classmethod
    def before_move(cls, func: Callable[[MoveContext], Any]) -> Callable[[MoveContext], Any]:
        """注册移动前钩子，返回 False 时拒绝本次移动

        使用示例:
            @Category.before_move
            def limit_depth(ctx):
                return ctx.new_depth <= 5
        """
        cls._register_hook(_BEFORE_MOVE_HOOKS, func)
        return func

    @classmethod
    def after_move(cls, func: Callable[[MoveContext], Any]) -> Callable[[MoveContext], Any]:
        """注册移动后钩子"""
        cls._register_hook(_AFTER_MOVE_HOOKS, func)
        return func

    @classmethod
    def _register_hook(cls, name: str, func: Callable) -> None:
        hooks = cls.__dict__.get(name)
        if hooks is None:
            hooks = []
            type.__setattr__(cls, name, hooks)
        hooks.append(func)

    @classmethod
    def move_hooks(cls) -> MoveHooks:
        """按继承顺序收集钩子，基类的钩子先执行"""
        before, after = [], []
        for klass in reversed(cls.__mro__):
            before.extend(klass.__dict__.get(_BEFORE_MOVE_HOOKS, ()))
            after.extend(klass.__dict__.get(_AFTER_MOVE_HOOKS, ()))
        return MoveHooks(before=before, after=after)

    def _move_coordinator(self) -> MoveCoordinator:
        return MoveCoordinator(self.tree_options(), self._node_session(), self.move_hooks())

    # ==================== 保存与移动 ====================

    def save(self, commit: bool = False):
        """保存节点

        新节点或父节点发生变化时，先执行移动流程（校验、计算路径、
        写入自身、级联更新子孙），否则按普通记录保存。

        Raises:
            TreeValidationError: 范围不一致或形成循环
            MoveVetoedError: 被 before_move 钩子拒绝
            CascadeIncompleteError: 子孙路径级联更新失败
        """
        coordinator = self._move_coordinator()
        if coordinator.will_move(self):
            coordinator.run(self, persist=self._persist_self)
        else:
            super().save(commit=False)

        if commit:
            self.session.commit()
        return self

    def _persist_self(self) -> None:
        super().save(commit=False)
        self._node_session().flush()

    def move_to(self, new_parent_id: Optional[Union[int, str]], commit: bool = False):
        """移动节点到新的父节点下

        autosave 关闭时只修改父节点字段，调用 save() 时才真正移动。
        校验失败或被拒绝时，父节点字段恢复为原值。

        Args:
            new_parent_id: 新父节点ID，None 表示移动到根级别
            commit: 是否立即提交
        """
        opts = self.tree_options()
        old_parent_id = getattr(self, opts.parent_field)
        setattr(self, opts.parent_field, new_parent_id)

        if not opts.autosave:
            return self

        try:
            self.save(commit=commit)
        except (TreeValidationError, MoveVetoedError):
            setattr(self, opts.parent_field, old_parent_id)
            raise
        return self

    # ==================== 删除 ====================

    def delete(self, commit: bool = False):
        """删除节点及其所有子孙

        子孙按深度从深到浅逐层删除，每层 flush 一次，不会违反外键约束。
        """
        self.delete_descendants()
        super().delete(commit=commit)

    def delete_descendants(self) -> int:
        """删除所有子孙节点

        Returns:
            删除的节点数量
        """
        opts = self.tree_options()
        session = self._node_session()
        nodes = self.descendants().order_by(None).order_by(opts.depth_column().desc()).all()

        for _, level in groupby(nodes, key=lambda n: getattr(n, opts.depth_field)):
            for node in level:
                session.delete(node)
            session.flush()

        if nodes:
            logger.debug(f"{type(self).__name__}[{self.id}] 删除子孙节点 {len(nodes)} 个")
        return len(nodes)

    # ==================== 节点查询 ====================

    def _scoped(self, query: Query) -> Query:
        return query.filter(*self.tree_options().scope_filters(self))

    def _ordered(self, query: Query) -> Query:
        return query.order_by(*self.tree_options().order_by())

    @classmethod
    def roots(cls, **scope_values) -> Query:
        """所有根节点

        Args:
            **scope_values: 范围字段取值，如 roots(tenant_id=1)
        """
        opts = cls.tree_options()
        return cls._tree_query().filter(
            opts.parent_column().is_(None),
            *opts.scope_filters(values=scope_values),
        ).order_by(*opts.order_by())

    def root(self):
        """获取根节点，自身为根时返回自身"""
        path = self.tree_path
        if self.is_root() or not path:
            return self
        base = self.tree_options().base
        root = self._scoped(self._tree_query().filter(base.id == path[0])).first()
        return root if root is not None else self

    def ancestors(self) -> Query:
        """祖先节点（默认从根开始）"""
        base = self.tree_options().base
        path = self.tree_path
        if not path:
            return self._tree_query().filter(false())
        return self._ordered(self._scoped(self._tree_query().filter(base.id.in_(path))))

    def self_and_ancestors(self) -> Query:
        base = self.tree_options().base
        ids = self.tree_path + ([self.id] if self.id is not None else [])
        if not ids:
            return self._tree_query().filter(false())
        return self._ordered(self._scoped(self._tree_query().filter(base.id.in_(ids))))

    def _descendant_clause(self):
        opts = self.tree_options()
        return opts.path_column().like(opts.path_type.contains_pattern(self.id), escape=LIKE_ESCAPE)

    def descendants(self) -> Query:
        """所有子孙节点（path 中包含自身 ID）"""
        if self.id is None:
            return self._tree_query().filter(false())
        return self._ordered(self._scoped(self._tree_query().filter(self._descendant_clause())))

    def self_and_descendants(self) -> Query:
        if self.id is None:
            return self._tree_query().filter(false())
        base = self.tree_options().base
        return self._ordered(self._scoped(self._tree_query().filter(
            or_(base.id == self.id, self._descendant_clause())
        )))

    def children(self) -> Query:
        """直接子节点"""
        if self.id is None:
            return self._tree_query().filter(false())
        opts = self.tree_options()
        return self._ordered(self._scoped(self._tree_query().filter(opts.parent_column() == self.id)))

    def _same_parent_clause(self):
        column = self.tree_options().parent_column()
        parent_id = self.tree_parent_id
        return column.is_(None) if parent_id is None else column == parent_id

    def self_and_siblings(self) -> Query:
        return self._ordered(self._scoped(self._tree_query().filter(self._same_parent_clause())))

    def siblings(self) -> Query:
        """兄弟节点（不包含自己）"""
        query = self._tree_query().filter(self._same_parent_clause())
        if self.id is not None:
            query = query.filter(self.tree_options().base.id != self.id)
        return self._ordered(self._scoped(query))

    def get_parent(self):
        """获取父节点，根节点返回 None"""
        parent_id = self.tree_parent_id
        if parent_id is None:
            return None
        return self._node_session().get(self.tree_options().base, parent_id)

    # ==================== 关系判断（不查询数据库） ====================

    def _is_same_node(self, other) -> bool:
        return other is self or (self.id is not None and other.id == self.id)

    def same_scope(self, other) -> bool:
        return self.tree_options().same_scope(self, other)

    def is_ancestor_of(self, other) -> bool:
        """判断当前节点是否为指定节点的祖先"""
        return self.id is not None and self.id in other.tree_path and self.same_scope(other)

    def is_or_is_ancestor_of(self, other) -> bool:
        return self._is_same_node(other) or self.is_ancestor_of(other)

    def is_descendant_of(self, other) -> bool:
        """判断当前节点是否为指定节点的子孙"""
        return other.id is not None and other.id in self.tree_path and self.same_scope(other)

    def is_or_is_descendant_of(self, other) -> bool:
        return self._is_same_node(other) or self.is_descendant_of(other)

    def is_sibling_of(self, other) -> bool:
        """父节点相同（都是根节点也算）且范围一致"""
        return (
            not self._is_same_node(other)
            and self.tree_parent_id == other.tree_parent_id
            and self.same_scope(other)
        )

    def is_or_is_sibling_of(self, other) -> bool:
        return self._is_same_node(other) or self.is_sibling_of(other)

    # ==================== 统计与便捷方法 ====================

    def get_children_count(self) -> int:
        """获取直接子节点数量"""
        return self.children().order_by(None).count()

    def get_descendant_count(self) -> int:
        """获取子孙节点数量"""
        return self.descendants().order_by(None).count()

    def get_path_ids(self) -> List[Union[int, str]]:
        """获取从根到当前节点的 ID 列表，如 [1, 2, 3]"""
        return self.tree_path + ([self.id] if self.id is not None else [])

    def get_path_names(self, separator: str = " > ", name_field: str = "name") -> str:
        """获取完整路径名称

        Returns:
            完整路径名称，如 "一级 > 二级 > 三级"
        """
        names = []
        for node in list(self.ancestors()) + [self]:
            name = getattr(node, name_field, None)
            if name:
                names.append(str(name))
        return separator.join(names)

    @classmethod
    def get_tree_list(cls, root_id: Union[int, str] = None, **scope_values) -> List[dict]:
        """获取树形结构列表（嵌套格式）

        Args:
            root_id: 根节点ID，None 表示获取所有根节点的树
            **scope_values: 范围字段取值

        Returns:
            嵌套的树形结构列表，子节点在 children 中
        """
        from .tree_utils import build_tree_list

        opts = cls.tree_options()
        if root_id is not None:
            root = cls._tree_session().get(opts.base, root_id)
            if root is None:
                return []
            query = root.self_and_descendants()
        else:
            query = cls._tree_query().filter(*opts.scope_filters(values=scope_values))
            query = query.order_by(*opts.order_by())

        nodes = query.all()
        return build_tree_list(
            [node.to_dict() for node in nodes],
            parent_field=opts.parent_field,
        )

    # ==================== 路径修复 ====================

    def recalculate_path(self, dry_run: bool = False) -> List[PathChange]:
        """根据 parent_id 重新计算自身及整棵子树的路径

        逐层广度优先遍历（每层一次查询），只写入有差异的记录。
        用于修复不一致的数据，正常移动不需要调用。

        Args:
            dry_run: 为 True 时只返回并记录将要发生的变更，不写入

        Returns:
            路径变更列表
        """
        opts = self.tree_options()
        session = self._node_session()

        with session.no_autoflush:
            parent_id = self.tree_parent_id
            parent = session.get(opts.base, parent_id) if parent_id is not None else None
            snapshot = PathSnapshot.of(parent, opts.path_field, opts.depth_field) if parent else None
            path, depth = calculate_path(parent_id, snapshot)

        changes = []
        if self.tree_path != path or self.tree_depth != depth:
            changes.append(PathChange(self.id, path, depth))
        changes.extend(self._collect_subtree_changes(session, {self.id: path + [self.id]}))

        return self._apply_path_changes(session, changes, dry_run)

    @classmethod
    def _collect_subtree_changes(cls, session: Session, frontier: Dict[Any, List[Any]]) -> List[PathChange]:
        opts = cls.tree_options()
        base = opts.base
        parent_col = opts.parent_column()
        visited = set(frontier)
        changes = []

        while frontier:
            rows = session.execute(
                select(base.id, parent_col, opts.path_column(), opts.depth_column())
                .where(parent_col.in_(list(frontier)))
            ).all()

            next_frontier = {}
            for row_id, parent_id, path, depth in rows:
                if row_id in visited:
                    logger.warning(f"{base.__name__}[{row_id}] 的 parent_id 形成循环，跳过")
                    continue
                visited.add(row_id)
                new_path = frontier[parent_id]
                if path != new_path or depth != len(new_path):
                    changes.append(PathChange(row_id, new_path, len(new_path)))
                next_frontier[row_id] = new_path + [row_id]
            frontier = next_frontier

        return changes

    @classmethod
    def rebuild_all_paths(cls, dry_run: bool = False) -> int:
        """重建整张表所有节点的路径

        父节点不存在的节点按根节点处理；parent_id 形成循环、
        从任何根都无法到达的节点保持原样并记录警告。

        Returns:
            有变更的节点数量
        """
        opts = cls.tree_options()
        base = opts.base
        session = cls._tree_session()

        rows = session.execute(
            select(base.id, opts.parent_column(), opts.path_column(), opts.depth_column())
        ).all()
        ids = {row[0] for row in rows}

        children: Dict[Any, list] = {}
        roots = []
        for row in rows:
            parent_id = row[1]
            if parent_id is None or parent_id not in ids:
                roots.append(row)
            else:
                children.setdefault(parent_id, []).append(row)

        changes = []
        visited = set()
        queue = [(row, []) for row in roots]
        while queue:
            next_queue = []
            for (row_id, _, path, depth), new_path in queue:
                visited.add(row_id)
                if path != new_path or depth != len(new_path):
                    changes.append(PathChange(row_id, new_path, len(new_path)))
                for child in children.get(row_id, ()):
                    next_queue.append((child, new_path + [row_id]))
            queue = next_queue

        unreachable = ids - visited
        if unreachable:
            logger.warning(f"{base.__name__} 有 {len(unreachable)} 个节点无法从根节点到达: {sorted(map(str, unreachable))}")

        cls._apply_path_changes(session, changes, dry_run)
        return len(changes)

    @classmethod
    def _apply_path_changes(cls, session: Session, changes: List[PathChange], dry_run: bool) -> List[PathChange]:
        name = cls.tree_options().base.__name__
        if dry_run:
            for change in changes:
                logger.info(f"[dry-run] {name}[{change.id}] path={change.path}, depth={change.depth}")
            return changes

        if changes:
            DescendantUpdater(cls, session).apply(changes)
            logger.info(f"{name} 路径修复完成，更新 {len(changes)} 条")
        return changes


@event.listens_for(Session, "before_flush")
def _move_flushed_nodes(session, flush_context, instances):
    """flush 前为绕过 save() 的节点执行移动流程

    包括 session.add() 后直接提交的新节点，以及直接修改了父节点字段后提交的节点。
    正在由 MoveCoordinator.run() 处理的节点（save() / move_to() 内部的 flush）会被跳过。
    节点自身由当前这次 flush 写入，子孙在 flush 前完成级联更新。
    校验失败、被钩子拒绝时异常从 flush() / commit() 抛出。
    """
    moving = moving_nodes(session)
    nodes = [
        obj for obj in list(session.new) + list(session.dirty)
        if isinstance(obj, TreeMixin) and id(obj) not in moving
    ]
    for node in nodes:
        coordinator = MoveCoordinator(node.tree_options(), session, node.move_hooks())
        if coordinator.will_move(node):
            coordinator.run(node, persist=lambda: None)


__all__ = ["TreeMixin"]
