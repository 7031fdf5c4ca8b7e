"""节点移动协调

一次移动（新建节点也视为一次移动）的状态流转：

    IDLE -> VALIDATING -> PATH_COMPUTED -> SELF_PERSISTED -> DESCENDANTS_CASCADED -> COMMITTED

- 校验失败：回到 IDLE，不产生任何写入
- before_move 钩子返回 False：抛出 MoveVetoedError，不产生任何写入
- 节点自身写入失败：异常原样抛出，不会触碰子孙节点
- 级联更新失败：节点自身已写入，抛出 CascadeIncompleteError，可用其中的参数重试
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ytree.log import get_logger
from .descendant_updater import DescendantUpdater
from .exceptions import CascadeIncompleteError, MoveVetoedError, ParentNotFoundError
from .path_calculator import PathSnapshot, calculate_path
from .tree_options import TreeOptions, get_tree_settings
from .validators import validate_move, validate_path_length

logger = get_logger()

MoveHook = Callable[["MoveContext"], Any]

_MOVING_NODES = "ytree_moving_nodes"


class MoveState(enum.Enum):
    """移动状态"""
    IDLE = "idle"
    VALIDATING = "validating"
    PATH_COMPUTED = "path_computed"
    SELF_PERSISTED = "self_persisted"
    DESCENDANTS_CASCADED = "descendants_cascaded"
    COMMITTED = "committed"


@dataclass
class MoveContext:
    """一次移动的上下文，传递给 before_move / after_move 钩子"""
    node: Any
    old_parent_id: Any = None
    new_parent_id: Any = None
    old_path: List[Any] = field(default_factory=list)
    new_path: List[Any] = field(default_factory=list)
    old_depth: int = 0
    new_depth: int = 0
    was_persisted: bool = False
    state: MoveState = MoveState.IDLE
    rewritten: int = 0

    @property
    def delta_depth(self) -> int:
        return self.new_depth - self.old_depth


@dataclass
class MoveHooks:
    """有序的移动钩子列表

    before 钩子在路径计算之后、写入之前执行，返回 False 时拒绝移动；
    after 钩子在级联更新完成后执行，返回值被忽略。
    """
    before: List[MoveHook] = field(default_factory=list)
    after: List[MoveHook] = field(default_factory=list)

    def run_before(self, ctx: MoveContext) -> None:
        for hook in self.before:
            if hook(ctx) is False:
                hook_name = getattr(hook, "__name__", repr(hook))
                logger.info(f"{type(ctx.node).__name__}[{ctx.node.id}] 移动被钩子 {hook_name} 拒绝")
                raise MoveVetoedError(ctx.node.id, hook_name)

    def run_after(self, ctx: MoveContext) -> None:
        for hook in self.after:
            hook(ctx)


def moving_nodes(session: Session) -> set:
    """session 中正在执行移动流程的节点，按 id() 记录"""
    return session.info.setdefault(_MOVING_NODES, set())


def _committed_value(node: Any, attr: str) -> Any:
    history = inspect(node).attrs[attr].history
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return None


class MoveCoordinator:
    """节点移动协调器

    Args:
        options: 树模型配置
        session: 数据库 session
        hooks: 移动钩子
        batch_size: 级联更新批大小

    使用示例:
        coordinator = MoveCoordinator(options, session, MoveHooks(before=[check_quota]))
        if coordinator.will_move(node):
            ctx = coordinator.run(node, persist=lambda: session.add(node) or session.flush())
    """

    def __init__(self, options: TreeOptions, session: Session,
                 hooks: Optional[MoveHooks] = None, batch_size: Optional[int] = None):
        self.options = options
        self.session = session
        self.hooks = hooks or MoveHooks()
        self.batch_size = batch_size

    def will_move(self, node: Any) -> bool:
        """新节点，或父节点与上次保存的值不同"""
        state = inspect(node)
        if not state.has_identity:
            return True
        return state.attrs[self.options.parent_field].history.has_changes()

    def run(self, node: Any, persist: Callable[[], Any]) -> MoveContext:
        """执行一次移动

        执行期间节点记录在 moving_nodes(session) 中，before_flush 监听器会跳过它。

        Args:
            node: 父节点已变更（或新建）的节点
            persist: 写入节点自身的回调，必须在返回前完成 flush；
                在 before_flush 监听器中为空操作，节点由正在进行的 flush 写入

        Returns:
            本次移动的上下文

        Raises:
            TreeValidationError: 校验失败
            MoveVetoedError: 被 before_move 钩子拒绝
            CascadeIncompleteError: 子孙节点级联更新失败
        """
        moving = moving_nodes(self.session)
        moving.add(id(node))
        try:
            return self._run(node, persist)
        finally:
            moving.discard(id(node))

    def _run(self, node: Any, persist: Callable[[], Any]) -> MoveContext:
        opts = self.options
        state = inspect(node)
        ctx = MoveContext(
            node=node,
            new_parent_id=getattr(node, opts.parent_field),
            was_persisted=state.has_identity,
        )
        ctx.state = MoveState.VALIDATING
        try:
            with self.session.no_autoflush:
                if ctx.was_persisted:
                    ctx.old_parent_id = _committed_value(node, opts.parent_field)
                    ctx.old_path = list(getattr(node, opts.path_field) or [])
                    ctx.old_depth = getattr(node, opts.depth_field) or 0
                parent = self._load_parent(ctx.new_parent_id)
                validate_move(node, parent, opts)
                snapshot = PathSnapshot.of(parent, opts.path_field, opts.depth_field) if parent else None
                ctx.new_path, ctx.new_depth = calculate_path(ctx.new_parent_id, snapshot)
                validate_path_length(node, ctx.old_path, ctx.new_path, opts, self.session)
        except Exception:
            ctx.state = MoveState.IDLE
            raise
        ctx.state = MoveState.PATH_COMPUTED
        logger.debug(
            f"{type(node).__name__}[{node.id}] 路径计算完成: {ctx.old_path} -> {ctx.new_path}"
        )

        self.hooks.run_before(ctx)

        setattr(node, opts.path_field, list(ctx.new_path))
        setattr(node, opts.depth_field, ctx.new_depth)
        persist()
        ctx.state = MoveState.SELF_PERSISTED

        if ctx.was_persisted:
            ctx.rewritten = self._cascade(ctx)
        ctx.state = MoveState.DESCENDANTS_CASCADED

        self.hooks.run_after(ctx)
        ctx.state = MoveState.COMMITTED

        if ctx.was_persisted:
            logger.info(
                f"{type(node).__name__}[{node.id}] 已从 {ctx.old_parent_id} 移动到 {ctx.new_parent_id}，"
                f"重写子孙 {ctx.rewritten} 条"
            )
        return ctx

    def _load_parent(self, parent_id: Any) -> Optional[Any]:
        if parent_id is None:
            return None
        parent = self.session.get(self.options.base, parent_id)
        if parent is None:
            if get_tree_settings().strict_parent:
                raise ParentNotFoundError(parent_id, field=self.options.parent_field)
            logger.warning(f"{self.options.base.__name__} 父节点 {parent_id} 不存在，按根节点处理")
        return parent

    def _cascade(self, ctx: MoveContext) -> int:
        updater = DescendantUpdater(self.options.model, self.session, self.batch_size)
        try:
            return updater.rewrite(ctx.node.id, ctx.old_path, ctx.new_path, ctx.delta_depth)
        except SQLAlchemyError as e:
            logger.error(
                f"{type(ctx.node).__name__}[{ctx.node.id}] 子孙路径级联更新失败: {e}，"
                f"old_path={ctx.old_path}, new_path={ctx.new_path}"
            )
            raise CascadeIncompleteError(
                ctx.node.id, ctx.old_path, ctx.new_path, ctx.delta_depth
            ) from e
