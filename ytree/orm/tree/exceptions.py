"""树形结构异常定义

校验类异常继承自 ValidationException，错误挂在父节点字段上，
可以直接通过 register_exception_handlers 返回给前端。
"""

from typing import Any, List, Optional

from ytree.exceptions import (
    ErrorCode,
    ResourceConflictException,
    ServiceUnavailableException,
    ValidationException,
)


class TreeValidationError(ValidationException):
    """树形结构校验异常基类

    Attributes:
        field: 出错的字段名（父节点字段）
        errors: 字段级错误，如 {"parent_id": ["不能形成循环结构"]}
    """

    def __init__(self, message: str, field: str = "parent_id", code=ErrorCode.VALIDATION_ERROR, **extra: Any):
        self.field = field
        self.errors = {field: [message]}
        super().__init__(message, code=code, details=[f"{field}: {message}"], field=field, **extra)


class ScopeMismatchError(TreeValidationError):
    """父节点与当前节点不在同一范围内

    Attributes:
        scope_fields: 取值不一致的范围字段
    """

    def __init__(self, field: str = "parent_id", scope_fields: Optional[List[str]] = None, **extra: Any):
        self.scope_fields = list(scope_fields or [])
        super().__init__(
            f"父节点不在同一范围内: {', '.join(self.scope_fields)}",
            field=field,
            code=ErrorCode.TREE_SCOPE_MISMATCH,
            scope_fields=self.scope_fields,
            **extra
        )


class CyclicStructureError(TreeValidationError):
    """移动会形成循环结构（父节点是自身或自身的子孙）"""

    def __init__(self, node_id: Any = None, parent_id: Any = None, field: str = "parent_id", **extra: Any):
        self.node_id = node_id
        self.parent_id = parent_id
        super().__init__(
            f"不能将节点 {node_id} 移动到自身或其子孙节点 {parent_id} 下",
            field=field,
            code=ErrorCode.TREE_CYCLIC_STRUCTURE,
            node_id=node_id,
            parent_id=parent_id,
            **extra
        )


class ParentNotFoundError(TreeValidationError):
    """父节点不存在（仅在 strict_parent 开启时抛出）"""

    def __init__(self, parent_id: Any = None, field: str = "parent_id", **extra: Any):
        self.parent_id = parent_id
        super().__init__(
            f"父节点不存在: {parent_id}",
            field=field,
            code=ErrorCode.TREE_PARENT_NOT_FOUND,
            parent_id=parent_id,
            **extra
        )


class PathTooLongError(TreeValidationError):
    """移动后自身或子孙的路径超过路径列长度

    Attributes:
        length: 超长路径编码后的长度
        max_length: 路径列长度
    """

    def __init__(self, node_id: Any = None, length: int = 0, max_length: int = 0,
                 field: str = "parent_id", **extra: Any):
        self.node_id = node_id
        self.length = length
        self.max_length = max_length
        super().__init__(
            f"节点 {node_id} 移动后路径长度 {length} 超过上限 {max_length}",
            field=field,
            code=ErrorCode.TREE_PATH_TOO_LONG,
            node_id=node_id,
            length=length,
            max_length=max_length,
            **extra
        )


class MoveVetoedError(ResourceConflictException):
    """移动被 before_move 钩子拒绝

    Attributes:
        hook_name: 拒绝移动的钩子名称
    """

    def __init__(self, node_id: Any = None, hook_name: str = None, **extra: Any):
        self.node_id = node_id
        self.hook_name = hook_name
        super().__init__(
            f"节点 {node_id} 的移动被 {hook_name} 拒绝",
            code=ErrorCode.TREE_MOVE_VETOED,
            node_id=node_id,
            hook_name=hook_name,
            **extra
        )


class CascadeIncompleteError(ServiceUnavailableException):
    """子孙路径级联更新失败

    节点自身已经写入，部分子孙路径可能仍是旧值。
    级联更新是幂等的，可以用异常中携带的参数重新执行：

        try:
            node.save(commit=True)
        except CascadeIncompleteError as e:
            session.rollback()  # 或者在新事务中
            DescendantUpdater(Category, session).rewrite(e.node_id, e.old_path, e.new_path, e.delta_depth)
    """

    def __init__(self, node_id: Any, old_path: List[Any], new_path: List[Any], delta_depth: int, **extra: Any):
        self.node_id = node_id
        self.old_path = list(old_path)
        self.new_path = list(new_path)
        self.delta_depth = delta_depth
        super().__init__(
            f"节点 {node_id} 的子孙路径更新未完成，可使用相同参数重试",
            code=ErrorCode.TREE_CASCADE_INCOMPLETE,
            node_id=node_id,
            old_path=self.old_path,
            new_path=self.new_path,
            delta_depth=delta_depth,
            **extra
        )


__all__ = [
    "TreeValidationError",
    "ScopeMismatchError",
    "CyclicStructureError",
    "ParentNotFoundError",
    "PathTooLongError",
    "MoveVetoedError",
    "CascadeIncompleteError",
]
