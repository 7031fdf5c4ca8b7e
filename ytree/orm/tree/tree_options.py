"""树形模型配置

每个树模型通过类属性声明配置，首次使用时解析为不可变的 TreeOptions，
之后所有路径计算、校验、查询都只读取这个对象。

可声明的类属性:
    __tree_parent_field__  父节点字段名，默认 "parent_id"
    __tree_path_field__    路径字段名，默认 "path"
    __tree_depth_field__   深度字段名，默认 "depth"
    __tree_scope__         范围字段（str 或 list），父子节点这些字段必须相等
    __tree_order__         排序，字段名、(字段名, "asc"|"desc") 或它们的列表，默认按深度升序
    __tree_base_class__    单表继承时的根模型类，默认为最上层映射了表的树模型
    __tree_autosave__      move_to 后是否自动保存，默认读取 TreeSettings.autosave
"""

from dataclasses import dataclass
from typing import Any, Optional, Tuple, Type

from ytree.config import TreeSettings

_ORDER_DIRECTIONS = ("asc", "desc")

_settings: Optional[TreeSettings] = None


def configure_tree(settings: Optional[TreeSettings] = None, **kwargs) -> TreeSettings:
    """设置全局树形配置

    只影响之后解析的模型配置和之后执行的级联更新。

    使用示例:
        configure_tree(cascade_batch_size=1000)
        configure_tree(TreeSettings(strict_parent=True))
    """
    global _settings
    if settings is None:
        settings = TreeSettings(**kwargs)
    elif kwargs:
        settings = settings.model_copy(update=kwargs)
    _settings = settings
    return _settings


def get_tree_settings() -> TreeSettings:
    """获取全局树形配置，未设置时从环境变量加载"""
    global _settings
    if _settings is None:
        _settings = TreeSettings()
    return _settings


def reset_tree_settings():
    """重置全局树形配置（主要用于测试）"""
    global _settings
    _settings = None


def _normalize_scope(scope: Any) -> Tuple[str, ...]:
    if not scope:
        return ()
    if isinstance(scope, str):
        return (scope,)
    return tuple(scope)


def _is_order_pair(order: Any) -> bool:
    """("depth", "desc") 这样的单个排序项"""
    return (
        isinstance(order, (tuple, list))
        and len(order) == 2
        and all(isinstance(item, str) for item in order)
        and order[1].lower() in _ORDER_DIRECTIONS
    )


def _normalize_order(order: Any, depth_field: str) -> Tuple[Tuple[str, str], ...]:
    if order is None:
        return ((depth_field, "asc"),)
    if isinstance(order, str) or _is_order_pair(order):
        order = [order]

    result = []
    for item in order:
        if isinstance(item, str):
            field, direction = item, "asc"
        else:
            field, direction = item
        direction = direction.lower()
        if direction not in _ORDER_DIRECTIONS:
            raise ValueError(f"排序方向只能是 asc 或 desc: {item!r}")
        result.append((field, direction))
    return tuple(result)


def _find_base_class(model: type) -> type:
    """查找最上层映射了表的树模型（单表继承的根）"""
    from .tree_mixin import TreeMixin

    for klass in reversed(model.__mro__):
        if (
            isinstance(klass, type)
            and issubclass(klass, TreeMixin)
            and klass is not TreeMixin
            and '__table__' in klass.__dict__
        ):
            return klass
    return model


@dataclass(frozen=True)
class TreeOptions:
    """树模型的不可变配置"""

    model: type
    parent_field: str = "parent_id"
    path_field: str = "path"
    depth_field: str = "depth"
    scope: Tuple[str, ...] = ()
    order: Tuple[Tuple[str, str], ...] = (("depth", "asc"),)
    base_class: Optional[type] = None
    autosave: bool = True

    @classmethod
    def resolve(cls, model: type) -> "TreeOptions":
        """从模型类属性解析配置

        Raises:
            ValueError: 声明的字段在模型上不存在
        """
        parent_field = getattr(model, "__tree_parent_field__", "parent_id")
        path_field = getattr(model, "__tree_path_field__", "path")
        depth_field = getattr(model, "__tree_depth_field__", "depth")
        scope = _normalize_scope(getattr(model, "__tree_scope__", None))
        order = _normalize_order(getattr(model, "__tree_order__", None), depth_field)

        base_class = getattr(model, "__tree_base_class__", None) or _find_base_class(model)

        autosave = getattr(model, "__tree_autosave__", None)
        if autosave is None:
            autosave = get_tree_settings().autosave

        for field in (parent_field, path_field, depth_field, *scope, *(f for f, _ in order)):
            if not hasattr(model, field):
                raise ValueError(f"{model.__name__} 缺少树形字段: {field}")

        return cls(
            model=model,
            parent_field=parent_field,
            path_field=path_field,
            depth_field=depth_field,
            scope=scope,
            order=order,
            base_class=base_class,
            autosave=bool(autosave),
        )

    # ==================== 字段访问 ====================

    @property
    def base(self) -> type:
        return self.base_class or self.model

    def parent_column(self, model: Optional[type] = None):
        return getattr(model or self.base, self.parent_field)

    def path_column(self, model: Optional[type] = None):
        return getattr(model or self.base, self.path_field)

    def depth_column(self, model: Optional[type] = None):
        return getattr(model or self.base, self.depth_field)

    @property
    def path_type(self):
        """路径列的 MaterializedPath 类型"""
        return self.path_column().property.columns[0].type

    def order_by(self, model: Optional[type] = None) -> list:
        """构造 ORDER BY 子句"""
        model = model or self.base
        clauses = []
        for field, direction in self.order:
            column = getattr(model, field)
            clauses.append(column.desc() if direction == "desc" else column.asc())
        return clauses

    def scope_values(self, node: Any) -> dict:
        return {field: getattr(node, field) for field in self.scope}

    def scope_filters(self, node: Any = None, values: Optional[dict] = None,
                      model: Optional[type] = None) -> list:
        """范围过滤条件"""
        model = model or self.base
        if values is None:
            values = self.scope_values(node) if node is not None else {}
        return [getattr(model, field) == value for field, value in values.items()]

    def same_scope(self, a: Any, b: Any) -> bool:
        return all(getattr(a, field) == getattr(b, field) for field in self.scope)


def resolve_options(model: Type) -> TreeOptions:
    """获取模型的 TreeOptions，每个类只解析一次"""
    options = model.__dict__.get("_tree_options")
    if options is None:
        options = TreeOptions.resolve(model)
        type.__setattr__(model, "_tree_options", options)
    return options

