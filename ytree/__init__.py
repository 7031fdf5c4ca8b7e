"""
YTree - 基于 SQLAlchemy 的物化路径树形模型库

提供树形模型、节点移动与级联更新、路径修复，以及配置、日志、异常处理等基础功能
"""

from .version import __version__, __author__, __description__

from .orm import (
    Base,
    CoreModel,
    init_database,
    get_engine,
    get_db,
    db_session_scope,
)
from .orm.tree import (
    TreeMixin,
    TreeFieldsMixin,
    TreeFieldsWithParentMixin,
    configure_tree,
    TreeValidationError,
    ScopeMismatchError,
    CyclicStructureError,
    PathTooLongError,
    MoveVetoedError,
    CascadeIncompleteError,
)
from .exceptions import BusinessException, Err, register_exception_handlers
from .config import AppSettings, TreeSettings, load_yaml_config
from .log import get_logger, setup_root_logger

__all__ = [
    "__version__",
    "__author__",
    "__description__",
    "Base",
    "CoreModel",
    "init_database",
    "get_engine",
    "get_db",
    "db_session_scope",
    "TreeMixin",
    "TreeFieldsMixin",
    "TreeFieldsWithParentMixin",
    "configure_tree",
    "TreeValidationError",
    "ScopeMismatchError",
    "CyclicStructureError",
    "PathTooLongError",
    "MoveVetoedError",
    "CascadeIncompleteError",
    "BusinessException",
    "Err",
    "register_exception_handlers",
    "AppSettings",
    "TreeSettings",
    "load_yaml_config",
    "get_logger",
    "setup_root_logger",
]
