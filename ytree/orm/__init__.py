"""ORM模块

- CoreModel: 核心模型基类，包含ID、时间戳、CRUD、批量更新
- 数据库会话管理
- 树形结构扩展（ytree.orm.tree）

使用示例:
    from ytree.orm import CoreModel, init_database, get_db
    from ytree.orm.tree import TreeMixin, TreeFieldsWithParentMixin

    init_database("sqlite:///./catalog.db")

    class Category(TreeMixin, TreeFieldsWithParentMixin, CoreModel):
        name = mapped_column(String(100))

    # 在路由中使用
    @app.get("/categories/roots")
    def get_roots(db: Session = Depends(get_db)):
        return [c.to_dict() for c in Category.roots()]
"""

from .id_model import IdModel, Base
from .core_model import CoreModel, PKType
from .primary_key import IdType, PrimaryKeyConfig, configure_primary_key
from .db_session import (
    DatabaseManager,
    db_manager,
    init_database,
    get_engine,
    get_db,
    db_session_scope,
)
from .tree import (
    TreeMixin,
    TreeFieldsMixin,
    TreeFieldsWithParentMixin,
    MaterializedPath,
    TreeOptions,
    configure_tree,
    DescendantUpdater,
    MoveCoordinator,
)

__all__ = [
    "Base",
    "IdModel",
    "CoreModel",
    "PKType",
    "IdType",
    "PrimaryKeyConfig",
    "configure_primary_key",
    "DatabaseManager",
    "db_manager",
    "init_database",
    "get_engine",
    "get_db",
    "db_session_scope",
    "TreeMixin",
    "TreeFieldsMixin",
    "TreeFieldsWithParentMixin",
    "MaterializedPath",
    "TreeOptions",
    "configure_tree",
    "DescendantUpdater",
    "MoveCoordinator",
]
