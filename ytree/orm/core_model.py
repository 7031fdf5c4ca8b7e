"""ORM基础模型

CoreModel 是所有模型（包括树形模型）的基类，提供时间戳字段、CRUD 与批量更新。
TreeMixin 放在 CoreModel 之前，覆盖 save / delete 以维护路径。
"""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, List, Optional, TYPE_CHECKING, Union

from sqlalchemy import DateTime, func, inspect, update
from sqlalchemy.orm import Mapped, Query, Session, declared_attr, has_inherited_table, mapped_column

if TYPE_CHECKING:
    from typing_extensions import Self

from .id_model import IdModel
from .utils import to_snake_case


PKType = Union[int, str]


class CoreModel(IdModel):
    """ORM基础模型类

    使用示例:
        from ytree.orm import CoreModel, init_database

        init_database("sqlite:///./catalog.db")

        class CatalogTag(CoreModel):
            name: Mapped[str] = mapped_column(String(50))

        tag = CatalogTag(name="python").save(commit=True)
        CatalogTag.bulk_update({"name": "python"}, {"name": "py"}, commit=True)
    """
    __abstract__ = True
    __allow_unmapped__ = True

    # 由 init_database() 或测试通过 scoped_session.query_property() 设置
    query: ClassVar[Optional[Query]] = None

    _session: Optional[Session] = None
    _system_fields: ClassVar[frozenset] = frozenset({"created_at", "updated_at"})

    @declared_attr.directive
    def __tablename__(cls) -> Optional[str]:
        """类名转下划线作为表名；单表继承的子类返回 None 沿用父表"""
        if has_inherited_table(cls):
            return None
        if "_" in cls.__name__:
            raise ValueError(f"{cls.__name__} 类名中包含下划线，无法生成表名")
        return to_snake_case(cls.__name__)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), server_default=func.now(), comment="创建时间"
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True, onupdate=func.now(), comment="更新时间"
    )

    def __init__(self, **kwargs):
        # 时间戳由数据库维护，构造参数中的同名字段直接丢弃
        super().__init__(**{k: v for k, v in kwargs.items() if k not in self._system_fields})

    def __repr__(self):
        return f"<{type(self).__name__} id={self.id}>"

    # ==================== session ====================

    @property
    def session(self) -> Session:
        if self._session is None:
            self._session = type(self).get_session()
        return self._session

    @classmethod
    def get_session(cls) -> Session:
        """query 属性所绑定的 session，未设置时使用 db_manager 的 session"""
        if cls.query is not None:
            return cls.query.session
        from .db_session import db_manager
        return db_manager.get_session()

    def _commit_if(self, commit: bool):
        if commit:
            self.session.commit()

    @classmethod
    def _cls_commit_if(cls, commit: bool):
        if commit:
            cls.get_session().commit()

    # ==================== CRUD ====================

    def save(self, commit: bool = False) -> Self:
        """加入 session（新增或更新），返回自身以便链式调用"""
        self.session.add(self)
        self._commit_if(commit)
        return self

    @classmethod
    def save_all(cls, objects: list, commit: bool = False) -> list:
        # 逐个调用 save，树形模型会为每个节点计算路径
        for obj in objects:
            obj.save()
        cls._cls_commit_if(commit)
        return objects

    def delete(self, commit: bool = False):
        self.session.delete(self)
        self._commit_if(commit)

    def refresh(self, attribute_names: list = None) -> Self:
        self.session.refresh(self, attribute_names)
        return self

    @classmethod
    def get(cls, id: PKType):
        """按主键查询，不存在返回 None"""
        return cls.query.filter(cls.id == id).first()

    @classmethod
    def get_all(cls) -> List:
        return cls.query.all()

    def to_dict(self, exclude: set = None) -> dict:
        """列属性转字典，树形模型的 path 为 ID 列表

        Args:
            exclude: 需要排除的字段
        """
        exclude = exclude or set()
        return {
            attr.key: getattr(self, attr.key)
            for attr in inspect(self).mapper.column_attrs
            if attr.key not in exclude
        }

    # ==================== 批量更新 ====================

    @classmethod
    def bulk_update(cls, filters: dict, values: dict, commit: bool = False) -> int:
        """按等值条件批量更新，不经过 save，树形字段不会被重新计算

        Args:
            filters: {字段名: 值}，不存在的字段被忽略
            values: 要写入的字段和值
            commit: 是否提交

        Returns:
            受影响的行数
        """
        conditions = [getattr(cls, key) == value for key, value in filters.items() if hasattr(cls, key)]
        return cls._execute_update(update(cls).where(*conditions).values(**values), commit)

    @classmethod
    def bulk_update_by_ids(cls, ids: list, values: dict, commit: bool = False) -> int:
        """按主键列表批量更新，ids 为空时不执行"""
        if not ids:
            return 0
        return cls._execute_update(update(cls).where(cls.id.in_(ids)).values(**values), commit)

    @classmethod
    def _execute_update(cls, stmt, commit: bool) -> int:
        rowcount = cls.get_session().execute(stmt).rowcount
        cls._cls_commit_if(commit)
        return rowcount
