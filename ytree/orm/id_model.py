"""ID模型基类

IdModel 只负责主键：列类型与生成方式都由主键策略决定（见 primary_key.py）。
一般情况下直接使用 CoreModel。
"""

from __future__ import annotations

from typing import ClassVar, Optional, Union

from sqlalchemy import Column, event
from sqlalchemy.orm import Mapped, declarative_base, declared_attr, mapped_column
from typing_extensions import dataclass_transform

from .primary_key import IdType, id_column_type, next_id, resolve_strategy


Base = declarative_base()


@dataclass_transform(kw_only_default=True, field_specifiers=(mapped_column,))
class IdModel(Base):
    """ID模型基类

    在模型上声明 id_type 等价于声明 __pk_strategy__：

        class Region(TreeMixin, TreeFieldsWithParentMixin, CoreModel):
            id_type = IdType.SHORT_UUID
    """
    __abstract__ = True

    id_type: ClassVar[Optional[IdType]] = None

    id: Mapped[Union[int, str]]

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.__dict__.get("id_type") is not None and "__pk_strategy__" not in cls.__dict__:
            cls.__pk_strategy__ = cls.id_type

    @declared_attr
    def id(cls):
        autoincrement = resolve_strategy(cls) == IdType.AUTO_INCREMENT
        return Column(id_column_type(cls), primary_key=True, autoincrement=autoincrement, comment="主键ID")


@event.listens_for(IdModel, "before_insert", propagate=True)
def _assign_primary_key(mapper, connection, target):
    """插入前为非自增主键赋值，已手动指定的主键保持不变"""
    if target.id is None:
        target.id = next_id(type(target))
