"""主键策略

主键策略同时决定三件事：
- id 列的类型
- 非自增主键在插入前如何生成
- 树形模型中 parent_id 列与路径元素的类型

使用示例:
    from ytree.orm import configure_primary_key, IdType

    # 在定义模型之前调用
    configure_primary_key(strategy=IdType.SHORT_UUID, short_uuid_length=12)
"""

import base64
import uuid
from enum import Enum
from typing import Optional, Union

from sqlalchemy import Integer, String
from sqlalchemy.types import TypeEngine


class IdType(Enum):
    """主键类型"""
    AUTO_INCREMENT = "auto_increment"
    UUID = "uuid"
    SHORT_UUID = "short_uuid"

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"IdType.{self.name}"


class PrimaryKeyConfig:
    """全局主键配置

    列类型在模型类定义时确定，修改配置只影响之后定义的模型。
    """

    _strategy: IdType = IdType.AUTO_INCREMENT
    _short_uuid_length: int = 10

    @classmethod
    def configure(cls, strategy: IdType = IdType.AUTO_INCREMENT, short_uuid_length: int = 10):
        if not 8 <= short_uuid_length <= 32:
            raise ValueError(f"短UUID长度必须在8-32之间，当前值: {short_uuid_length}")
        cls._strategy = strategy
        cls._short_uuid_length = short_uuid_length

    @classmethod
    def get_strategy(cls) -> IdType:
        return cls._strategy

    @classmethod
    def get_short_uuid_length(cls) -> int:
        return cls._short_uuid_length

    @classmethod
    def reset(cls):
        """恢复默认（测试用）"""
        cls._strategy = IdType.AUTO_INCREMENT
        cls._short_uuid_length = 10


def configure_primary_key(strategy: IdType = IdType.AUTO_INCREMENT, short_uuid_length: int = 10):
    """配置全局主键策略"""
    PrimaryKeyConfig.configure(strategy=strategy, short_uuid_length=short_uuid_length)


def resolve_strategy(model_class: type) -> IdType:
    """模型实际使用的主键策略：模型上的 __pk_strategy__ 优先于全局配置"""
    return getattr(model_class, "__pk_strategy__", None) or PrimaryKeyConfig.get_strategy()


def id_column_type(model_class: type) -> TypeEngine:
    """id 列（以及引用它的 parent_id 列）的类型"""
    strategy = resolve_strategy(model_class)
    if strategy == IdType.AUTO_INCREMENT:
        return Integer()
    if strategy == IdType.UUID:
        return String(36)
    if strategy == IdType.SHORT_UUID:
        return String(PrimaryKeyConfig.get_short_uuid_length() + 2)
    raise ValueError(f"不支持的主键类型：{strategy}")


def path_item_type(model_class: type) -> type:
    """路径元素的 Python 类型：自增主键为 int，其余为 str"""
    return int if resolve_strategy(model_class) == IdType.AUTO_INCREMENT else str


def generate_uuid() -> str:
    """完整UUID（36位）"""
    return str(uuid.uuid4())


def generate_short_uuid(length: int = 10) -> str:
    """短UUID

    uuid4 的 base32 编码截取前 length 位并转小写，字符集为 a-z 和 2-7，
    不会出现路径分隔符，大小写也不会在 LIKE 匹配中产生歧义。
    """
    encoded = base64.b32encode(uuid.uuid4().bytes).decode("ascii").rstrip("=")
    return encoded[:length].lower()


def next_id(model_class: type) -> Optional[Union[int, str]]:
    """为新记录生成主键，自增主键返回 None 交给数据库"""
    strategy = resolve_strategy(model_class)
    if strategy == IdType.UUID:
        return generate_uuid()
    if strategy == IdType.SHORT_UUID:
        return generate_short_uuid(PrimaryKeyConfig.get_short_uuid_length())
    return None


__all__ = [
    "IdType",
    "PrimaryKeyConfig",
    "configure_primary_key",
    "resolve_strategy",
    "id_column_type",
    "path_item_type",
    "generate_uuid",
    "generate_short_uuid",
    "next_id",
]
