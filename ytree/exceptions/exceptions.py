"""业务异常

BusinessException 及其按 HTTP 状态码划分的子类。树形结构的异常
（ytree.orm.tree.exceptions）都派生自这里的类，可以直接交给 FastAPI 异常处理器。
"""

import copy
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union

from fastapi import status


class ErrorCode(str, Enum):
    """错误代码

    继承自 str，可以直接与字符串比较，也可以直接序列化到 JSON 响应中。
    """

    BUSINESS_ERROR = "BUSINESS_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    # 树形结构
    TREE_SCOPE_MISMATCH = "TREE_SCOPE_MISMATCH"
    TREE_CYCLIC_STRUCTURE = "TREE_CYCLIC_STRUCTURE"
    TREE_PARENT_NOT_FOUND = "TREE_PARENT_NOT_FOUND"
    TREE_PATH_TOO_LONG = "TREE_PATH_TOO_LONG"
    TREE_MOVE_VETOED = "TREE_MOVE_VETOED"
    TREE_CASCADE_INCOMPLETE = "TREE_CASCADE_INCOMPLETE"


ErrorCodeType = Union[str, ErrorCode]


class BusinessException(Exception):
    """业务异常基类

    属性:
        message: 面向用户的错误消息
        code: 错误代码，ErrorCode 或自定义字符串
        status_code: HTTP 状态码
        details: 详细错误信息列表
        extra: 额外的上下文（DEBUG 模式下随响应返回）

    子类通过类属性声明默认消息、错误代码和状态码：

        class QuotaExceeded(BusinessException):
            default_message = "节点数量超出配额"
            default_code = "QUOTA_EXCEEDED"
            default_status_code = status.HTTP_409_CONFLICT
    """

    default_message: ClassVar[str] = "业务处理失败"
    default_code: ClassVar[ErrorCodeType] = ErrorCode.BUSINESS_ERROR
    default_status_code: ClassVar[int] = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[ErrorCodeType] = None,
        status_code: Optional[int] = None,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.status_code = status_code or self.default_status_code
        self.details = details or []
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            "details": copy.deepcopy(self.details),
            "extra": copy.deepcopy(self.extra),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, code={self.code!r}, status_code={self.status_code})"


class ResourceNotFoundException(BusinessException):
    """资源不存在 (404)"""
    default_message = "资源不存在"
    default_code = ErrorCode.RESOURCE_NOT_FOUND
    default_status_code = status.HTTP_404_NOT_FOUND


class ResourceConflictException(BusinessException):
    """资源冲突 (409)"""
    default_message = "资源冲突"
    default_code = ErrorCode.RESOURCE_CONFLICT
    default_status_code = status.HTTP_409_CONFLICT


class ValidationException(BusinessException):
    """数据验证失败 (422)"""
    default_message = "数据验证失败"
    default_code = ErrorCode.VALIDATION_ERROR
    default_status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ServiceUnavailableException(BusinessException):
    """服务不可用 (503)，如数据库写入失败且可以重试"""
    default_message = "服务暂时不可用"
    default_code = ErrorCode.SERVICE_UNAVAILABLE
    default_status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class Err:
    """异常快捷创建

    使用示例:
        raise Err.not_found("节点不存在", resource_id=3)
        raise Err.invalid(details=["父节点不能是自身"])
    """

    not_found = ResourceNotFoundException
    conflict = ResourceConflictException
    invalid = ValidationException
    unavailable = ServiceUnavailableException
    fail = BusinessException
