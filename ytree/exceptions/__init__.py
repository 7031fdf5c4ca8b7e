"""异常模块

提供业务异常类体系和 FastAPI 全局异常处理器。

使用示例:
    from ytree.exceptions import Err, register_exception_handlers

    register_exception_handlers(app)
    raise Err.not_found("节点不存在")
"""

from .exceptions import (
    ErrorCode,
    ErrorCodeType,
    BusinessException,
    ResourceNotFoundException,
    ResourceConflictException,
    ValidationException,
    ServiceUnavailableException,
    Err,
)

from .handlers import (
    business_exception_handler,
    general_exception_handler,
    register_exception_handlers,
)

__all__ = [
    "ErrorCode",
    "ErrorCodeType",
    "BusinessException",
    "ResourceNotFoundException",
    "ResourceConflictException",
    "ValidationException",
    "ServiceUnavailableException",
    "Err",
    "business_exception_handler",
    "general_exception_handler",
    "register_exception_handlers",
]
