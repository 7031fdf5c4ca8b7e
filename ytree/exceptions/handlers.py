"""FastAPI 异常处理器

把 BusinessException（包括树形结构的校验、否决、级联失败异常）转换为统一的 JSON 响应：

    {
        "status": "error",
        "message": "不能将节点 3 移动到自身或其子孙节点 7 下",
        "msg_details": ["parent_id: ..."],
        "data": {},
        "error_code": "TREE_CYCLIC_STRUCTURE",
        "errors": {"parent_id": ["..."]}
    }

环境变量 DEBUG=true 时附加 debug_info（异常的 extra 上下文）。
"""

import os
import traceback

from fastapi import Request, status
from fastapi.responses import JSONResponse

from ytree.log import get_logger
from .exceptions import BusinessException, ErrorCode

logger = get_logger()


def _is_debug() -> bool:
    return os.getenv("DEBUG", "false").lower() == "true"


def _error_body(message: str, details: list, error_code) -> dict:
    return {
        "status": "error",
        "message": message,
        "msg_details": details,
        "data": {},
        "error_code": error_code,
    }


async def business_exception_handler(request: Request, exc: BusinessException) -> JSONResponse:
    logger.warning(
        f"{request.method} {request.url.path} 业务异常 {exc.code}: {exc.message}",
        extra={"error_code": exc.code, "status_code": exc.status_code},
    )

    content = _error_body(exc.message, exc.details, exc.code)
    # 树形校验异常带有字段级错误
    errors = getattr(exc, "errors", None)
    if errors:
        content["errors"] = errors
    if _is_debug() and exc.extra:
        content["debug_info"] = {key: str(value) for key, value in exc.extra.items()}

    return JSONResponse(status_code=exc.status_code, content=content)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """兜底处理器：记录完整堆栈，响应中不暴露异常内容（DEBUG 模式除外）"""
    logger.error(
        f"{request.method} {request.url.path} 未处理的异常 {type(exc).__name__}: {exc}\n"
        + "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )

    details = [f"异常类型: {type(exc).__name__}", f"异常消息: {exc}"] if _is_debug() else []
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("服务器内部错误", details, ErrorCode.INTERNAL_SERVER_ERROR),
    )


def register_exception_handlers(app) -> None:
    """注册异常处理器

    使用示例:
        app = FastAPI()
        register_exception_handlers(app)
    """
    app.add_exception_handler(BusinessException, business_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
    logger.debug("异常处理器已注册")
