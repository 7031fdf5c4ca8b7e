"""日志模块

提供日志配置与管理：
- setup_logger / setup_root_logger: 配置日志记录器
- get_logger: 按模块名获取日志记录器

使用示例:
    from ytree.log import setup_root_logger, get_logger

    setup_root_logger(level="DEBUG")
    logger = get_logger()
"""

from .logger import (
    setup_logger,
    setup_root_logger,
    create_formatter,
    MicrosecondFormatter,
    LoggingConfigProtocol,
    DEFAULT_LOG_FORMAT,
    logger,
    get_logger,
)

__all__ = [
    "setup_logger",
    "setup_root_logger",
    "create_formatter",
    "MicrosecondFormatter",
    "LoggingConfigProtocol",
    "DEFAULT_LOG_FORMAT",
    "logger",
    "get_logger",
]
