"""日志配置

库内模块统一用 get_logger() 获取以 "ytree." 开头的日志器，
应用通过 setup_root_logger() 或 setup_logger("ytree", ...) 决定输出位置和级别。

日志级别约定：
- DEBUG: 路径计算结果、级联更新条数
- INFO: 节点移动完成、路径修复结果
- WARNING: 父节点不存在、数据不一致被修复
- ERROR: 级联更新失败
"""

import inspect
import logging
import logging.handlers
import os
import time
from typing import Any, Optional, Protocol, runtime_checkable

DEFAULT_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(filename)s:%(lineno)d - %(message)s"

_PACKAGE = "ytree"


@runtime_checkable
class LoggingConfigProtocol(Protocol):
    """setup_root_logger(config=...) 需要的配置属性，LoggingSettings 满足此协议"""
    level: str
    file_path: str
    file_max_bytes: int
    file_backup_count: int
    file_encoding: str


class MicrosecondFormatter(logging.Formatter):
    """时间戳精确到微秒"""

    def formatTime(self, record, datefmt=None):
        seconds = time.strftime(datefmt or "%Y-%m-%d %H:%M:%S", self.converter(record.created))
        return "%s.%06d" % (seconds, (record.created % 1) * 1_000_000)


def create_formatter(
    log_format: str = None,
    datefmt: str = "%Y-%m-%d %H:%M:%S",
    use_microseconds: bool = True
) -> logging.Formatter:
    formatter_class = MicrosecondFormatter if use_microseconds else logging.Formatter
    return formatter_class(fmt=log_format or DEFAULT_LOG_FORMAT, datefmt=datefmt)


def _file_handler(log_file: str, options: Optional[dict]) -> logging.Handler:
    """options 为空时普通追加写入，否则按大小轮转"""
    directory = os.path.dirname(log_file)
    if directory:
        os.makedirs(directory, exist_ok=True)
    if not options:
        return logging.FileHandler(log_file, encoding="utf-8")
    return logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=options.get("maxBytes", 10 * 1024 * 1024),
        backupCount=options.get("backupCount", 5),
        encoding=options.get("encoding", "utf-8"),
    )


def setup_logger(
    name: str = None,
    level: str = "INFO",
    log_file: str = None,
    log_format: str = None,
    console: bool = True,
    use_microseconds: bool = True,
    propagate: bool = True,
    file_handler_options: dict = None
) -> logging.Logger:
    """配置日志器，已有的处理器会被替换

    Args:
        name: 日志器名称，None 为根日志器
        level: DEBUG / INFO / WARNING / ERROR / CRITICAL
        log_file: 日志文件路径，目录不存在时自动创建
        log_format: 日志格式
        console: 是否输出到控制台
        use_microseconds: 时间戳是否精确到微秒
        propagate: 是否传播到父日志器
        file_handler_options: 提供时按大小轮转，支持 maxBytes / backupCount / encoding

    使用示例:
        # 只看树操作的调试日志
        setup_logger("ytree.orm.tree", level="DEBUG")

        setup_logger("ytree", log_file="logs/tree.log",
                     file_handler_options={"maxBytes": 10 * 1024 * 1024, "backupCount": 5})
    """
    target = logging.getLogger(name)
    target.setLevel(getattr(logging, level.upper(), logging.INFO))
    target.propagate = propagate
    target.handlers.clear()

    handlers = []
    if console:
        handlers.append(logging.StreamHandler())
    if log_file:
        handlers.append(_file_handler(log_file, file_handler_options))

    formatter = create_formatter(log_format, use_microseconds=use_microseconds)
    for handler in handlers:
        handler.setFormatter(formatter)
        target.addHandler(handler)
    return target


def setup_root_logger(
    level: str = "INFO",
    log_file: str = None,
    console: bool = True,
    use_microseconds: bool = True,
    file_handler_options: dict = None,
    config: Any = None,
    config_path: str = None,
    config_base_dir: str = None,
) -> logging.Logger:
    """配置根日志器

    三种方式，后两种会覆盖 level / log_file / file_handler_options 参数：

        setup_root_logger(level="INFO", log_file="logs/app.log")
        setup_root_logger(config=settings.logging)
        setup_root_logger(config_path="config/settings.yaml")  # 读取其中的 logging 段
    """
    if config_path is not None:
        from ..config import ConfigLoader, LoggingSettings
        config = LoggingSettings(**ConfigLoader.load(config_path, base_dir=config_base_dir).get("logging", {}))
        console = getattr(config, "enable_console", console)

    if config is not None:
        level = getattr(config, "level", level)
        log_file = getattr(config, "file_path", log_file) or None
        file_handler_options = {
            "maxBytes": getattr(config, "file_max_bytes", 10 * 1024 * 1024),
            "backupCount": getattr(config, "file_backup_count", 5),
            "encoding": getattr(config, "file_encoding", "utf-8"),
        }

    return setup_logger(
        name=None,
        level=level,
        log_file=log_file,
        console=console,
        use_microseconds=use_microseconds,
        propagate=False,
        file_handler_options=file_handler_options,
    )


def get_logger(name: str = None) -> logging.Logger:
    """获取日志器

    - 不传参数：使用调用方模块的 __name__（ytree/orm/tree/move.py 中为 "ytree.orm.tree.move"）
    - 不含点号的简写：加 "ytree." 前缀（"orm" -> "ytree.orm"）
    - 其他名称原样使用（"sqlalchemy.engine"）
    """
    if name is None:
        frame = inspect.currentframe()
        caller = frame.f_back if frame is not None else None
        name = caller.f_globals.get("__name__", _PACKAGE) if caller is not None else _PACKAGE
    elif name != _PACKAGE and "." not in name:
        name = f"{_PACKAGE}.{name}"
    return logging.getLogger(name)


logger = logging.getLogger(_PACKAGE)
