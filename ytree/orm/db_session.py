"""数据库会话管理

公开 API:
- db_manager: 数据库管理器单例
- init_database(): 初始化引擎与 scoped session，并设置 CoreModel.query
- get_engine(): 获取数据库引擎
- db_session_scope(): 脚本、修复任务等非 HTTP 场景的事务上下文
- get_db(): FastAPI 依赖
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from ytree.log import get_logger

_logger = get_logger("ytree.orm.session")

__all__ = [
    "DatabaseManager",
    "db_manager",
    "init_database",
    "get_engine",
    "get_db",
    "db_session_scope",
]

_NOT_INITIALIZED = "数据库未初始化，请先调用 init_database()"


def _create_engine(database_url: str, echo: Any, pool_options: dict, logger: logging.Logger) -> Engine:
    """按数据库类型创建引擎

    SQLite 内存库只能共用一个连接，使用 StaticPool；
    SQLite 文件库不支持连接池大小参数，只传超时。
    """
    if database_url.startswith("sqlite:///"):
        connect_args = {"check_same_thread": False}
        if database_url[len("sqlite:///"):] in ("", ":memory:"):
            logger.info("使用 SQLite 内存数据库（StaticPool）")
            return create_engine(database_url, echo=echo, connect_args=connect_args, poolclass=StaticPool)
        connect_args["timeout"] = pool_options["pool_timeout"]
        logger.info("使用 SQLite 文件数据库")
        return create_engine(
            database_url, echo=echo, connect_args=connect_args,
            pool_pre_ping=pool_options["pool_pre_ping"],
        )
    return create_engine(database_url, echo=echo, **pool_options)


class DatabaseManager:
    """数据库管理器（单例）

    使用示例:
        from ytree.orm import db_manager

        db_manager.init(database_url="sqlite:///./catalog.db")
        with db_session_scope():
            Category.rebuild_all_paths()
        db_manager.dispose()
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._engine = None
            instance._session_scope = None
            cls._instance = instance
        return cls._instance

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._engine

    @property
    def session_scope(self) -> scoped_session:
        if self._session_scope is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._session_scope

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None and self._session_scope is not None

    def init(
        self,
        database_url: str = None,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        pool_recycle: int = 3600,
        pool_pre_ping: bool = True,
        sql_log_enabled: bool = False,
        logger: logging.Logger = None,
        scopefunc: Callable = None,
        config: Any = None,
        logging_config: Any = None,
        auto_setup_query: bool = True,
    ):
        """初始化数据库连接

        Args:
            database_url: 数据库连接URL（提供 config 时以 config.url 为准）
            echo: 是否输出SQL语句
            pool_size / max_overflow / pool_timeout / pool_recycle / pool_pre_ping: 连接池参数
            sql_log_enabled: 以 DEBUG 级别输出 SQL（提供 logging_config 时以其为准）
            logger: 日志记录器
            scopefunc: scoped session 的作用域函数，默认按线程
            config: DatabaseSettings
            logging_config: LoggingSettings
            auto_setup_query: 是否设置 CoreModel.query

        Returns:
            tuple: (engine, session_scope)

        使用示例:
            engine, session_scope = init_database(config=settings.database, logging_config=settings.logging)
        """
        logger = logger or _logger
        options = {
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_timeout": pool_timeout,
            "pool_recycle": pool_recycle,
            "pool_pre_ping": pool_pre_ping,
        }
        if config is not None:
            database_url = getattr(config, "url", database_url)
            echo = getattr(config, "echo", echo)
            options = {key: getattr(config, key, value) for key, value in options.items()}
        if logging_config is not None:
            sql_log_enabled = getattr(logging_config, "sql_log_enabled", sql_log_enabled)

        if not database_url:
            raise ValueError("database_url 是必需的，请通过参数或 config 提供")

        logger.info(f"初始化数据库: {database_url}")
        self._engine = _create_engine(database_url, "debug" if sql_log_enabled else echo, options, logger)
        self._session_scope = scoped_session(
            sessionmaker(autocommit=False, autoflush=False, bind=self._engine),
            scopefunc=scopefunc,
        )

        if auto_setup_query:
            from .core_model import CoreModel
            CoreModel.query = self._session_scope.query_property()
            logger.debug("CoreModel.query 已绑定到 scoped session")

        return self._engine, self._session_scope

    def get_session(self) -> Session:
        """当前作用域的 session，提交和清理由调用方负责"""
        return self.session_scope()

    def cleanup(self):
        """移除当前作用域的 session（可重复调用）"""
        if self._session_scope is not None:
            self._session_scope.remove()

    def dispose(self):
        """释放引擎并回到未初始化状态（测试用）"""
        self.cleanup()
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_scope = None


db_manager = DatabaseManager()


def init_database(database_url: str = None, **kwargs):
    """db_manager.init() 的便捷函数，返回 (engine, session_scope)"""
    return db_manager.init(database_url=database_url, **kwargs)


def get_engine() -> Engine:
    return db_manager.engine


@contextmanager
def db_session_scope(auto_commit: bool = True) -> Generator[Session, None, None]:
    """事务上下文：正常退出时提交（auto_commit=True），异常时回滚，最后清理 session

    使用示例:
        with db_session_scope():
            Category.get(3).move_to(5)

        with db_session_scope(auto_commit=False):
            Category.rebuild_all_paths(dry_run=True)
    """
    session = db_manager.get_session()
    try:
        yield session
        if auto_commit:
            session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        db_manager.cleanup()


def get_db() -> Generator[Session, None, None]:
    """FastAPI 依赖

    使用示例:
        @app.post("/categories/{node_id}/move")
        def move(node_id: int, parent_id: int = None, db: Session = Depends(get_db)):
            Category.get(node_id).move_to(parent_id)
    """
    with db_session_scope() as session:
        yield session
