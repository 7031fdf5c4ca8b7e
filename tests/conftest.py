"""
pytest 公共 fixtures

- temp_dir / temp_file: 配置文件、日志文件测试用的临时目录
- memory_engine: 单连接的 SQLite 内存库
- reset_tree_config: 每个测试使用默认的全局树形配置
"""

from pathlib import Path
from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from ytree.orm.tree import reset_tree_settings


@pytest.fixture(scope="session")
def temp_dir(tmp_path_factory) -> str:
    return str(tmp_path_factory.mktemp("ytree"))


@pytest.fixture
def temp_file(temp_dir):
    """写入临时文件，返回绝对路径；测试结束后删除"""
    written = []

    def _write(filename: str, content: str = "") -> str:
        target = Path(temp_dir) / filename
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        written.append(target)
        return str(target)

    yield _write

    for target in written:
        target.unlink(missing_ok=True)


@pytest.fixture
def memory_engine() -> Iterator[Engine]:
    """所有 session 共用同一个连接，表结构和数据在测试内可见"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def reset_tree_config():
    reset_tree_settings()
    yield
    reset_tree_settings()
