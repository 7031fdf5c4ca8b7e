"""YAML 配置加载

settings.yaml 示例：

    database:
      url: "sqlite:///./catalog.db"
    logging:
      level: "INFO"
    tree:
      cascade_batch_size: 1000
      strict_parent: true

优先级：load_yaml_config 的关键字参数 > YAML 文件 > 环境变量 > 默认值。
YAML 中写了某一段（如 tree）时，这一段整体以文件为准，未写的段仍读取环境变量。
"""

import os
from typing import Any, Dict, List, Optional, Type, TypeVar

import yaml


SettingsT = TypeVar("SettingsT")


def _resolve_path(config_path: str, base_dir: Optional[str] = None) -> str:
    """相对路径相对 base_dir（默认当前目录）解析为绝对路径，作为缓存键"""
    if not os.path.isabs(config_path) and base_dir:
        config_path = os.path.join(base_dir, config_path)
    return os.path.abspath(config_path)


class ConfigLoader:
    """按绝对路径缓存的 YAML 加载器

    使用示例:
        config = ConfigLoader.load("config/settings.yaml")
        batch_size = config.get("tree", {}).get("cascade_batch_size")
    """

    _cache: Dict[str, Dict[str, Any]] = {}

    @classmethod
    def load(cls, config_path: str, base_dir: Optional[str] = None, use_cache: bool = True) -> Dict[str, Any]:
        """读取配置文件，空文件返回 {}

        Raises:
            FileNotFoundError: 文件不存在
            yaml.YAMLError: YAML 格式错误
        """
        path = _resolve_path(config_path, base_dir)
        if use_cache and path in cls._cache:
            return cls._cache[path]
        if not os.path.isfile(path):
            raise FileNotFoundError(f"配置文件不存在: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if use_cache:
            cls._cache[path] = data
        return data

    @classmethod
    def reload(cls, config_path: str, base_dir: Optional[str] = None) -> Dict[str, Any]:
        """丢弃缓存后重新读取"""
        cls._cache.pop(_resolve_path(config_path, base_dir), None)
        return cls.load(config_path, base_dir)

    @classmethod
    def clear_cache(cls):
        cls._cache.clear()

    @classmethod
    def get_cached_paths(cls) -> List[str]:
        return list(cls._cache)


def load_yaml_config(
    config_path: str,
    settings_class: Type[SettingsT],
    base_dir: Optional[str] = None,
    **overrides: Any
) -> SettingsT:
    """读取 YAML 并构造 pydantic-settings 实例

    使用示例:
        settings = load_yaml_config("config/settings.yaml", AppSettings, app_name="catalog")
        configure_tree(settings.tree)
    """
    values = {**ConfigLoader.load(config_path, base_dir), **overrides}
    return settings_class(**values)
