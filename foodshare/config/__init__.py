"""配置模块：统一的应用配置管理。"""

from .settings import Environment, Settings, get_settings, parse_duration

__all__ = ["Settings", "Environment", "get_settings", "parse_duration"]
