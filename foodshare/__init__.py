"""Feest 食物分享后端服务。"""

__version__ = "1.0.0"
