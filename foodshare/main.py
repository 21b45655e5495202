"""ASGI 入口：uvicorn foodshare.main:app"""
from dotenv import load_dotenv

load_dotenv()

from .config import get_settings  # noqa: E402
from .factory import create_app  # noqa: E402
from .logging.config import StructuredLogger  # noqa: E402

settings = get_settings()

# 生产环境强制 JSON 日志
StructuredLogger.setup_logging(
    log_level=settings.log_level,
    enable_json=settings.is_production or settings.log_format.lower() == "json",
)

app = create_app(settings)
