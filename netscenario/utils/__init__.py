from .config import get_nested, load_config
from .logger import setup_logger

__all__ = ["get_nested", "load_config", "setup_logger"]
