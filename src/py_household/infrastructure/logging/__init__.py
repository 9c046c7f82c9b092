from .config import bind_operation, clear_operation, configure_logging, get_logger

__all__ = ["configure_logging", "get_logger", "bind_operation", "clear_operation"]
