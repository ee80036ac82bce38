"""日志模块

提供日志配置与敏感数据过滤：

使用示例:
    from twofa.log import setup_root_logger, get_logger, log_filter_hook_manager

    setup_root_logger(config=settings.logging)
    logger = get_logger()

    logger.info(f"draft: {log_filter_hook_manager.apply_filters(draft.model_dump())}")
"""

from .logger import (
    setup_logger,
    setup_root_logger,
    create_formatter,
    MicrosecondFormatter,
    DEFAULT_LOG_FORMAT,
    logger,
    get_logger,
)

from .filter_hooks import (
    LogFilterHook,
    SensitiveDataFilterHook,
    LogFilterHookManager,
    log_filter_hook_manager,
    DEFAULT_SENSITIVE_PATTERNS,
    SENSITIVE_PLACEHOLDER,
)

__all__ = [
    # 日志工具
    "setup_logger",
    "setup_root_logger",
    "create_formatter",
    "MicrosecondFormatter",
    "DEFAULT_LOG_FORMAT",
    "logger",
    "get_logger",

    # 日志过滤钩子
    "LogFilterHook",
    "SensitiveDataFilterHook",
    "LogFilterHookManager",
    "log_filter_hook_manager",
    "DEFAULT_SENSITIVE_PATTERNS",
    "SENSITIVE_PLACEHOLDER",
]
