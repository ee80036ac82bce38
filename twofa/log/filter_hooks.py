"""日志过滤钩子模块

提供日志数据的过滤功能，避免 2FA 密钥、验证码、otpauth URL、手机号
等敏感信息以明文形式进入日志。

使用示例:
    from twofa.log import log_filter_hook_manager

    # 默认已注册敏感数据过滤器
    safe = log_filter_hook_manager.apply_filters(draft.model_dump())
    logger.info(f"Submitting account config: {safe}")
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List
import re

# 默认敏感字段名模式
DEFAULT_SENSITIVE_PATTERNS = [
    r'.*secret.*',
    r'.*(auth_url|authurl).*',
    r'.*(code|otp).*',
    r'.*(phone|phone_number).*',
    r'.*(token|password).*',
]

SENSITIVE_PLACEHOLDER = "*SENSITIVE DATA FILTERED*"


class LogFilterHook(ABC):
    """日志过滤钩子抽象基类

    继承此类可以自定义日志过滤逻辑。
    """

    @abstractmethod
    def should_apply(self, log_data: Dict[str, Any]) -> bool:
        """判断是否应该应用此过滤器"""
        pass

    @abstractmethod
    def filter(self, log_data: Dict[str, Any]) -> Dict[str, Any]:
        """过滤日志数据，返回新字典"""
        pass


class SensitiveDataFilterHook(LogFilterHook):
    """敏感数据过滤器

    根据字段名模式将敏感值替换为占位符，支持嵌套字典和列表的递归过滤。
    字段 provider_type 永远不会被过滤。

    Args:
        sensitive_patterns: 敏感字段名模式列表（正则表达式）
        keep_fields: 即使匹配模式也保留原值的字段
    """

    def __init__(self, sensitive_patterns: List[str] = None, keep_fields: List[str] = None):
        self.sensitive_patterns = sensitive_patterns if sensitive_patterns is not None else DEFAULT_SENSITIVE_PATTERNS
        self.compiled_patterns = [
            re.compile(pattern, re.IGNORECASE)
            for pattern in self.sensitive_patterns
        ]
        self.keep_fields = set(keep_fields if keep_fields is not None else ["provider_type"])

    def should_apply(self, log_data: Dict[str, Any]) -> bool:
        return True

    def filter(self, log_data: Dict[str, Any]) -> Dict[str, Any]:
        return self._filter_dict(log_data)

    def _is_sensitive(self, key: str) -> bool:
        if key in self.keep_fields:
            return False
        return any(pattern.search(key) for pattern in self.compiled_patterns)

    def _filter_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        filtered_data = {}
        for key, value in data.items():
            if self._is_sensitive(str(key)):
                filtered_data[key] = SENSITIVE_PLACEHOLDER
            elif isinstance(value, dict):
                filtered_data[key] = self._filter_dict(value)
            elif isinstance(value, list):
                filtered_data[key] = self._filter_list(value)
            else:
                filtered_data[key] = value
        return filtered_data

    def _filter_list(self, data: List[Any]) -> List[Any]:
        filtered_data = []
        for item in data:
            if isinstance(item, dict):
                filtered_data.append(self._filter_dict(item))
            elif isinstance(item, list):
                filtered_data.append(self._filter_list(item))
            else:
                filtered_data.append(item)
        return filtered_data


class LogFilterHookManager:
    """日志过滤钩子管理器

    单例模式，管理所有已注册的日志过滤钩子。
    """

    _instance = None
    _hooks: List[LogFilterHook] = []

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(LogFilterHookManager, cls).__new__(cls)
            cls._hooks = []
        return cls._instance

    @classmethod
    def register_hook(cls, hook: LogFilterHook):
        cls._hooks.append(hook)

    @classmethod
    def unregister_hook(cls, hook: LogFilterHook):
        if hook in cls._hooks:
            cls._hooks.remove(hook)

    @classmethod
    def get_hooks(cls) -> List[LogFilterHook]:
        return cls._hooks.copy()

    @classmethod
    def apply_filters(cls, log_data: Dict[str, Any]) -> Dict[str, Any]:
        """应用所有已注册的过滤器

        Args:
            log_data: 原始日志数据

        Returns:
            Dict[str, Any]: 过滤后的日志数据
        """
        filtered_data = dict(log_data)
        for hook in cls._hooks:
            if hook.should_apply(filtered_data):
                filtered_data = hook.filter(filtered_data)
        return filtered_data


# 创建全局实例
log_filter_hook_manager = LogFilterHookManager()

# 注册默认的敏感数据过滤器
log_filter_hook_manager.register_hook(SensitiveDataFilterHook())
