"""2FA 外部协作者

- AccountConfigStore: 用户已生效的 2FA 账户配置存储
- SettingsStore: 系统/租户级 2FA 设置存储
- CodeDeliveryChannel: 验证码投递渠道（短信网关等）
- Clock: 当前时间来源

每个接口都提供内存实现，生产环境通过回调或自定义子类接入实际存储。

使用示例:
    # 对接用户属性表
    store = CallbackAccountConfigStore(
        loader=lambda tenant_id, user_id: attributes.get(tenant_id, user_id, "twofa"),
        saver=lambda tenant_id, user_id, data: attributes.set(tenant_id, user_id, "twofa", data),
        deleter=lambda tenant_id, user_id: attributes.remove(tenant_id, user_id, "twofa"),
    )

    # 对接短信网关
    channel = CallableDeliveryChannel(sms_client.send)
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from twofa.log import get_logger
from .models import BaseAccountConfig, TwoFactorAuthSettings, parse_account_config

logger = get_logger()


# ==================== 账户配置存储 ====================

class AccountConfigStore(ABC):
    """账户配置存储抽象基类"""

    @abstractmethod
    def load(self, tenant_id: Any, user_id: Any) -> Optional[BaseAccountConfig]:
        """读取用户已保存的账户配置，不存在返回 None"""
        pass

    @abstractmethod
    def save(self, tenant_id: Any, user_id: Any, config: BaseAccountConfig) -> None:
        """保存（覆盖）用户的账户配置"""
        pass

    @abstractmethod
    def delete(self, tenant_id: Any, user_id: Any) -> None:
        """删除用户的账户配置（不存在时无操作）"""
        pass


class InMemoryAccountConfigStore(AccountConfigStore):
    """内存账户配置存储

    适用于单实例部署和测试，重启后数据丢失。
    """

    def __init__(self):
        self._configs: Dict[Tuple[Any, Any], BaseAccountConfig] = {}
        self._lock = threading.Lock()

    def load(self, tenant_id: Any, user_id: Any) -> Optional[BaseAccountConfig]:
        with self._lock:
            return self._configs.get((tenant_id, user_id))

    def save(self, tenant_id: Any, user_id: Any, config: BaseAccountConfig) -> None:
        with self._lock:
            self._configs[(tenant_id, user_id)] = config

    def delete(self, tenant_id: Any, user_id: Any) -> None:
        with self._lock:
            self._configs.pop((tenant_id, user_id), None)


class CallbackAccountConfigStore(AccountConfigStore):
    """基于回调的账户配置存储

    账户配置以 JSON 兼容字典形式交给回调保存，适合接入已有的用户属性表。

    Args:
        loader: (tenant_id, user_id) -> dict | None
        saver: (tenant_id, user_id, dict) -> None
        deleter: (tenant_id, user_id) -> None
    """

    def __init__(
        self,
        loader: Callable[[Any, Any], Optional[Dict[str, Any]]],
        saver: Callable[[Any, Any, Dict[str, Any]], Any],
        deleter: Callable[[Any, Any], Any],
    ):
        self._loader = loader
        self._saver = saver
        self._deleter = deleter

    def load(self, tenant_id: Any, user_id: Any) -> Optional[BaseAccountConfig]:
        data = self._loader(tenant_id, user_id)
        if not data:
            return None
        return parse_account_config(data)

    def save(self, tenant_id: Any, user_id: Any, config: BaseAccountConfig) -> None:
        self._saver(tenant_id, user_id, config.model_dump(mode="json"))

    def delete(self, tenant_id: Any, user_id: Any) -> None:
        self._deleter(tenant_id, user_id)


# ==================== 设置存储 ====================

class SettingsStore(ABC):
    """2FA 设置存储抽象基类

    系统级设置作为默认值，租户级设置整体覆盖系统设置。
    """

    @abstractmethod
    def load_system(self) -> Optional[TwoFactorAuthSettings]:
        pass

    @abstractmethod
    def load_tenant(self, tenant_id: Any) -> Optional[TwoFactorAuthSettings]:
        pass

    @abstractmethod
    def save_system(self, settings: TwoFactorAuthSettings) -> None:
        pass

    @abstractmethod
    def save_tenant(self, tenant_id: Any, settings: TwoFactorAuthSettings) -> None:
        pass


class InMemorySettingsStore(SettingsStore):
    """内存设置存储

    Args:
        system_settings: 初始系统级设置
        tenant_settings: 初始租户级设置 {tenant_id: settings}
    """

    def __init__(
        self,
        system_settings: Optional[TwoFactorAuthSettings] = None,
        tenant_settings: Optional[Dict[Any, TwoFactorAuthSettings]] = None,
    ):
        self._system: Optional[TwoFactorAuthSettings] = system_settings
        self._tenants: Dict[Any, TwoFactorAuthSettings] = dict(tenant_settings or {})
        self._lock = threading.Lock()

    def load_system(self) -> Optional[TwoFactorAuthSettings]:
        with self._lock:
            return self._system

    def load_tenant(self, tenant_id: Any) -> Optional[TwoFactorAuthSettings]:
        with self._lock:
            return self._tenants.get(tenant_id)

    def save_system(self, settings: TwoFactorAuthSettings) -> None:
        with self._lock:
            self._system = settings

    def save_tenant(self, tenant_id: Any, settings: TwoFactorAuthSettings) -> None:
        with self._lock:
            self._tenants[tenant_id] = settings


# ==================== 验证码投递 ====================

class CodeDeliveryChannel(ABC):
    """验证码投递渠道抽象基类"""

    @abstractmethod
    def send(self, destination: str, message: str) -> bool:
        """投递消息

        Args:
            destination: 投递目标（手机号）
            message: 已渲染的消息内容

        Returns:
            bool: 是否投递成功
        """
        pass


class LoggingDeliveryChannel(CodeDeliveryChannel):
    """开发模式投递渠道：只记录日志，不实际发送"""

    def send(self, destination: str, message: str) -> bool:
        logger.warning(f"[DEV] Verification message for {_mask_destination(destination)}: {message}")
        return True


class CallableDeliveryChannel(CodeDeliveryChannel):
    """包装普通函数的投递渠道

    Args:
        sender: (destination, message) -> bool；返回 None 视为成功
    """

    def __init__(self, sender: Callable[[str, str], Optional[bool]]):
        self._sender = sender

    def send(self, destination: str, message: str) -> bool:
        result = self._sender(destination, message)
        return True if result is None else bool(result)


def _mask_destination(destination: str) -> str:
    """只保留末尾 4 位"""
    if not destination or len(destination) <= 4:
        return "****"
    return "*" * (len(destination) - 4) + destination[-4:]


# ==================== 时钟 ====================

class Clock(ABC):
    """时间来源"""

    @abstractmethod
    def now(self) -> datetime:
        """返回当前 UTC 时间（带时区）"""
        pass


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)
