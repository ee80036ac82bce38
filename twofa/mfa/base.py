"""2FA 基础定义"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Any, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import (
        AccountConfig,
        PendingVerification,
        ProviderConfig,
        TwoFactorAuthSettings,
    )


class ProviderType(str, Enum):
    """2FA 提供者类型"""
    TOTP = "TOTP"  # 基于时间的一次性密码（Authenticator 应用）
    SMS = "SMS"  # 短信验证码

    @property
    def requires_code_delivery(self) -> bool:
        """是否需要通过外部渠道投递验证码"""
        return _CAPABILITIES[self][0]

    @property
    def requires_secret(self) -> bool:
        """是否依赖共享密钥计算验证码"""
        return _CAPABILITIES[self][1]


# (requires_code_delivery, requires_secret)
_CAPABILITIES = {
    ProviderType.TOTP: (False, True),
    ProviderType.SMS: (True, False),
}


@dataclass(frozen=True)
class TwoFactorUser:
    """登记 2FA 的用户"""
    user_id: Any
    username: Optional[str] = None
    email: Optional[str] = None

    @property
    def account_name(self) -> str:
        """Authenticator 中显示的账户名"""
        return self.email or self.username or str(self.user_id)


@dataclass(frozen=True)
class CodeDelivery:
    """待执行的验证码投递

    Attributes:
        destination: 投递目标（手机号等）
        message: 已渲染的消息内容（包含验证码）
    """
    destination: str
    message: str


@dataclass(frozen=True)
class CodeIssuance:
    """验证码签发结果

    Attributes:
        expires_at: 待验证记录的过期时间
        expected_code: 服务端保存的验证码（确定性提供者为 None）
        delivery: 需要在释放用户锁之后执行的投递（无需投递时为 None）
    """
    expires_at: datetime
    expected_code: Optional[str] = None
    delivery: Optional[CodeDelivery] = None


class ProviderStrategy(ABC):
    """2FA 提供者策略抽象基类

    每种 ProviderType 对应一个实现，负责：
    - 生成账户配置模板
    - 校验账户配置格式
    - 签发验证码（可能需要外部投递）
    - 校验用户提交的验证码
    """

    @property
    @abstractmethod
    def provider_type(self) -> ProviderType:
        """返回提供者类型"""
        pass

    @abstractmethod
    def build_template(
        self,
        user: TwoFactorUser,
        provider_config: "ProviderConfig",
        existing: Optional["AccountConfig"] = None,
    ) -> "AccountConfig":
        """生成账户配置模板

        Args:
            user: 当前用户
            provider_config: 解析后的提供者配置
            existing: 用户当前已保存的账户配置

        Returns:
            AccountConfig: 未保存的账户配置草稿
        """
        pass

    @abstractmethod
    def validate_config(self, config: "AccountConfig") -> None:
        """校验账户配置格式

        Raises:
            InvalidAccountConfigShape: 格式不正确
        """
        pass

    @abstractmethod
    def issue_code(
        self,
        draft: "AccountConfig",
        provider_config: "ProviderConfig",
        settings: "TwoFactorAuthSettings",
        now: datetime,
    ) -> CodeIssuance:
        """为提交的草稿签发验证码"""
        pass

    @abstractmethod
    def verify_code(
        self,
        draft: "AccountConfig",
        supplied_code: str,
        pending: "PendingVerification",
        provider_config: "ProviderConfig",
        now: datetime,
    ) -> bool:
        """校验验证码

        Returns:
            bool: 是否匹配
        """
        pass

    @staticmethod
    def normalize_code(code: Optional[str]) -> str:
        """清理用户输入的验证码（移除空格和连字符）"""
        if code is None:
            return ""
        return str(code).strip().replace(" ", "").replace("-", "")
