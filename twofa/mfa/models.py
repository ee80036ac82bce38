"""2FA 数据模型

- ProviderConfig: 单个提供者的系统/租户级策略（不可变）
- TwoFactorAuthSettings: 有序的提供者配置集合 + 验证策略
- AccountConfig: 用户已登记（或待登记）的 2FA 方式
- PendingVerification: 进行中的登记验证记录

使用示例:
    settings = TwoFactorAuthSettings.model_validate({
        "providers": [
            {"provider_type": "TOTP", "issuer_name": "MyApp"},
            {"provider_type": "SMS", "code_lifetime_seconds": 300},
        ],
        "max_verification_failures": 5,
    })

    draft = parse_account_config({"provider_type": "SMS", "phone_number": "+380505005050"})
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from twofa.exceptions import Err
from .base import ProviderType


# ==================== 提供者配置 ====================

class BaseProviderConfig(BaseModel):
    """提供者配置基类"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider_type: ProviderType
    enabled: bool = Field(default=True, description="是否启用")


class TotpProviderConfig(BaseProviderConfig):
    """TOTP 提供者配置

    Example:
        {
            "provider_type": "TOTP",
            "issuer_name": "MyApp",
            "secret_length_bytes": 20
        }
    """

    provider_type: Literal[ProviderType.TOTP] = ProviderType.TOTP
    issuer_name: str = Field(default="TwoFA", min_length=1, description="发行者名称（显示在 Authenticator 中）")
    secret_length_bytes: int = Field(default=20, ge=10, le=64, description="密钥字节长度")
    code_digits: int = Field(default=6, ge=6, le=8, description="验证码位数")
    time_step_seconds: int = Field(default=30, gt=0, description="时间步长（秒）")
    allowed_skew_steps: int = Field(default=1, ge=0, le=10, description="允许的时钟偏差（前后时间步数）")


class SmsProviderConfig(BaseProviderConfig):
    """短信提供者配置

    Example:
        {
            "provider_type": "SMS",
            "verification_message_template": "Your code: ${code}",
            "code_lifetime_seconds": 300
        }
    """

    provider_type: Literal[ProviderType.SMS] = ProviderType.SMS
    verification_message_template: str = Field(
        default="Verification code: ${code}",
        description="短信模板，${code} 会被替换为验证码",
    )
    code_length: int = Field(default=6, ge=4, le=10, description="验证码长度")
    code_lifetime_seconds: int = Field(default=120, gt=0, description="验证码有效期（秒）")

    @field_validator("verification_message_template")
    @classmethod
    def validate_template(cls, v: str) -> str:
        if "${code}" not in v:
            raise ValueError("verification_message_template must contain ${code} placeholder")
        return v


ProviderConfig = Annotated[
    Union[TotpProviderConfig, SmsProviderConfig],
    Field(discriminator="provider_type"),
]


class TwoFactorAuthSettings(BaseModel):
    """2FA 设置

    系统级（默认）或租户级（覆盖）的提供者列表，列表顺序即展示/优先顺序。
    同一设置中每种提供者类型只能出现一次。整体替换，不做增量合并。
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    providers: Tuple[ProviderConfig, ...] = Field(default=(), description="提供者配置（有序）")
    max_verification_failures: int = Field(default=3, ge=1, description="待验证记录锁定前允许的失败次数")
    total_allowed_time_for_verification: int = Field(
        default=3600,
        gt=0,
        description="确定性提供者（TOTP）待验证记录的有效期（秒）",
    )

    @field_validator("providers")
    @classmethod
    def validate_unique_providers(cls, v):
        seen = set()
        for provider in v:
            if provider.provider_type in seen:
                raise ValueError(f"duplicate provider type: {provider.provider_type.value}")
            seen.add(provider.provider_type)
        return v

    def get_provider_config(self, provider_type: ProviderType) -> Optional[BaseProviderConfig]:
        """按类型获取提供者配置（不论是否启用）"""
        for provider in self.providers:
            if provider.provider_type == provider_type:
                return provider
        return None

    def enabled_providers(self) -> List[BaseProviderConfig]:
        """已启用的提供者配置（保持顺序）"""
        return [provider for provider in self.providers if provider.enabled]

    def is_empty(self) -> bool:
        return len(self.providers) == 0


# ==================== 账户配置 ====================

class BaseAccountConfig(BaseModel):
    """账户配置基类"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider_type: ProviderType


class TotpAccountConfig(BaseAccountConfig):
    """TOTP 账户配置

    Attributes:
        secret: Base32 编码的共享密钥
        auth_url: otpauth URL（用于生成二维码）
    """

    provider_type: Literal[ProviderType.TOTP] = ProviderType.TOTP
    secret: str = ""
    auth_url: str = ""


class SmsAccountConfig(BaseAccountConfig):
    """短信账户配置"""

    provider_type: Literal[ProviderType.SMS] = ProviderType.SMS
    phone_number: Optional[str] = None


AccountConfig = Annotated[
    Union[TotpAccountConfig, SmsAccountConfig],
    Field(discriminator="provider_type"),
]

_account_config_adapter = TypeAdapter(AccountConfig)


def parse_account_config(data: Any) -> BaseAccountConfig:
    """将字典（或已有模型）解析为账户配置

    Raises:
        InvalidAccountConfigShape: 结构不正确或 provider_type 未知
    """
    if isinstance(data, BaseAccountConfig):
        return data
    try:
        return _account_config_adapter.validate_python(data)
    except ValidationError as e:
        details = [
            f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        raise Err.invalid_config("Invalid 2FA account config", details=details) from e


# ==================== 待验证记录 ====================

@dataclass
class PendingVerification:
    """待验证记录

    每个 (tenant_id, user_id) 最多一条，新的提交会覆盖旧记录。

    Attributes:
        provider_type: 提供者类型
        candidate_account_config: 尚未保存的账户配置草稿
        expires_at: 过期时间
        expected_code: 服务端保存的验证码（TOTP 为 None）
        failure_count: 失败次数
        max_failures: 锁定前允许的失败次数
        created_at: 创建时间
    """
    provider_type: ProviderType
    candidate_account_config: BaseAccountConfig
    expires_at: datetime
    expected_code: Optional[str] = None
    failure_count: int = 0
    max_failures: int = 3
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def locked(self) -> bool:
        """失败次数达到上限后锁定，直到重新提交"""
        return self.failure_count >= self.max_failures

    @property
    def remaining_attempts(self) -> int:
        return max(0, self.max_failures - self.failure_count)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def copy(self) -> "PendingVerification":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider_type": self.provider_type.value,
            "candidate_account_config": self.candidate_account_config.model_dump(mode="json"),
            "expires_at": self.expires_at.isoformat(),
            "expected_code": self.expected_code,
            "failure_count": self.failure_count,
            "max_failures": self.max_failures,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingVerification":
        return cls(
            provider_type=ProviderType(data["provider_type"]),
            candidate_account_config=parse_account_config(data["candidate_account_config"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            expected_code=data.get("expected_code"),
            failure_count=data.get("failure_count", 0),
            max_failures=data.get("max_failures", 3),
            created_at=datetime.fromisoformat(data["created_at"]),
        )
