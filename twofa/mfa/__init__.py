"""两步验证（2FA）模块

支持的提供者：
- TOTP: 基于时间的一次性密码（Google Authenticator 等）
- SMS: 短信验证码

使用示例:
    from twofa.mfa import setup_two_factor_auth, TwoFactorUser, ProviderType

    engine = setup_two_factor_auth(delivery_channel=CallableDeliveryChannel(send_sms))
    engine.save_settings(None, {"providers": [{"provider_type": "TOTP"}]})

    user = TwoFactorUser(user_id=1, email="john@example.com")
    draft = engine.generate_account_config(None, user, ProviderType.TOTP)
    engine.submit(None, 1, draft)
    engine.check_and_save(None, 1, draft, "123456")
"""

from .base import (
    ProviderType,
    ProviderStrategy,
    TwoFactorUser,
    CodeDelivery,
    CodeIssuance,
)

from .models import (
    BaseProviderConfig,
    TotpProviderConfig,
    SmsProviderConfig,
    ProviderConfig,
    TwoFactorAuthSettings,
    BaseAccountConfig,
    TotpAccountConfig,
    SmsAccountConfig,
    AccountConfig,
    PendingVerification,
    parse_account_config,
)

from .totp import (
    TotpProviderStrategy,
    generate_secret,
    hotp,
    totp_code,
    verify_totp,
    build_auth_url,
)

from .sms import (
    SmsProviderStrategy,
    generate_numeric_code,
    render_message,
)

from .stores import (
    AccountConfigStore,
    InMemoryAccountConfigStore,
    CallbackAccountConfigStore,
    SettingsStore,
    InMemorySettingsStore,
    CodeDeliveryChannel,
    LoggingDeliveryChannel,
    CallableDeliveryChannel,
    Clock,
    SystemClock,
)

from .settings_resolver import SettingsResolver

from .ledger import (
    VerificationLedger,
    InMemoryVerificationLedger,
    RedisVerificationLedger,
)

from .engine import TwoFactorAuthEngine

from .setup import create_ledger, setup_two_factor_auth

__all__ = [
    # 基础
    "ProviderType",
    "ProviderStrategy",
    "TwoFactorUser",
    "CodeDelivery",
    "CodeIssuance",

    # 数据模型
    "BaseProviderConfig",
    "TotpProviderConfig",
    "SmsProviderConfig",
    "ProviderConfig",
    "TwoFactorAuthSettings",
    "BaseAccountConfig",
    "TotpAccountConfig",
    "SmsAccountConfig",
    "AccountConfig",
    "PendingVerification",
    "parse_account_config",

    # TOTP
    "TotpProviderStrategy",
    "generate_secret",
    "hotp",
    "totp_code",
    "verify_totp",
    "build_auth_url",

    # SMS
    "SmsProviderStrategy",
    "generate_numeric_code",
    "render_message",

    # 协作者
    "AccountConfigStore",
    "InMemoryAccountConfigStore",
    "CallbackAccountConfigStore",
    "SettingsStore",
    "InMemorySettingsStore",
    "CodeDeliveryChannel",
    "LoggingDeliveryChannel",
    "CallableDeliveryChannel",
    "Clock",
    "SystemClock",

    # 设置解析
    "SettingsResolver",

    # 待验证记录
    "VerificationLedger",
    "InMemoryVerificationLedger",
    "RedisVerificationLedger",

    # 引擎
    "TwoFactorAuthEngine",
    "create_ledger",
    "setup_two_factor_auth",
]
