"""
TwoFA - 两步验证配置与校验引擎

提供 TOTP / 短信两步验证的登记、校验、系统与租户级设置管理，以及配套的配置、日志、异常基础设施
"""

__version__ = "0.1.0"

from .exceptions import (
    ErrorCode,
    BusinessException,
    TwoFactorAuthException,
    ProviderNotConfigured,
    InvalidAccountConfigShape,
    NoPendingVerification,
    VerificationLocked,
    InvalidVerificationCode,
    DeliveryFailed,
    Err,
)

from .mfa import (
    ProviderType,
    TwoFactorUser,
    TwoFactorAuthSettings,
    TotpProviderConfig,
    SmsProviderConfig,
    TotpAccountConfig,
    SmsAccountConfig,
    TwoFactorAuthEngine,
    setup_two_factor_auth,
)

__all__ = [
    "__version__",

    # 异常
    "ErrorCode",
    "BusinessException",
    "TwoFactorAuthException",
    "ProviderNotConfigured",
    "InvalidAccountConfigShape",
    "NoPendingVerification",
    "VerificationLocked",
    "InvalidVerificationCode",
    "DeliveryFailed",
    "Err",

    # 两步验证
    "ProviderType",
    "TwoFactorUser",
    "TwoFactorAuthSettings",
    "TotpProviderConfig",
    "SmsProviderConfig",
    "TotpAccountConfig",
    "SmsAccountConfig",
    "TwoFactorAuthEngine",
    "setup_two_factor_auth",
]
