"""异常处理模块

提供 2FA 业务异常类。HTTP 层负责将 status_code / code 映射为传输层响应。

使用示例:
    from twofa.exceptions import Err, TwoFactorAuthException

    try:
        engine.submit(tenant_id, user_id, draft)
    except TwoFactorAuthException as e:
        return JSONResponse(e.to_dict(), status_code=e.status_code)
"""

from .exceptions import (
    # ===== 推荐使用 =====
    Err,                            # 异常快捷创建类
    ErrorCode,                      # 错误代码枚举
    ErrorCodeType,

    # ===== 异常类 =====
    BusinessException,
    TwoFactorAuthException,
    ProviderNotConfigured,          # 400
    InvalidAccountConfigShape,      # 422
    NoPendingVerification,          # 400
    VerificationLocked,             # 429
    InvalidVerificationCode,        # 400
    DeliveryFailed,                 # 503
)

__all__ = [
    "Err",
    "ErrorCode",
    "ErrorCodeType",
    "BusinessException",
    "TwoFactorAuthException",
    "ProviderNotConfigured",
    "InvalidAccountConfigShape",
    "NoPendingVerification",
    "VerificationLocked",
    "InvalidVerificationCode",
    "DeliveryFailed",
]
