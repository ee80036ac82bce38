"""业务异常类定义

定义两步验证（2FA）模块使用的异常类体系。
"""

import copy
from typing import Optional, List, Any, Dict, Union
from fastapi import status
from enum import Enum


class ErrorCode(str, Enum):
    """错误代码枚举

    继承自 str，可以直接作为字符串使用，便于 HTTP 层映射为响应。

    使用示例:
        from twofa.exceptions import ErrorCode, NoPendingVerification

        try:
            engine.check_and_save(tenant_id, user_id, draft, code)
        except NoPendingVerification as e:
            assert e.code == ErrorCode.NO_PENDING_VERIFICATION
    """

    # ==================== 通用错误 ====================
    BUSINESS_ERROR = "BUSINESS_ERROR"

    # ==================== 提供者配置 ====================
    PROVIDER_NOT_CONFIGURED = "PROVIDER_NOT_CONFIGURED"

    # ==================== 账户配置 ====================
    INVALID_ACCOUNT_CONFIG = "INVALID_ACCOUNT_CONFIG"

    # ==================== 验证流程 ====================
    NO_PENDING_VERIFICATION = "NO_PENDING_VERIFICATION"
    VERIFICATION_LOCKED = "VERIFICATION_LOCKED"
    INVALID_VERIFICATION_CODE = "INVALID_VERIFICATION_CODE"

    # ==================== 外部服务 ====================
    DELIVERY_FAILED = "DELIVERY_FAILED"


# 类型别名，支持枚举和字符串
ErrorCodeType = Union[str, ErrorCode]


class BusinessException(Exception):
    """业务异常基类

    属性:
        message: 错误消息（面向用户）
        code: 错误代码（用于程序判断，支持 ErrorCode 枚举或字符串）
        status_code: HTTP 状态码（供外部 HTTP 层映射使用）
        details: 详细错误信息列表
        extra: 额外的上下文信息
    """

    def __init__(
        self,
        message: str,
        code: ErrorCodeType = ErrorCode.BUSINESS_ERROR,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or []
        self.extra = extra
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式

        Returns:
            包含异常信息的字典
        """
        return {
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            # 返回深拷贝，避免调用方修改返回值反向污染异常对象内部状态
            "details": copy.deepcopy(self.details),
            "extra": copy.deepcopy(self.extra)
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"status_code={self.status_code})"
        )


class TwoFactorAuthException(BusinessException):
    """2FA 异常基类

    引擎抛出的所有异常都继承此类，调用方可以统一捕获。
    """


class ProviderNotConfigured(TwoFactorAuthException):
    """提供者未配置

    提供者在解析后的设置中不存在或已禁用。不应重试。
    """

    def __init__(
        self,
        message: str = "2FA provider is not configured",
        code: ErrorCodeType = ErrorCode.PROVIDER_NOT_CONFIGURED,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            **extra
        )


class InvalidAccountConfigShape(TwoFactorAuthException):
    """账户配置格式不正确

    草稿未通过提供者特定的校验（如手机号格式、otpauth URL 格式）。
    """

    def __init__(
        self,
        message: str = "Invalid 2FA account config",
        code: ErrorCodeType = ErrorCode.INVALID_ACCOUNT_CONFIG,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            **extra
        )


class NoPendingVerification(TwoFactorAuthException):
    """没有待验证记录

    未提交、已过期、已被新提交替换或已取消。调用方需要重新提交。
    """

    def __init__(
        self,
        message: str = "No pending verification, submit the account config first",
        code: ErrorCodeType = ErrorCode.NO_PENDING_VERIFICATION,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            **extra
        )


class VerificationLocked(TwoFactorAuthException):
    """验证已锁定

    失败次数达到上限，重新提交前所有校验都会失败。
    """

    def __init__(
        self,
        message: str = "Maximum verification attempts exceeded, submit the account config again",
        code: ErrorCodeType = ErrorCode.VERIFICATION_LOCKED,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details=details,
            **extra
        )


class InvalidVerificationCode(TwoFactorAuthException):
    """验证码不正确

    extra 中携带 remaining_attempts（剩余尝试次数）。
    """

    def __init__(
        self,
        message: str = "Verification code is incorrect",
        code: ErrorCodeType = ErrorCode.INVALID_VERIFICATION_CODE,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            **extra
        )

    @property
    def remaining_attempts(self) -> Optional[int]:
        return self.extra.get("remaining_attempts")


class DeliveryFailed(TwoFactorAuthException):
    """验证码投递失败

    非致命错误：待验证记录仍然有效，调用方可以稍后重试验证或重新提交。
    """

    def __init__(
        self,
        message: str = "Failed to deliver verification code",
        code: ErrorCodeType = ErrorCode.DELIVERY_FAILED,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
            **extra
        )


class Err:
    """异常快捷创建类

    提供统一入口，通过 IDE 自动补全发现所有可用的异常类型。

    使用示例:
        from twofa.exceptions import Err

        raise Err.provider_not_configured("TOTP provider is disabled")
        raise Err.invalid_config("Phone number must be in E.164 format")
        raise Err.invalid_code(remaining_attempts=2)
    """

    @staticmethod
    def provider_not_configured(message: str = "2FA provider is not configured", **kwargs) -> ProviderNotConfigured:
        """提供者未配置 (400)"""
        return ProviderNotConfigured(message, **kwargs)

    @staticmethod
    def invalid_config(message: str = "Invalid 2FA account config", **kwargs) -> InvalidAccountConfigShape:
        """账户配置格式不正确 (422)"""
        return InvalidAccountConfigShape(message, **kwargs)

    @staticmethod
    def no_pending(
        message: str = "No pending verification, submit the account config first",
        **kwargs
    ) -> NoPendingVerification:
        """没有待验证记录 (400)"""
        return NoPendingVerification(message, **kwargs)

    @staticmethod
    def locked(
        message: str = "Maximum verification attempts exceeded, submit the account config again",
        **kwargs
    ) -> VerificationLocked:
        """验证已锁定 (429)"""
        return VerificationLocked(message, **kwargs)

    @staticmethod
    def invalid_code(message: str = "Verification code is incorrect", **kwargs) -> InvalidVerificationCode:
        """验证码不正确 (400)

        Args:
            message: 错误消息
            **kwargs: 额外参数（remaining_attempts, details 等）
        """
        return InvalidVerificationCode(message, **kwargs)

    @staticmethod
    def delivery_failed(message: str = "Failed to deliver verification code", **kwargs) -> DeliveryFailed:
        """验证码投递失败 (503)"""
        return DeliveryFailed(message, **kwargs)
