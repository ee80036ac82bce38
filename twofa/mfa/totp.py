"""TOTP (Time-based One-Time Password) 提供者

实现基于时间的一次性密码（RFC 6238），兼容 Google Authenticator、Microsoft Authenticator 等。
服务端不保存验证码，校验时根据草稿中的密钥和当前时间重新计算。

使用示例:
    strategy = TotpProviderStrategy()
    config = TotpProviderConfig(issuer_name="MyApp")

    user = TwoFactorUser(user_id=1, username="john", email="john@example.com")
    draft = strategy.build_template(user, config)
    print(draft.secret)    # JBSWY3DPEHPK3PXP...
    print(draft.auth_url)  # otpauth://totp/MyApp:john@example.com?issuer=MyApp&secret=...
"""

import hmac
import struct
import base64
import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import quote

from twofa.exceptions import Err
from twofa.validators import is_valid_base32_secret, parse_otpauth_url
from .base import ProviderStrategy, ProviderType, CodeIssuance, TwoFactorUser
from .models import TotpAccountConfig, TotpProviderConfig


def generate_secret(length_bytes: int = 20) -> str:
    """生成随机密钥（Base32，无填充）"""
    random_bytes = secrets.token_bytes(length_bytes)
    return base64.b32encode(random_bytes).decode("utf-8").rstrip("=")


def hotp(secret: str, counter: int, digits: int = 6) -> str:
    """HOTP (HMAC-based One-Time Password, RFC 4226)

    Args:
        secret: Base32 编码的密钥
        counter: 计数器
        digits: 密码位数

    Returns:
        str: 一次性密码
    """
    secret = secret.upper().rstrip("=")
    key = base64.b32decode(secret + "=" * (-len(secret) % 8))

    counter_bytes = struct.pack(">Q", counter)
    hmac_hash = hmac.new(key, counter_bytes, hashlib.sha1).digest()

    # 动态截断
    offset = hmac_hash[-1] & 0x0F
    truncated = struct.unpack(">I", hmac_hash[offset:offset + 4])[0]
    truncated &= 0x7FFFFFFF

    return str(truncated % (10 ** digits)).zfill(digits)


def totp_code(secret: str, timestamp: int, time_step: int = 30, digits: int = 6) -> str:
    """计算指定时间戳的 TOTP"""
    return hotp(secret, timestamp // time_step, digits)


def verify_totp(
    secret: str,
    code: str,
    timestamp: int,
    time_step: int = 30,
    digits: int = 6,
    window: int = 1,
) -> bool:
    """验证 TOTP

    Args:
        secret: Base32 编码的密钥
        code: 待验证的代码
        timestamp: 校验时刻（Unix 秒）
        time_step: 时间步长（秒）
        digits: 密码位数
        window: 允许的时间窗口（前后多少个时间步）

    Returns:
        bool: 是否验证通过
    """
    matched = False
    # 遍历整个窗口，避免提前返回暴露匹配位置
    for offset in range(-window, window + 1):
        check_time = timestamp + (offset * time_step)
        expected = totp_code(secret, check_time, time_step, digits)
        if hmac.compare_digest(code.encode("utf-8"), expected.encode("utf-8")):
            matched = True
    return matched


def build_auth_url(secret: str, issuer: str, account: str) -> str:
    """构建 otpauth URL

    格式: otpauth://totp/Issuer:account?issuer=Issuer&secret=XXXX
    """
    label = quote(f"{issuer}:{account}", safe=":@")
    return f"otpauth://totp/{label}?issuer={quote(issuer, safe='')}&secret={secret}"


class TotpProviderStrategy(ProviderStrategy):
    """TOTP 提供者策略

    - 模板：每次生成新的随机密钥和 otpauth URL
    - 签发：不产生服务端验证码，待验证记录按 total_allowed_time_for_verification 过期
    - 校验：在 allowed_skew_steps 时间窗口内比对
    """

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.TOTP

    def build_template(
        self,
        user: TwoFactorUser,
        provider_config: TotpProviderConfig,
        existing: Optional[TotpAccountConfig] = None,
    ) -> TotpAccountConfig:
        secret = generate_secret(provider_config.secret_length_bytes)
        account = user.account_name
        return TotpAccountConfig(
            secret=secret,
            auth_url=build_auth_url(secret, provider_config.issuer_name, account),
        )

    def validate_config(self, config: TotpAccountConfig) -> None:
        if not isinstance(config, TotpAccountConfig):
            raise Err.invalid_config("Account config is not a TOTP config")

        details = []
        if not is_valid_base32_secret(config.secret):
            details.append("secret: must be a non-empty, decodable Base32 string")

        parsed = parse_otpauth_url(config.auth_url)
        if parsed is None:
            details.append("auth_url: must match otpauth://totp/<issuer>:<account>?issuer=...&secret=...")
        elif config.secret and parsed["secret"].upper() != config.secret.strip().upper():
            details.append("auth_url: secret does not match the account config secret")

        if details:
            raise Err.invalid_config("Invalid TOTP account config", details=details)

    def issue_code(self, draft, provider_config, settings, now: datetime) -> CodeIssuance:
        return CodeIssuance(
            expires_at=now + timedelta(seconds=settings.total_allowed_time_for_verification),
        )

    def verify_code(self, draft, supplied_code, pending, provider_config, now: datetime) -> bool:
        code = self.normalize_code(supplied_code)
        if len(code) != provider_config.code_digits or not (code.isascii() and code.isdigit()):
            return False
        return verify_totp(
            secret=draft.secret.strip().upper(),
            code=code,
            timestamp=int(now.timestamp()),
            time_step=provider_config.time_step_seconds,
            digits=provider_config.code_digits,
            window=provider_config.allowed_skew_steps,
        )
