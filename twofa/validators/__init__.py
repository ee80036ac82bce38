"""验证约束模块

使用示例:
    from twofa.validators import is_valid_phone, parse_otpauth_url

    is_valid_phone("+380505005050")          # True
    parse_otpauth_url(config.auth_url)["secret"]
"""

from .constraints import (
    is_valid_phone,
    is_valid_base32_secret,
    is_valid_otpauth_url,
    parse_otpauth_url,
)

__all__ = [
    "is_valid_phone",
    "is_valid_base32_secret",
    "is_valid_otpauth_url",
    "parse_otpauth_url",
]
