"""验证约束定义

底层纯验证函数（无框架依赖），供账户配置校验与 Service 层共同使用：
- E.164 国际格式手机号
- otpauth:// TOTP 登记 URL
- Base32 密钥
"""

import re
import base64
import binascii
from typing import Dict, Optional
from urllib.parse import urlsplit, parse_qs, unquote


# E.164：+ 号开头，国家码首位非 0，总位数不超过 15
_E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")

# Base32 字母表（RFC 4648），允许省略填充
_BASE32_PATTERN = re.compile(r"^[A-Z2-7]+=*$")

# otpauth://totp/<issuer>:<account>?...
_OTPAUTH_PATTERN = re.compile(r"^otpauth://totp/(\S+?):(\S+?)\?(\S+)$")


def is_valid_phone(phone: Optional[str]) -> bool:
    """验证 E.164 格式手机号（纯函数，无副作用）

    Args:
        phone: 手机号，如 "+380505005050"

    Returns:
        是否格式正确
    """
    if not phone:
        return False
    return bool(_E164_PATTERN.match(phone.strip()))


def is_valid_base32_secret(secret: Optional[str]) -> bool:
    """验证 Base32 编码的密钥

    除字母表外还要求能够解码：去掉填充后长度除以 8 余 1、3、6 的字符串无法解码。
    """
    if not secret or not secret.strip():
        return False
    normalized = secret.strip().upper()
    if not _BASE32_PATTERN.match(normalized):
        return False
    normalized = normalized.rstrip("=")
    try:
        base64.b32decode(normalized + "=" * (-len(normalized) % 8))
    except binascii.Error:
        return False
    return True


def parse_otpauth_url(url: Optional[str]) -> Optional[Dict[str, str]]:
    """解析 otpauth TOTP URL

    Args:
        url: 形如 otpauth://totp/Issuer:account?issuer=Issuer&secret=XXXX

    Returns:
        包含 issuer / account / secret 等参数的字典；格式不正确时返回 None
    """
    if not url or not url.strip():
        return None
    url = url.strip()
    if not _OTPAUTH_PATTERN.match(url):
        return None

    parts = urlsplit(url)
    label = unquote(parts.path.lstrip("/"))
    label_issuer, _, account = label.partition(":")
    if not label_issuer or not account:
        return None

    params = {key: values[0] for key, values in parse_qs(parts.query).items() if values}
    if not params.get("secret"):
        return None

    result = {"label_issuer": label_issuer, "account": account}
    result.update(params)
    return result


def is_valid_otpauth_url(url: Optional[str]) -> bool:
    """验证 otpauth TOTP URL（必须包含 secret 参数）"""
    return parse_otpauth_url(url) is not None
