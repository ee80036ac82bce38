"""短信验证码提供者

签发时生成随机数字验证码并保存在待验证记录中，由 CodeDeliveryChannel 投递到用户手机。
"""

import hmac
import secrets
from datetime import datetime, timedelta
from typing import Optional

from twofa.exceptions import Err
from twofa.validators import is_valid_phone
from .base import ProviderStrategy, ProviderType, CodeIssuance, CodeDelivery, TwoFactorUser
from .models import SmsAccountConfig, SmsProviderConfig


CODE_PLACEHOLDER = "${code}"


def generate_numeric_code(length: int = 6) -> str:
    """生成纯数字验证码"""
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def render_message(template: str, code: str) -> str:
    """将验证码填入短信模板"""
    return template.replace(CODE_PLACEHOLDER, code)


class SmsProviderStrategy(ProviderStrategy):
    """短信提供者策略"""

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.SMS

    def build_template(
        self,
        user: TwoFactorUser,
        provider_config: SmsProviderConfig,
        existing: Optional[SmsAccountConfig] = None,
    ) -> SmsAccountConfig:
        # 已登记过短信时预填原手机号
        phone_number = existing.phone_number if isinstance(existing, SmsAccountConfig) else None
        return SmsAccountConfig(phone_number=phone_number)

    def validate_config(self, config: SmsAccountConfig) -> None:
        if not isinstance(config, SmsAccountConfig):
            raise Err.invalid_config("Account config is not an SMS config")
        if not config.phone_number or not config.phone_number.strip():
            raise Err.invalid_config("Phone number is required", details=["phone_number: must not be blank"])
        if not is_valid_phone(config.phone_number):
            raise Err.invalid_config(
                "Phone number must be in E.164 format",
                details=["phone_number: must match +<country code><number>"],
            )

    def issue_code(self, draft: SmsAccountConfig, provider_config: SmsProviderConfig, settings, now: datetime) -> CodeIssuance:
        code = generate_numeric_code(provider_config.code_length)
        return CodeIssuance(
            expires_at=now + timedelta(seconds=provider_config.code_lifetime_seconds),
            expected_code=code,
            delivery=CodeDelivery(
                destination=draft.phone_number.strip(),
                message=render_message(provider_config.verification_message_template, code),
            ),
        )

    def verify_code(self, draft, supplied_code, pending, provider_config, now: datetime) -> bool:
        if not pending.expected_code or pending.is_expired(now):
            return False
        code = self.normalize_code(supplied_code)
        if not code:
            return False
        return hmac.compare_digest(code.encode("utf-8"), pending.expected_code.encode("utf-8"))
