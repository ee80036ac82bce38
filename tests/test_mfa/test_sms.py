"""短信提供者测试"""

from datetime import datetime, timedelta, timezone

import pytest

from twofa.exceptions import InvalidAccountConfigShape
from twofa.mfa import (
    ProviderType,
    PendingVerification,
    SmsAccountConfig,
    SmsProviderConfig,
    SmsProviderStrategy,
    TotpAccountConfig,
    TwoFactorAuthSettings,
    TwoFactorUser,
    generate_numeric_code,
    render_message,
)


class TestSmsHelpers:
    """验证码生成与模板渲染测试"""

    def test_generate_numeric_code(self):
        code = generate_numeric_code(8)

        assert len(code) == 8
        assert code.isdigit()

    def test_render_message(self):
        assert render_message("Code ${code}, valid 2 min. ${code}", "123456") == "Code 123456, valid 2 min. 123456"


class TestSmsProviderStrategy:
    """短信策略测试"""

    @pytest.fixture
    def strategy(self):
        return SmsProviderStrategy()

    @pytest.fixture
    def provider_config(self):
        return SmsProviderConfig(
            verification_message_template="Your code: ${code}",
            code_length=6,
            code_lifetime_seconds=120,
        )

    @pytest.fixture
    def now(self):
        return datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    @pytest.fixture
    def draft(self):
        return SmsAccountConfig(phone_number="+380505005050")

    def test_provider_type(self, strategy):
        assert strategy.provider_type == ProviderType.SMS

    def test_build_template_empty(self, strategy, provider_config):
        config = strategy.build_template(TwoFactorUser(user_id=1), provider_config)

        assert isinstance(config, SmsAccountConfig)
        assert config.phone_number is None

    def test_build_template_reuses_phone(self, strategy, provider_config, draft):
        """测试预填已登记的手机号"""
        config = strategy.build_template(TwoFactorUser(user_id=1), provider_config, existing=draft)

        assert config.phone_number == "+380505005050"

    def test_validate(self, strategy, draft):
        strategy.validate_config(draft)

    @pytest.mark.parametrize("phone", [None, "", "not-a-number", "0505005050"])
    def test_validate_rejects_invalid_phone(self, strategy, phone):
        with pytest.raises(InvalidAccountConfigShape):
            strategy.validate_config(SmsAccountConfig(phone_number=phone))

    def test_validate_rejects_other_provider(self, strategy):
        with pytest.raises(InvalidAccountConfigShape):
            strategy.validate_config(TotpAccountConfig(secret="JBSWY3DPEHPK3PXP", auth_url="x"))

    def test_issue_code(self, strategy, provider_config, draft, now):
        """测试签发验证码和投递内容"""
        issuance = strategy.issue_code(draft, provider_config, TwoFactorAuthSettings(), now)

        assert len(issuance.expected_code) == 6
        assert issuance.expires_at == now + timedelta(seconds=120)
        assert issuance.delivery.destination == "+380505005050"
        assert issuance.delivery.message == f"Your code: {issuance.expected_code}"

    def _pending(self, draft, now, code="123456"):
        return PendingVerification(
            provider_type=ProviderType.SMS,
            candidate_account_config=draft,
            expires_at=now + timedelta(seconds=120),
            expected_code=code,
            created_at=now,
        )

    def test_verify_code(self, strategy, provider_config, draft, now):
        pending = self._pending(draft, now)

        assert strategy.verify_code(draft, "123456", pending, provider_config, now) is True
        assert strategy.verify_code(draft, "123-456", pending, provider_config, now) is True
        assert strategy.verify_code(draft, "654321", pending, provider_config, now) is False
        assert strategy.verify_code(draft, "", pending, provider_config, now) is False

    def test_verify_code_after_expiry(self, strategy, provider_config, draft, now):
        pending = self._pending(draft, now)

        assert strategy.verify_code(draft, "123456", pending, provider_config, now + timedelta(seconds=121)) is False
