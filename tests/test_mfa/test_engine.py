"""两步验证引擎测试"""

import threading

import pytest

from twofa.exceptions import (
    DeliveryFailed,
    InvalidAccountConfigShape,
    InvalidVerificationCode,
    NoPendingVerification,
    ProviderNotConfigured,
    VerificationLocked,
)
from twofa.mfa import (
    InMemoryVerificationLedger,
    ProviderType,
    SmsAccountConfig,
    SmsProviderConfig,
    SystemClock,
    TotpAccountConfig,
    TotpProviderConfig,
    TwoFactorAuthEngine,
    TwoFactorAuthSettings,
    TwoFactorUser,
    totp_code,
)
from tests.helpers import ManualClock

TENANT = "tenant-1"
USER = TwoFactorUser(user_id="user-1", username="john", email="john@example.com")
PHONE = "+380505005050"


def wrong_code(code: str) -> str:
    return "000000" if code != "000000" else "111111"


class TestProviderListing:
    """可用提供者与已保存配置测试"""

    def test_list_available_providers(self, engine):
        assert engine.list_available_providers(TENANT) == [ProviderType.TOTP, ProviderType.SMS]

    def test_tenant_settings_override(self, engine):
        """租户只启用 SMS 时系统设置中的 TOTP 不可用"""
        engine.save_settings(TENANT, TwoFactorAuthSettings(providers=[SmsProviderConfig()]))

        assert engine.list_available_providers(TENANT) == [ProviderType.SMS]
        assert engine.list_available_providers("tenant-2") == [ProviderType.TOTP, ProviderType.SMS]

    def test_get_account_config_absent(self, engine):
        assert engine.get_account_config(TENANT, USER.user_id) is None

    def test_get_account_config_hidden_when_provider_disabled(self, engine, account_store):
        account_store.save(TENANT, USER.user_id, SmsAccountConfig(phone_number=PHONE))
        assert engine.get_account_config(TENANT, USER.user_id) is not None

        engine.save_settings(None, TwoFactorAuthSettings(providers=[TotpProviderConfig()]))

        assert engine.get_account_config(TENANT, USER.user_id) is None
        assert account_store.load(TENANT, USER.user_id) is not None


class TestGenerateAccountConfig:
    """草稿生成测试"""

    def test_generate_totp(self, engine, ledger, account_store):
        draft = engine.generate_account_config(TENANT, USER, ProviderType.TOTP)

        assert isinstance(draft, TotpAccountConfig)
        assert "TestApp:john@example.com" in draft.auth_url
        assert ledger.get((TENANT, USER.user_id)) is None
        assert account_store.load(TENANT, USER.user_id) is None

    def test_generate_accepts_string_type_and_user_id(self, engine):
        draft = engine.generate_account_config(TENANT, "user-9", "SMS")

        assert draft == SmsAccountConfig(phone_number=None)

    def test_generate_sms_prefills_phone(self, engine, account_store):
        account_store.save(TENANT, USER.user_id, SmsAccountConfig(phone_number=PHONE))

        draft = engine.generate_account_config(TENANT, USER, ProviderType.SMS)

        assert draft.phone_number == PHONE

    @pytest.mark.parametrize("provider_type", [ProviderType.TOTP, ProviderType.SMS])
    def test_disabled_provider(self, engine, provider_type):
        """禁用的提供者无法生成草稿和提交"""
        engine.save_settings(TENANT, TwoFactorAuthSettings(providers=[
            TotpProviderConfig(enabled=False),
            SmsProviderConfig(enabled=False),
        ]))

        with pytest.raises(ProviderNotConfigured):
            engine.generate_account_config(TENANT, USER, provider_type)

    def test_unknown_provider(self, engine):
        with pytest.raises(ProviderNotConfigured):
            engine.generate_account_config(TENANT, USER, "EMAIL")


class TestSubmit:
    """提交草稿测试"""

    def test_invalid_phone_rejected_before_ledger_write(self, engine, ledger, channel):
        with pytest.raises(InvalidAccountConfigShape):
            engine.submit(TENANT, USER.user_id, {"provider_type": "SMS", "phone_number": "not-a-number"})

        assert ledger.get((TENANT, USER.user_id)) is None
        assert channel.sent == []

    def test_submit_disabled_provider(self, engine):
        engine.save_settings(TENANT, TwoFactorAuthSettings(providers=[TotpProviderConfig()]))

        with pytest.raises(ProviderNotConfigured):
            engine.submit(TENANT, USER.user_id, SmsAccountConfig(phone_number=PHONE))

    def test_submit_sms_delivers_code(self, engine, ledger, channel):
        pending = engine.submit(TENANT, USER.user_id, {"provider_type": "SMS", "phone_number": PHONE})

        assert channel.sent[0][0] == PHONE
        assert channel.last_code == pending.expected_code
        assert ledger.get((TENANT, USER.user_id)).expected_code == pending.expected_code

    def test_submit_totp_no_delivery(self, engine, channel, clock):
        draft = engine.generate_account_config(TENANT, USER, ProviderType.TOTP)

        pending = engine.submit(TENANT, USER.user_id, draft)

        assert channel.sent == []
        assert pending.expected_code is None
        assert (pending.expires_at - clock.now()).total_seconds() == 600

    def test_delivery_failure_keeps_pending(self, engine, channel, ledger):
        """投递失败不撤销待验证记录"""
        channel.result = False

        with pytest.raises(DeliveryFailed):
            engine.submit(TENANT, USER.user_id, SmsAccountConfig(phone_number=PHONE))

        assert ledger.get((TENANT, USER.user_id)) is not None
        engine.check_and_save(TENANT, USER.user_id, SmsAccountConfig(phone_number=PHONE), channel.last_code)

    def test_delivery_exception_wrapped(self, engine, channel):
        channel.error = ConnectionError("gateway down")

        with pytest.raises(DeliveryFailed) as exc_info:
            engine.submit(TENANT, USER.user_id, SmsAccountConfig(phone_number=PHONE))

        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_resubmit_replaces_pending(self, engine, channel):
        """两次提交后只有第二次可以验证"""
        first = SmsAccountConfig(phone_number=PHONE)
        second = SmsAccountConfig(phone_number="+380505005051")

        engine.submit(TENANT, USER.user_id, first)
        first_code = channel.last_code
        engine.submit(TENANT, USER.user_id, second)
        second_code = channel.last_code

        with pytest.raises(NoPendingVerification):
            engine.check_and_save(TENANT, USER.user_id, first, first_code)

        engine.check_and_save(TENANT, USER.user_id, second, second_code)


class TestCheckAndSave:
    """验证码校验测试"""

    @pytest.fixture
    def draft(self):
        return SmsAccountConfig(phone_number=PHONE)

    def test_success_persists_and_clears(self, engine, account_store, channel, draft):
        engine.submit(TENANT, USER.user_id, draft)
        code = channel.last_code

        saved = engine.check_and_save(TENANT, USER.user_id, draft, code)

        assert saved == draft
        assert account_store.load(TENANT, USER.user_id) == draft
        assert engine.get_account_config(TENANT, USER.user_id) == draft
        with pytest.raises(NoPendingVerification):
            engine.check_and_save(TENANT, USER.user_id, draft, code)

    def test_without_submit(self, engine, draft):
        with pytest.raises(NoPendingVerification):
            engine.check_and_save(TENANT, USER.user_id, draft, "123456")

    def test_invalid_code_reports_remaining(self, engine, channel, ledger, draft):
        engine.submit(TENANT, USER.user_id, draft)

        with pytest.raises(InvalidVerificationCode) as exc_info:
            engine.check_and_save(TENANT, USER.user_id, draft, wrong_code(channel.last_code))

        assert exc_info.value.remaining_attempts == 2
        assert ledger.get((TENANT, USER.user_id)).failure_count == 1

    def test_locked_after_max_failures(self, engine, channel, draft):
        """达到失败上限后正确验证码也被拒绝，直到重新提交"""
        engine.submit(TENANT, USER.user_id, draft)
        code = channel.last_code

        for remaining in (2, 1, 0):
            with pytest.raises(InvalidVerificationCode) as exc_info:
                engine.check_and_save(TENANT, USER.user_id, draft, wrong_code(code))
            assert exc_info.value.remaining_attempts == remaining

        with pytest.raises(VerificationLocked):
            engine.check_and_save(TENANT, USER.user_id, draft, code)

        engine.submit(TENANT, USER.user_id, draft)
        engine.check_and_save(TENANT, USER.user_id, draft, channel.last_code)

    def test_expired_pending(self, engine, channel, clock, draft):
        engine.submit(TENANT, USER.user_id, draft)

        clock.advance(121)

        with pytest.raises(NoPendingVerification):
            engine.check_and_save(TENANT, USER.user_id, draft, channel.last_code)

    def test_draft_must_match_submitted(self, engine, channel, draft):
        engine.submit(TENANT, USER.user_id, draft)

        with pytest.raises(NoPendingVerification):
            engine.check_and_save(
                TENANT, USER.user_id, SmsAccountConfig(phone_number="+380505005059"), channel.last_code
            )

    def test_provider_disabled_after_submit(self, engine, channel, draft):
        engine.submit(TENANT, USER.user_id, draft)
        engine.save_settings(None, TwoFactorAuthSettings(providers=[TotpProviderConfig()]))

        with pytest.raises(ProviderNotConfigured):
            engine.check_and_save(TENANT, USER.user_id, draft, channel.last_code)

    def test_concurrent_checks_save_once(self, engine, account_store, channel, draft):
        """并发的正确校验只有一个成功"""
        engine.submit(TENANT, USER.user_id, draft)
        code = channel.last_code
        results = []
        barrier = threading.Barrier(5)

        def attempt():
            barrier.wait(timeout=5)
            try:
                engine.check_and_save(TENANT, USER.user_id, draft, code)
                results.append("ok")
            except NoPendingVerification:
                results.append("no_pending")

        threads = [threading.Thread(target=attempt) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert results.count("ok") == 1
        assert results.count("no_pending") == 4


class TestTotpEnrollment:
    """TOTP 完整登记流程测试"""

    def test_round_trip(self, engine, clock, account_store):
        draft = engine.generate_account_config(TENANT, USER, ProviderType.TOTP)
        engine.submit(TENANT, USER.user_id, draft)

        code = totp_code(draft.secret, clock.timestamp())
        engine.check_and_save(TENANT, USER.user_id, draft, code)

        assert account_store.load(TENANT, USER.user_id) == draft

    def test_code_outside_skew_rejected(self, engine, clock):
        draft = engine.generate_account_config(TENANT, USER, ProviderType.TOTP)
        engine.submit(TENANT, USER.user_id, draft)

        far_code = totp_code(draft.secret, clock.timestamp() + 3 * 30)
        window = {totp_code(draft.secret, clock.timestamp() + k * 30) for k in (-1, 0, 1)}
        if far_code in window:
            pytest.skip("code collision across time steps")

        with pytest.raises(InvalidVerificationCode):
            engine.check_and_save(TENANT, USER.user_id, draft, far_code)

    def test_totp_pending_expires(self, engine, clock):
        draft = engine.generate_account_config(TENANT, USER, ProviderType.TOTP)
        engine.submit(TENANT, USER.user_id, draft)

        clock.advance(601)

        with pytest.raises(NoPendingVerification):
            engine.check_and_save(TENANT, USER.user_id, draft, totp_code(draft.secret, clock.timestamp()))


    @pytest.mark.parametrize("code", ["١٢٣٤٥٦", "²²²²²²", "12-34-5٦"])
    def test_non_ascii_code_counts_as_failure(self, engine, clock, ledger, code):
        """测试 Unicode 数字按错误验证码处理"""
        draft = engine.generate_account_config(TENANT, USER, ProviderType.TOTP)
        engine.submit(TENANT, USER.user_id, draft)

        with pytest.raises(InvalidVerificationCode) as exc_info:
            engine.check_and_save(TENANT, USER.user_id, draft, code)

        assert exc_info.value.remaining_attempts == 2
        assert ledger.get((TENANT, USER.user_id)).failure_count == 1

    @pytest.mark.parametrize("secret", ["A", "ABC", "ABCDEF"])
    def test_undecodable_secret_rejected_on_submit(self, engine, ledger, secret):
        """测试无法解码的密钥不会写入待验证记录"""
        draft = TotpAccountConfig(
            secret=secret,
            auth_url=f"otpauth://totp/X:a@b.c?issuer=X&secret={secret}",
        )

        with pytest.raises(InvalidAccountConfigShape):
            engine.submit(TENANT, USER.user_id, draft)

        assert ledger.get((TENANT, USER.user_id)) is None


class TestSubmitCheckRace:
    """并发提交与校验测试

    校验要么基于旧记录完成，要么因记录已被替换而失败，之后只剩新记录。
    """

    @pytest.mark.parametrize("attempt", range(5))
    def test_resubmit_during_check(self, engine, account_store, ledger, channel, attempt):
        first = SmsAccountConfig(phone_number=PHONE)
        second = SmsAccountConfig(phone_number="+380505005051")
        engine.submit(TENANT, USER.user_id, first)
        first_code = channel.last_code
        outcome = []
        barrier = threading.Barrier(2)

        def check():
            barrier.wait(timeout=5)
            try:
                engine.check_and_save(TENANT, USER.user_id, first, first_code)
                outcome.append("saved")
            except NoPendingVerification:
                outcome.append("no_pending")

        def resubmit():
            barrier.wait(timeout=5)
            engine.submit(TENANT, USER.user_id, second)

        threads = [threading.Thread(target=check), threading.Thread(target=resubmit)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert len(outcome) == 1
        if outcome[0] == "saved":
            assert account_store.load(TENANT, USER.user_id) == first
        else:
            assert account_store.load(TENANT, USER.user_id) is None
        assert ledger.get((TENANT, USER.user_id)).candidate_account_config == second


class TestEngineClock:
    """引擎与记录存储的时钟测试"""

    def test_engine_uses_ledger_clock_by_default(self, resolver, account_store, channel):
        clock = ManualClock()
        engine = TwoFactorAuthEngine(
            settings_resolver=resolver,
            account_config_store=account_store,
            ledger=InMemoryVerificationLedger(clock=clock),
            delivery_channel=channel,
        )
        draft = SmsAccountConfig(phone_number=PHONE)

        pending = engine.submit(TENANT, USER.user_id, draft)

        assert pending.created_at == clock.now()
        clock.advance(121)
        with pytest.raises(NoPendingVerification):
            engine.check_and_save(TENANT, USER.user_id, draft, channel.last_code)

    def test_ledger_without_clock_falls_back_to_system_clock(self, resolver, account_store):
        engine = TwoFactorAuthEngine(
            settings_resolver=resolver,
            account_config_store=account_store,
            ledger=InMemoryVerificationLedger(),
        )

        assert isinstance(engine._clock, SystemClock)


class TestCancelAndDelete:
    """取消与删除测试"""

    def test_cancel(self, engine, channel):
        draft = SmsAccountConfig(phone_number=PHONE)
        engine.submit(TENANT, USER.user_id, draft)

        assert engine.cancel(TENANT, USER.user_id) is True
        assert engine.cancel(TENANT, USER.user_id) is False
        with pytest.raises(NoPendingVerification):
            engine.check_and_save(TENANT, USER.user_id, draft, channel.last_code)

    def test_delete_is_idempotent(self, engine, account_store, ledger, channel):
        draft = SmsAccountConfig(phone_number=PHONE)
        engine.submit(TENANT, USER.user_id, draft)
        engine.check_and_save(TENANT, USER.user_id, draft, channel.last_code)
        engine.submit(TENANT, USER.user_id, draft)

        engine.delete(TENANT, USER.user_id)
        engine.delete(TENANT, USER.user_id)

        assert account_store.load(TENANT, USER.user_id) is None
        assert ledger.get((TENANT, USER.user_id)) is None


class TestSettingsPassThrough:
    """设置管理测试"""

    def test_save_settings_from_dict(self, engine):
        saved = engine.save_settings(TENANT, {"providers": [{"provider_type": "SMS"}], "max_verification_failures": 5})

        assert saved.max_verification_failures == 5
        assert engine.get_settings(TENANT) == saved

    def test_get_settings_fallback(self, engine, system_settings):
        assert engine.get_settings(TENANT) is None
        assert engine.get_settings(TENANT, use_system_fallback=True) == system_settings
