"""
Pytest 公共配置和 Fixtures

提供测试所需的公共资源：
- 可控时钟
- 内存存储与设置
- 两步验证引擎
"""

import pytest

from twofa.mfa import (
    InMemoryAccountConfigStore,
    InMemorySettingsStore,
    InMemoryVerificationLedger,
    SettingsResolver,
    SmsProviderConfig,
    TotpProviderConfig,
    TwoFactorAuthEngine,
    TwoFactorAuthSettings,
)
from tests.helpers import ManualClock, RecordingDeliveryChannel


@pytest.fixture
def clock():
    """固定起始时间的手动时钟"""
    return ManualClock()


@pytest.fixture
def system_settings():
    """系统级设置：TOTP + SMS 均启用"""
    return TwoFactorAuthSettings(
        providers=[
            TotpProviderConfig(issuer_name="TestApp"),
            SmsProviderConfig(code_lifetime_seconds=120),
        ],
        max_verification_failures=3,
        total_allowed_time_for_verification=600,
    )


@pytest.fixture
def settings_store(system_settings):
    return InMemorySettingsStore(system_settings=system_settings)


@pytest.fixture
def resolver(settings_store):
    return SettingsResolver(settings_store, cache_ttl=60)


@pytest.fixture
def account_store():
    return InMemoryAccountConfigStore()


@pytest.fixture
def ledger(clock):
    return InMemoryVerificationLedger(clock=clock)


@pytest.fixture
def channel():
    return RecordingDeliveryChannel()


@pytest.fixture
def engine(resolver, account_store, ledger, channel, clock):
    """使用内存协作者的引擎"""
    return TwoFactorAuthEngine(
        settings_resolver=resolver,
        account_config_store=account_store,
        ledger=ledger,
        delivery_channel=channel,
        clock=clock,
    )
