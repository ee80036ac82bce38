"""根据 AppSettings 组装两步验证引擎

使用示例:
    from twofa.config import AppSettings, load_yaml_config
    from twofa.mfa import setup_two_factor_auth

    settings = load_yaml_config("config/settings.yaml", AppSettings)
    engine = setup_two_factor_auth(
        settings,
        account_config_store=MyAttributeStore(),
        settings_store=MySettingsStore(),
        delivery_channel=CallableDeliveryChannel(send_sms),
    )
"""

from typing import Optional

import redis

from twofa.config import AppSettings
from twofa.log import get_logger
from .engine import TwoFactorAuthEngine
from .ledger import InMemoryVerificationLedger, RedisVerificationLedger, VerificationLedger
from .settings_resolver import SettingsResolver
from .stores import (
    AccountConfigStore,
    Clock,
    CodeDeliveryChannel,
    InMemoryAccountConfigStore,
    InMemorySettingsStore,
    SettingsStore,
    SystemClock,
)

logger = get_logger()


def create_ledger(
    settings: AppSettings,
    clock: Clock,
    redis_client=None,
) -> VerificationLedger:
    """按配置创建待验证记录存储

    Args:
        settings: 应用配置
        clock: 时间来源
        redis_client: 已有的 Redis 客户端（backend=redis 时可选）

    Raises:
        ValueError: backend=redis 但既没有客户端也没有 redis_url
    """
    ledger_config = settings.ledger
    if ledger_config.backend == "redis":
        if redis_client is None:
            if not ledger_config.redis_url:
                raise ValueError("ledger.redis_url is required when ledger.backend is 'redis'")
            redis_client = redis.from_url(ledger_config.redis_url)
        logger.info(f"Using Redis verification ledger (prefix={ledger_config.key_prefix})")
        return RedisVerificationLedger(
            redis_client,
            clock=clock,
            prefix=ledger_config.key_prefix,
            lock_timeout=ledger_config.lock_timeout,
            lock_blocking_timeout=ledger_config.lock_blocking_timeout,
        )

    logger.info("Using in-memory verification ledger")
    return InMemoryVerificationLedger(clock=clock)


def setup_two_factor_auth(
    settings: Optional[AppSettings] = None,
    account_config_store: Optional[AccountConfigStore] = None,
    settings_store: Optional[SettingsStore] = None,
    delivery_channel: Optional[CodeDeliveryChannel] = None,
    clock: Optional[Clock] = None,
    redis_client=None,
) -> TwoFactorAuthEngine:
    """组装两步验证引擎

    未提供的存储使用内存实现，未提供投递渠道时只写日志（开发模式）。

    Returns:
        TwoFactorAuthEngine: 配置好的引擎
    """
    settings = settings or AppSettings()
    clock = clock or SystemClock()

    if account_config_store is None:
        logger.warning("No account config store provided, using in-memory store")
        account_config_store = InMemoryAccountConfigStore()
    if settings_store is None:
        settings_store = InMemorySettingsStore()

    resolver = SettingsResolver(
        settings_store,
        cache_ttl=settings.settings_cache.ttl,
        cache_maxsize=settings.settings_cache.maxsize,
    )
    return TwoFactorAuthEngine(
        settings_resolver=resolver,
        account_config_store=account_config_store,
        ledger=create_ledger(settings, clock, redis_client=redis_client),
        delivery_channel=delivery_channel,
        clock=clock,
    )
