"""两步验证引擎

管理用户 2FA 账户配置的登记流程：

    NoConfig -> Draft -> Pending -> Verified(已保存)

- generate_account_config: 生成草稿（不修改任何状态）
- submit: 校验草稿并签发验证码，写入待验证记录
- check_and_save: 校验验证码，成功后保存账户配置

使用示例:
    from twofa.mfa import (
        TwoFactorAuthEngine, SettingsResolver, InMemorySettingsStore,
        InMemoryAccountConfigStore, InMemoryVerificationLedger, TwoFactorUser,
        CallableDeliveryChannel, ProviderType,
    )

    engine = TwoFactorAuthEngine(
        settings_resolver=SettingsResolver(InMemorySettingsStore()),
        account_config_store=InMemoryAccountConfigStore(),
        ledger=InMemoryVerificationLedger(),
        delivery_channel=CallableDeliveryChannel(send_sms),
    )

    user = TwoFactorUser(user_id=1, email="john@example.com")
    draft = engine.generate_account_config(tenant_id, user, ProviderType.TOTP)
    engine.submit(tenant_id, user.user_id, draft)
    engine.check_and_save(tenant_id, user.user_id, draft, "123456")
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from twofa.exceptions import Err
from twofa.log import get_logger, log_filter_hook_manager
from .base import CodeDelivery, ProviderStrategy, ProviderType, TwoFactorUser
from .ledger import VerificationLedger
from .models import (
    BaseAccountConfig,
    BaseProviderConfig,
    PendingVerification,
    TwoFactorAuthSettings,
    parse_account_config,
)
from .settings_resolver import SettingsResolver
from .sms import SmsProviderStrategy
from .stores import AccountConfigStore, Clock, CodeDeliveryChannel, LoggingDeliveryChannel, SystemClock
from .totp import TotpProviderStrategy

logger = get_logger()


def _masked(config: BaseAccountConfig) -> Dict[str, Any]:
    """账户配置的日志安全表示"""
    return log_filter_hook_manager.apply_filters(config.model_dump(mode="json"))


class TwoFactorAuthEngine:
    """两步验证引擎

    Args:
        settings_resolver: 设置解析器
        account_config_store: 账户配置存储
        ledger: 待验证记录存储
        delivery_channel: 验证码投递渠道（默认只写日志）
        clock: 时间来源，必须与 ledger 判断过期使用的时钟相同；省略时沿用 ledger 的时钟
        strategies: 提供者策略（默认 TOTP + SMS）
    """

    def __init__(
        self,
        settings_resolver: SettingsResolver,
        account_config_store: AccountConfigStore,
        ledger: VerificationLedger,
        delivery_channel: Optional[CodeDeliveryChannel] = None,
        clock: Optional[Clock] = None,
        strategies: Optional[Iterable[ProviderStrategy]] = None,
    ):
        self._resolver = settings_resolver
        self._store = account_config_store
        self._ledger = ledger
        self._channel = delivery_channel or LoggingDeliveryChannel()
        ledger_clock = ledger.clock
        if clock is None:
            clock = ledger_clock or SystemClock()
        elif ledger_clock is not None and ledger_clock is not clock:
            logger.warning(
                "TwoFactorAuthEngine and its ledger use different clocks; "
                "pending verifications may expire early or late"
            )
        self._clock = clock

        self._strategies: Dict[ProviderType, ProviderStrategy] = {}
        if strategies is None:
            strategies = (TotpProviderStrategy(), SmsProviderStrategy())
        for strategy in strategies:
            self.register_strategy(strategy)

    # ==================== 策略注册 ====================

    def register_strategy(self, strategy: ProviderStrategy) -> "TwoFactorAuthEngine":
        """注册提供者策略（同类型会覆盖）

        Returns:
            self: 支持链式调用
        """
        self._strategies[strategy.provider_type] = strategy
        return self

    def get_strategy(self, provider_type: Union[ProviderType, str]) -> ProviderStrategy:
        """获取提供者策略

        Raises:
            ProviderNotConfigured: 类型未知或没有注册策略
        """
        try:
            provider_type = ProviderType(provider_type)
        except ValueError:
            raise Err.provider_not_configured(f"Unknown 2FA provider type: {provider_type}")
        strategy = self._strategies.get(provider_type)
        if strategy is None:
            raise Err.provider_not_configured(f"2FA provider {provider_type.value} is not supported")
        return strategy

    # ==================== 内部工具 ====================

    def _require_provider(
        self,
        tenant_id: Any,
        provider_type: ProviderType,
    ) -> Tuple[TwoFactorAuthSettings, BaseProviderConfig]:
        """写路径上的提供者检查（绕过缓存）"""
        settings = self._resolver.resolve(tenant_id, use_cache=False)
        provider_config = settings.get_provider_config(provider_type)
        if provider_config is None or not provider_config.enabled:
            raise Err.provider_not_configured(f"2FA provider {provider_type.value} is not configured")
        return settings, provider_config

    def _parse_draft(self, draft: Any) -> Tuple[BaseAccountConfig, ProviderStrategy]:
        config = parse_account_config(draft)
        strategy = self.get_strategy(config.provider_type)
        strategy.validate_config(config)
        return config, strategy

    # ==================== 查询 ====================

    def get_account_config(self, tenant_id: Any, user_id: Any) -> Optional[BaseAccountConfig]:
        """获取用户已保存的账户配置

        提供者已被禁用时返回 None（不删除已保存的数据）。
        """
        config = self._store.load(tenant_id, user_id)
        if config is None:
            return None
        if not self._resolver.is_provider_allowed(tenant_id, config.provider_type):
            logger.debug(
                f"Stored 2FA config of user {user_id} uses disabled provider {config.provider_type.value}"
            )
            return None
        return config

    def list_available_providers(self, tenant_id: Any) -> List[ProviderType]:
        """租户可用的提供者（按设置中的顺序）"""
        settings = self._resolver.resolve(tenant_id)
        return [provider.provider_type for provider in settings.enabled_providers()]

    # ==================== 登记流程 ====================

    def generate_account_config(
        self,
        tenant_id: Any,
        user: Union[TwoFactorUser, Any],
        provider_type: Union[ProviderType, str],
    ) -> BaseAccountConfig:
        """生成账户配置草稿

        不写入存储和待验证记录，可以重复调用，结果可直接丢弃。

        Args:
            tenant_id: 租户 ID
            user: 用户（或用户 ID）
            provider_type: 提供者类型

        Raises:
            ProviderNotConfigured: 提供者未启用
        """
        if not isinstance(user, TwoFactorUser):
            user = TwoFactorUser(user_id=user)
        strategy = self.get_strategy(provider_type)
        _, provider_config = self._require_provider(tenant_id, strategy.provider_type)

        existing = self._store.load(tenant_id, user.user_id)
        if existing is not None and existing.provider_type != strategy.provider_type:
            existing = None
        return strategy.build_template(user, provider_config, existing=existing)

    def submit(self, tenant_id: Any, user_id: Any, draft: Any) -> PendingVerification:
        """提交草稿并签发验证码

        覆盖用户之前的待验证记录，只有最后一次提交可以被验证。
        投递在释放用户锁之后执行，投递失败不会撤销待验证记录。

        Raises:
            InvalidAccountConfigShape: 草稿格式不正确
            ProviderNotConfigured: 提供者未启用
            DeliveryFailed: 验证码投递失败
        """
        config, strategy = self._parse_draft(draft)
        settings, provider_config = self._require_provider(tenant_id, config.provider_type)

        key = (tenant_id, user_id)
        with self._ledger.lock(key):
            now = self._clock.now()
            issuance = strategy.issue_code(config, provider_config, settings, now)
            pending = PendingVerification(
                provider_type=config.provider_type,
                candidate_account_config=config,
                expires_at=issuance.expires_at,
                expected_code=issuance.expected_code,
                max_failures=settings.max_verification_failures,
                created_at=now,
            )
            self._ledger.put(key, pending)

        logger.info(
            f"2FA config submitted: tenant={tenant_id}, user={user_id}, "
            f"provider={config.provider_type.value}, draft={_masked(config)}"
        )

        if issuance.delivery is not None:
            self._deliver(tenant_id, user_id, issuance.delivery)
        return pending

    def _deliver(self, tenant_id: Any, user_id: Any, delivery: CodeDelivery) -> None:
        try:
            sent = self._channel.send(delivery.destination, delivery.message)
        except Exception as e:
            logger.error(f"Verification code delivery raised for tenant={tenant_id}, user={user_id}: {e}")
            raise Err.delivery_failed(details=[str(e)]) from e
        if not sent:
            logger.warning(f"Verification code delivery rejected for tenant={tenant_id}, user={user_id}")
            raise Err.delivery_failed()

    def check_and_save(self, tenant_id: Any, user_id: Any, draft: Any, verification_code: str) -> BaseAccountConfig:
        """校验验证码并保存账户配置

        Raises:
            InvalidAccountConfigShape: 草稿格式不正确
            ProviderNotConfigured: 提供者未启用
            NoPendingVerification: 没有待验证记录，或草稿与提交的不一致
            VerificationLocked: 失败次数已达上限
            InvalidVerificationCode: 验证码不正确
        """
        config, strategy = self._parse_draft(draft)
        _, provider_config = self._require_provider(tenant_id, config.provider_type)

        key = (tenant_id, user_id)
        with self._ledger.lock(key):
            pending = self._ledger.get(key)
            if pending is None or pending.candidate_account_config != config:
                raise Err.no_pending()
            if pending.locked:
                raise Err.locked()

            now = self._clock.now()
            if not strategy.verify_code(config, verification_code, pending, provider_config, now):
                failures = self._ledger.record_failure(key)
                remaining = max(0, pending.max_failures - failures)
                logger.warning(
                    f"Invalid 2FA verification code: tenant={tenant_id}, user={user_id}, "
                    f"failures={failures}/{pending.max_failures}"
                )
                raise Err.invalid_code(remaining_attempts=remaining)

            self._store.save(tenant_id, user_id, config)
            self._ledger.remove(key)

        logger.info(
            f"2FA config saved: tenant={tenant_id}, user={user_id}, provider={config.provider_type.value}"
        )
        return config

    def cancel(self, tenant_id: Any, user_id: Any) -> bool:
        """放弃进行中的登记

        Returns:
            bool: 是否存在待验证记录
        """
        key = (tenant_id, user_id)
        with self._ledger.lock(key):
            return self._ledger.remove(key)

    def delete(self, tenant_id: Any, user_id: Any) -> None:
        """删除用户的账户配置和待验证记录（幂等）"""
        key = (tenant_id, user_id)
        with self._ledger.lock(key):
            self._store.delete(tenant_id, user_id)
            self._ledger.remove(key)
        logger.info(f"2FA config deleted: tenant={tenant_id}, user={user_id}")

    # ==================== 设置管理 ====================

    def get_settings(self, tenant_id: Any = None, use_system_fallback: bool = False) -> Optional[TwoFactorAuthSettings]:
        return self._resolver.get_settings(tenant_id, use_system_fallback)

    def save_settings(self, tenant_id: Any, settings: Any) -> TwoFactorAuthSettings:
        """保存系统（tenant_id 为 None）或租户设置

        Args:
            settings: TwoFactorAuthSettings 或可解析为它的字典

        Raises:
            pydantic.ValidationError: 设置格式不正确
        """
        if not isinstance(settings, TwoFactorAuthSettings):
            settings = TwoFactorAuthSettings.model_validate(settings)
        return self._resolver.save_settings(tenant_id, settings)
