"""2FA 设置解析

解析规则：租户存在自己的（非空）设置时完全使用租户设置（不做字段合并），否则回退到系统设置；
两者都不存在时返回空设置（没有可用的提供者）。

解析结果缓存在 cachetools.TTLCache 中，任何写入都会清空缓存，
引擎在写路径上使用 use_cache=False 直接读取存储。

使用示例:
    resolver = SettingsResolver(InMemorySettingsStore())

    resolver.save_system(TwoFactorAuthSettings(providers=[TotpProviderConfig()]))
    settings = resolver.resolve(tenant_id=42)
    if resolver.is_provider_allowed(42, ProviderType.TOTP):
        ...
"""

import threading
from typing import Any, Optional

from cachetools import TTLCache

from twofa.log import get_logger
from .base import ProviderType
from .models import BaseProviderConfig, TwoFactorAuthSettings
from .stores import SettingsStore

logger = get_logger()


class SettingsResolver:
    """2FA 设置解析器

    Args:
        store: 设置存储
        cache_ttl: 缓存有效期（秒），0 表示不缓存
        cache_maxsize: 最大缓存条目数
    """

    def __init__(self, store: SettingsStore, cache_ttl: int = 60, cache_maxsize: int = 1024):
        self._store = store
        self._cache: Optional[TTLCache] = TTLCache(maxsize=cache_maxsize, ttl=cache_ttl) if cache_ttl > 0 else None
        self._lock = threading.Lock()
        # 每次写入递增，读取期间发生写入时不回填缓存
        self._generation = 0

    @property
    def store(self) -> SettingsStore:
        return self._store

    def resolve(self, tenant_id: Any = None, use_cache: bool = True) -> TwoFactorAuthSettings:
        """解析租户生效的设置

        Args:
            tenant_id: 租户 ID，None 表示系统级用户
            use_cache: 是否允许使用缓存

        Returns:
            TwoFactorAuthSettings: 生效设置，未配置时为空设置
        """
        if use_cache and self._cache is not None:
            with self._lock:
                cached = self._cache.get(tenant_id)
                generation = self._generation
            if cached is not None:
                return cached
            resolved = self._load(tenant_id)
            with self._lock:
                if generation == self._generation:
                    self._cache[tenant_id] = resolved
            return resolved
        return self._load(tenant_id)

    def _load(self, tenant_id: Any) -> TwoFactorAuthSettings:
        if tenant_id is not None:
            tenant_settings = self._store.load_tenant(tenant_id)
            if tenant_settings is not None and not tenant_settings.is_empty():
                return tenant_settings
        system_settings = self._store.load_system()
        if system_settings is not None:
            return system_settings
        return TwoFactorAuthSettings()

    def get_settings(self, tenant_id: Any = None, use_system_fallback: bool = False) -> Optional[TwoFactorAuthSettings]:
        """读取已保存的设置（管理接口使用）

        Args:
            tenant_id: 租户 ID，None 表示系统级设置
            use_system_fallback: 租户没有自己的设置时是否返回系统设置

        Returns:
            已保存的设置，不存在返回 None
        """
        if tenant_id is None:
            return self._store.load_system()
        settings = self._store.load_tenant(tenant_id)
        if settings is None and use_system_fallback:
            settings = self._store.load_system()
        return settings

    def save_settings(self, tenant_id: Any, settings: TwoFactorAuthSettings) -> TwoFactorAuthSettings:
        """保存设置并清空解析缓存

        Args:
            tenant_id: 租户 ID，None 表示系统级设置
            settings: 新设置（整体替换）
        """
        if tenant_id is None:
            return self.save_system(settings)
        return self.save_tenant(tenant_id, settings)

    def save_system(self, settings: TwoFactorAuthSettings) -> TwoFactorAuthSettings:
        self._store.save_system(settings)
        # 租户可能回退到系统设置，清空全部缓存
        self.invalidate()
        logger.info(f"System 2FA settings saved: providers={_provider_names(settings)}")
        return settings

    def save_tenant(self, tenant_id: Any, settings: TwoFactorAuthSettings) -> TwoFactorAuthSettings:
        if tenant_id is None:
            raise ValueError("tenant_id is required for tenant settings")
        self._store.save_tenant(tenant_id, settings)
        self.invalidate()
        logger.info(f"2FA settings saved for tenant {tenant_id}: providers={_provider_names(settings)}")
        return settings

    def invalidate(self) -> None:
        """清空解析缓存"""
        with self._lock:
            self._generation += 1
            if self._cache is not None:
                self._cache.clear()

    def get_provider_config(
        self,
        tenant_id: Any,
        provider_type: ProviderType,
        use_cache: bool = True,
    ) -> Optional[BaseProviderConfig]:
        """获取已启用的提供者配置，未配置或已禁用返回 None"""
        config = self.resolve(tenant_id, use_cache=use_cache).get_provider_config(provider_type)
        if config is None or not config.enabled:
            return None
        return config

    def is_provider_allowed(self, tenant_id: Any, provider_type: ProviderType, use_cache: bool = True) -> bool:
        return self.get_provider_config(tenant_id, provider_type, use_cache=use_cache) is not None


def _provider_names(settings: TwoFactorAuthSettings):
    return [p.provider_type.value for p in settings.providers]
