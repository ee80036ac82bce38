"""
配置模块
提供 2FA 引擎的默认配置，业务项目可以继承并覆盖
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class LoggingSettings(BaseSettings):
    """日志配置

    使用示例:
        from twofa.config import LoggingSettings

        log_config = LoggingSettings(
            level="DEBUG",
            file_path="logs/twofa.log",
            file_max_bytes=20 * 1024 * 1024,
        )
    """
    level: str = Field(default="INFO", description="日志级别")
    file_path: Optional[str] = Field(default=None, description="日志文件路径，为空时不写文件")
    file_max_bytes: int = Field(default=10 * 1024 * 1024, description="单个日志文件最大字节数")
    file_backup_count: int = Field(default=5, description="保留的备份文件数量")
    file_encoding: str = Field(default="utf-8", description="文件编码")
    enable_console: bool = Field(default=True, description="是否启用控制台输出")

    class Config:
        env_prefix = "TWOFA_LOG_"


class LedgerSettings(BaseSettings):
    """待验证记录存储配置

    使用示例:
        from twofa.config import LedgerSettings

        ledger_config = LedgerSettings(
            backend="redis",
            redis_url="redis://localhost:6379/0",
        )

    环境变量:
        TWOFA_LEDGER_BACKEND=redis
        TWOFA_LEDGER_REDIS_URL=redis://localhost:6379/0
    """
    backend: Literal["memory", "redis"] = Field(default="memory", description="存储方式: memory | redis")
    redis_url: Optional[str] = Field(default=None, description="Redis URL（backend=redis 时必填）")
    key_prefix: str = Field(default="twofa:pending:", description="Redis 键前缀")
    lock_timeout: int = Field(default=10, description="单用户锁超时时间（秒）")
    lock_blocking_timeout: float = Field(default=5.0, description="等待单用户锁的最长时间（秒）")

    class Config:
        env_prefix = "TWOFA_LEDGER_"


class SettingsCacheSettings(BaseSettings):
    """2FA 设置解析缓存配置

    环境变量:
        TWOFA_CACHE_TTL=60
        TWOFA_CACHE_MAXSIZE=1024
    """
    ttl: int = Field(default=60, description="缓存有效期（秒）")
    maxsize: int = Field(default=1024, description="最大缓存租户数")

    class Config:
        env_prefix = "TWOFA_CACHE_"


class AppSettings(BaseSettings):
    """应用基础配置

    将各子配置类聚合为嵌套结构，业务项目继承后只需添加项目特有的配置项。

    内置子配置及环境变量前缀:
        - logging:        LoggingSettings        (TWOFA_LOG_)
        - ledger:         LedgerSettings         (TWOFA_LEDGER_)
        - settings_cache: SettingsCacheSettings  (TWOFA_CACHE_)

    使用示例:
        from twofa.config import AppSettings, load_yaml_config

        settings = load_yaml_config("config/settings.yaml", AppSettings)

    YAML 配置示例 (config/settings.yaml):
        logging:
          level: "INFO"
        ledger:
          backend: "redis"
          redis_url: "redis://localhost:6379/0"
        settings_cache:
          ttl: 30
    """
    logging: LoggingSettings = LoggingSettings()
    ledger: LedgerSettings = LedgerSettings()
    settings_cache: SettingsCacheSettings = SettingsCacheSettings()
