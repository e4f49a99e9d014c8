# fulfillment/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины — config/config.json.
Секреты и адреса сервисов переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (можно переопределить через CONFIG_PATH)."""
    override = os.getenv("CONFIG_PATH")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "delivery_fulfillment"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"


class ApiSettings(BaseModel):
    """Настройки HTTP сервера."""
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_PREFIX: str = "/api/v1"


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_MAX_BYTES: int = 10485760


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "delivery"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 5
    DB_MAX_POOL_SIZE: int = 20
    DB_COMMAND_TIMEOUT: int = 60
    DB_APPLY_SCHEMA: bool = True

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "delivery"
    REDIS_MAX_CONNECTIONS: int = 50

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RedisTTLSettings(BaseModel):
    """Настройки TTL кэша."""
    ZONE_TTL: int = 600


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ (очередь фоновых задач)."""
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "delivery.jobs"

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class PricingSettings(BaseModel):
    """Тарифы доставки и сборы платформы (в минимальных единицах валюты)."""
    DEFAULT_BASE_FEE: int = 10000
    DEFAULT_PER_KM_FEE: int = 2000
    SERVICE_FEE: int = 1000
    PLATFORM_FEE_PERCENT: int = 1
    MINUTES_PER_KM: int = 5
    AVERAGE_SPEED_KMH: float = 30.0
    # Доля стоимости доставки, которую получает водитель
    DRIVER_DELIVERY_SHARE_PERCENT: int = Field(100, ge=0, le=100)
    CURRENCY: str = "IDR"


class OfferSettings(BaseModel):
    """Настройки предложений водителей."""
    OFFER_EXPIRY_MINUTES: int = 30


class WalletSettings(BaseModel):
    """Ограничения кошелька."""
    MIN_WITHDRAWAL: int = 50000
    MAX_WITHDRAWAL_PER_DAY: int = 2000000


class PaymentSettings(BaseModel):
    """Настройки платёжного шлюза."""
    GATEWAY_SERVER_KEY: str = ""
    VERIFY_SIGNATURE: bool = True
    PAYMENT_EXPIRY_MINUTES: int = 15


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    system: SystemSettings = Field(default_factory=SystemSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    redis_ttl: RedisTTLSettings = Field(default_factory=RedisTTLSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    pricing: PricingSettings = Field(default_factory=PricingSettings)
    offers: OfferSettings = Field(default_factory=OfferSettings)
    wallet: WalletSettings = Field(default_factory=WalletSettings)
    payments: PaymentSettings = Field(default_factory=PaymentSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def from_config_json(cls, path: Path | None = None) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Секреты переопределяются из переменных окружения.
        """
        data = load_config_json(path)

        def pick(section: type[BaseModel], env_keys: tuple[str, ...] = ()) -> dict[str, Any]:
            # Берём только поля секции; для перечисленных ключей приоритет у окружения
            values = {name: data[name] for name in section.model_fields if name in data}
            for key in env_keys:
                env_value = os.getenv(key)
                if env_value is not None and env_value != "":
                    values[key] = env_value
            return values

        return cls(
            system=SystemSettings(**pick(SystemSettings, ("ENVIRONMENT",))),
            api=ApiSettings(**pick(ApiSettings, ("API_HOST", "API_PORT"))),
            logging=LoggingSettings(**pick(LoggingSettings, ("LOG_LEVEL", "LOG_FORMAT"))),
            database=DatabaseSettings(
                **pick(DatabaseSettings, ("DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD"))
            ),
            redis=RedisSettings(**pick(RedisSettings, ("REDIS_HOST", "REDIS_PORT", "REDIS_PASSWORD"))),
            redis_ttl=RedisTTLSettings(**pick(RedisTTLSettings)),
            rabbitmq=RabbitMQSettings(
                **pick(RabbitMQSettings, ("RABBITMQ_HOST", "RABBITMQ_PORT", "RABBITMQ_USER", "RABBITMQ_PASSWORD"))
            ),
            pricing=PricingSettings(**pick(PricingSettings, ("DRIVER_DELIVERY_SHARE_PERCENT",))),
            offers=OfferSettings(**pick(OfferSettings)),
            wallet=WalletSettings(**pick(WalletSettings)),
            payments=PaymentSettings(**pick(PaymentSettings, ("GATEWAY_SERVER_KEY",))),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
