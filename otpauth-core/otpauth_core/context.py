"""
Application Context
===================
Builds and owns every component of the OTP auth service.

Usage:
    context = AppContext.from_settings(Settings.from_env())
    await context.start()
    ...
    await context.close()

Nothing here is a module-level singleton: handlers get the context (or the
service it holds) passed in.
"""

from typing import List, Optional

import redis.asyncio as redis
import structlog

from otpauth_core.config import Settings
from otpauth_core.database import create_async_engine
from otpauth_core.errors import ConfigurationError
from otpauth_core.otp.manager import OTPLifecycleManager
from otpauth_core.otp.sql_store import SQLAlchemyOTPStore
from otpauth_core.otp.store import InMemoryOTPStore, OTPRecordStore
from otpauth_core.providers.base import (
    BaseProvider,
    EmailDeliveryProvider,
    VerificationProvider,
)
from otpauth_core.providers.dev import LoggingEmailProvider, LoggingVerificationProvider
from otpauth_core.providers.message_central import MessageCentralProvider
from otpauth_core.providers.resend import ResendEmailProvider
from otpauth_core.rate_limit import RedisSlidingWindowGuard, SlidingWindowGuard
from otpauth_core.service import OTPAuthService
from otpauth_core.sql_users import SQLAlchemyUserDirectory
from otpauth_core.tasks import PeriodicTask, stop_all
from otpauth_core.tokens import SessionTokenIssuer
from otpauth_core.users import InMemoryUserDirectory, UserDirectory

logger = structlog.get_logger(__name__)


def build_email_provider(settings: Settings) -> EmailDeliveryProvider:
    if settings.email_configured:
        return ResendEmailProvider(
            api_key=settings.resend_api_key,
            from_address=settings.email_from,
        )
    if settings.is_production:
        raise ConfigurationError("RESEND_API_KEY is required in production")
    logger.warning("context.dev_email_provider")
    return LoggingEmailProvider()


def build_verification_provider(settings: Settings) -> VerificationProvider:
    if settings.sms_configured:
        return MessageCentralProvider(
            customer_id=settings.msg_central_customer_id,
            auth_token=settings.msg_central_api_key,
            default_country_code=settings.msg_central_country_code,
            send_timeout=settings.otp.provider_timeout_seconds,
        )
    if settings.is_production:
        raise ConfigurationError(
            "MSG_CENTRAL_CUSTOMER_ID and MSG_CENTRAL_API_KEY are required in production"
        )
    logger.warning("context.dev_verification_provider")
    return LoggingVerificationProvider(code_length=settings.otp.length)


class AppContext:
    """Owns the store, guard, providers, service and sweep tasks."""

    def __init__(
        self,
        settings: Settings,
        store: OTPRecordStore,
        guard,
        users: UserDirectory,
        email_provider: Optional[EmailDeliveryProvider],
        verification_provider: Optional[VerificationProvider],
        redis_client=None,
    ):
        self.settings = settings
        self.store = store
        self.guard = guard
        self.users = users
        self.email_provider = email_provider
        self.verification_provider = verification_provider
        self.redis_client = redis_client

        self.manager = OTPLifecycleManager(
            store,
            settings.otp,
            verification_provider=verification_provider,
        )
        self.tokens = SessionTokenIssuer(
            settings.effective_token_secret(),
            ttl_seconds=settings.token_ttl_seconds,
        )
        self.service = OTPAuthService(
            self.manager,
            guard,
            users,
            self.tokens,
            email_provider=email_provider,
            brand_name=settings.brand_name,
        )

        self.tasks: List[PeriodicTask] = [
            PeriodicTask(
                "otp-expiry-sweep",
                self.manager.cleanup_expired,
                interval=settings.sweep_interval_seconds,
            ),
            PeriodicTask(
                "rate-guard-sweep",
                self.guard.cleanup,
                interval=settings.sweep_interval_seconds,
            ),
        ]
        self._started = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppContext":
        """
        Wire components from settings.

        DATABASE_URL selects the SQLAlchemy store and directory, REDIS_URL
        the Redis guard; both fall back to in-process implementations.
        """
        if settings.database_url:
            engine = create_async_engine(settings.database_url)
            store = SQLAlchemyOTPStore(engine, owns_engine=True)
            users = SQLAlchemyUserDirectory(engine)
        else:
            store = InMemoryOTPStore()
            users = InMemoryUserDirectory()

        redis_client = None
        if settings.redis_url:
            redis_client = redis.from_url(settings.redis_url)
            guard = RedisSlidingWindowGuard(
                redis_client,
                max_requests=settings.rate_limit_max_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )
        else:
            guard = SlidingWindowGuard(
                max_requests=settings.rate_limit_max_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )

        return cls(
            settings,
            store=store,
            guard=guard,
            users=users,
            email_provider=build_email_provider(settings),
            verification_provider=build_verification_provider(settings),
            redis_client=redis_client,
        )

    @property
    def providers(self) -> List[BaseProvider]:
        return [p for p in (self.email_provider, self.verification_provider) if p]

    async def start(self) -> None:
        """Create schema, open provider clients and start the sweeps."""
        if self._started:
            return
        for component in (self.store, self.users):
            create_schema = getattr(component, "create_schema", None)
            if create_schema is not None:
                await create_schema()
        for provider in self.providers:
            await provider.initialize()
        for task in self.tasks:
            task.start()
        self._started = True
        logger.info(
            "context.started",
            store=type(self.store).__name__,
            guard=type(self.guard).__name__,
            providers=[p.name for p in self.providers],
        )

    async def close(self) -> None:
        """Stop sweeps and release every resource. Safe to call twice."""
        await stop_all(self.tasks)
        for provider in self.providers:
            await provider.close()
        await self.users.close()
        await self.store.close()
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None
        self._started = False
        logger.info("context.closed")

    async def __aenter__(self) -> "AppContext":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
