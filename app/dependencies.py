"""Service wiring. Routers receive the container through `get_services`."""

from dataclasses import dataclass
from typing import Optional

from app.config import Settings, settings
from app.logging_config import get_logger
from app.services.analysis.base import ImageAnalyzer
from app.services.analysis.gemini_provider import GeminiProvider
from app.services.conversation_service import ConversationService
from app.services.dedup import SeenEvents
from app.services.documents.base import DocumentGenerator
from app.services.documents.link_provider import GuideLinkProvider
from app.services.messaging.aisensy_provider import AisensyProvider
from app.services.messaging.base import MessagingGateway
from app.services.messaging.meta_provider import MetaCloudProvider
from app.services.payment_service import PaymentOrderManager
from app.services.payments.base import PaymentGateway
from app.services.payments.razorpay_provider import RazorpayProvider
from app.services.reconciliation_service import PaymentReconciler
from app.services.scheduler import MaintenanceScheduler
from app.stores import build_stores
from app.stores.base import OrderStore, SessionStore

logger = get_logger("dependencies")


@dataclass
class Services:
    settings: Settings
    sessions: SessionStore
    orders: OrderStore
    payments: PaymentOrderManager
    reconciler: PaymentReconciler
    conversations: ConversationService
    scheduler: MaintenanceScheduler
    dedup: SeenEvents

    def flush(self) -> None:
        self.sessions.flush()
        self.orders.flush()


def build_messaging(config: Settings) -> MessagingGateway:
    if config.messaging_provider == "meta":
        return MetaCloudProvider(
            config.meta_access_token,
            config.meta_phone_number_id,
            timeout_seconds=config.messaging_timeout_seconds,
        )
    return AisensyProvider(
        config.aisensy_api_key,
        config.aisensy_base_url,
        config.aisensy_campaign_name,
        timeout_seconds=config.messaging_timeout_seconds,
    )


def build_services(
    config: Settings,
    *,
    sessions: Optional[SessionStore] = None,
    orders: Optional[OrderStore] = None,
    messaging: Optional[MessagingGateway] = None,
    analyzer: Optional[ImageAnalyzer] = None,
    gateway: Optional[PaymentGateway] = None,
    documents: Optional[DocumentGenerator] = None,
) -> Services:
    """Wire stores, collaborators and services. Any collaborator can be injected."""
    if sessions is None or orders is None:
        sessions, orders = build_stores(config)

    gateway = gateway or RazorpayProvider(
        config.razorpay_key_id,
        config.razorpay_key_secret,
        timeout_seconds=config.payment_timeout_seconds,
    )
    payments = PaymentOrderManager(
        orders,
        gateway,
        config.public_base_url,
        allow_multiple_pending_orders=config.allow_multiple_pending_orders,
    )
    reconciler = PaymentReconciler(
        orders,
        gateway,
        webhook_secret=config.razorpay_webhook_secret,
        key_secret=config.razorpay_key_secret,
    )
    conversations = ConversationService(
        sessions,
        payments,
        reconciler,
        messaging or build_messaging(config),
        analyzer or GeminiProvider(config.gemini_api_key, config.gemini_model, config.analysis_timeout_seconds),
        documents or GuideLinkProvider(config.public_base_url),
        price_minor_units=config.guide_price_minor_units,
        currency=config.guide_currency,
        analysis_timeout_seconds=config.analysis_timeout_seconds,
    )
    scheduler = MaintenanceScheduler(conversations, reconciler, config)
    logger.info(
        "Services built",
        extra={"context": {"store_backend": config.store_backend, "messaging": config.messaging_provider}},
    )
    return Services(
        settings=config,
        sessions=sessions,
        orders=orders,
        payments=payments,
        reconciler=reconciler,
        conversations=conversations,
        scheduler=scheduler,
        dedup=SeenEvents(config.dedup_ttl_seconds, config.dedup_max_entries),
    )


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services(settings)
    return _services


def reset_services() -> None:
    global _services
    _services = None
