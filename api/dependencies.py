"""
Service wiring for the API.

One ServiceContainer is built per process from Settings. Without Supabase
credentials it runs on the in-process store, seeded with demo records.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from config.settings import Settings, get_settings
from domain.time import utc_now
from repositories.audit_log_repository import AuditLogRepository
from repositories.document_store import DocumentStore, create_document_store
from repositories.notification_repository import NotificationRepository
from repositories.quote_repository import QuoteRepository
from repositories.renewal_repository import RenewalRepository
from services.assignment_service import AssignmentService
from services.demo_data import demo_code_allocations, seed_demo_data
from services.discount_code_service import DiscountCodeService
from services.notification_service import NotificationInbox, WhatsAppClient
from services.quote_lifecycle_service import QuoteLifecycleService
from services.quote_service_base import Clock
from services.renewal_service import RenewalScanner


@dataclass
class ServiceContainer:
    settings: Settings
    store: DocumentStore
    quotes: QuoteRepository
    audit: AuditLogRepository
    renewals: RenewalRepository
    inbox: NotificationInbox
    whatsapp: WhatsAppClient
    lifecycle: QuoteLifecycleService
    assignments: AssignmentService
    renewal_scanner: RenewalScanner
    discount_codes: DiscountCodeService


def build_container(
    settings: Settings,
    *,
    store: Optional[DocumentStore] = None,
    whatsapp: Optional[WhatsAppClient] = None,
    clock: Clock = utc_now,
    seed_demo: Optional[bool] = None,
) -> ServiceContainer:
    """
    Wire repositories and services.

    Args:
        settings: Application settings
        store: Document store override (defaults to create_document_store)
        whatsapp: WhatsApp client override
        clock: Time source shared by every service
        seed_demo: Seed demo records; defaults to True on the in-process store
    """

    store = store if store is not None else create_document_store(settings)
    whatsapp = whatsapp or WhatsAppClient(settings)

    quotes = QuoteRepository(store, table=settings.quotes_table)
    audit = AuditLogRepository(store, table=settings.audit_logs_table)
    renewals = RenewalRepository(
        store,
        table=settings.renewals_table,
        reminders_table=settings.reminders_table,
    )
    inbox = NotificationInbox(NotificationRepository(store, table=settings.notifications_table))

    if seed_demo is None:
        seed_demo = not settings.uses_remote_store
    if seed_demo:
        seed_demo_data(quotes, renewals, now=clock())

    return ServiceContainer(
        settings=settings,
        store=store,
        quotes=quotes,
        audit=audit,
        renewals=renewals,
        inbox=inbox,
        whatsapp=whatsapp,
        lifecycle=QuoteLifecycleService(quotes, audit, inbox, whatsapp, clock),
        assignments=AssignmentService(quotes, audit, clock),
        renewal_scanner=RenewalScanner(renewals, quotes, audit, whatsapp, clock),
        discount_codes=DiscountCodeService(demo_code_allocations(clock().year)),
    )


@lru_cache(maxsize=1)
def get_container() -> ServiceContainer:
    return build_container(get_settings())
