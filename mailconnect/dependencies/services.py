from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request

from mailconnect.core.config import Settings
from mailconnect.core.db import MongoStore
from mailconnect.scheduler.email_scheduler import EmailScheduler
from mailconnect.services.email import Dispatcher
from mailconnect.services.gmail import GmailOAuth, GmailTransport
from mailconnect.services.storage import Storage
from mailconnect.utils.encryption import TokenCipher


@dataclass
class Services:
    settings: Settings
    store: MongoStore
    storage: Storage
    http: httpx.AsyncClient
    cipher: TokenCipher
    oauth: GmailOAuth
    transport: GmailTransport
    dispatcher: Dispatcher
    scheduler: Optional[EmailScheduler] = None


def build_services(settings: Settings, store: MongoStore, http: httpx.AsyncClient) -> Services:
    storage = Storage(store)
    cipher = TokenCipher(settings.encryption_key)
    oauth = GmailOAuth(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_uri=settings.google_redirect_uri,
        http=http,
    )
    transport = GmailTransport(http)
    dispatcher = Dispatcher(storage, oauth, transport, cipher)
    scheduler = None
    if settings.scheduler_enabled:
        scheduler = EmailScheduler(
            storage,
            dispatcher,
            interval_seconds=settings.scheduler_interval_seconds,
            max_instances=settings.scheduler_max_instances,
        )
    return Services(
        settings=settings,
        store=store,
        storage=storage,
        http=http,
        cipher=cipher,
        oauth=oauth,
        transport=transport,
        dispatcher=dispatcher,
        scheduler=scheduler,
    )


# === FastAPI providers
def get_services(request: Request) -> Services:
    return request.app.state.services


def get_settings(request: Request) -> Settings:
    return get_services(request).settings


def get_storage(request: Request) -> Storage:
    return get_services(request).storage


def get_dispatcher(request: Request) -> Dispatcher:
    return get_services(request).dispatcher
