import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mailconnect.api.v1 import auth
from mailconnect.core.config import Settings, load_settings
from mailconnect.core.db import MongoStore
from mailconnect.core.errors import register_exception_handlers
from mailconnect.dependencies.services import build_services
from mailconnect.middleware.api_logger import APILoggerMiddleware
from mailconnect.routes import analytics, emails, gmail, recipient_lists, recipients

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    mongo_client=None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Builds the API. `mongo_client` and `http_transport` replace the real
    MongoDB client and Google network transport (tests pass in-memory ones).
    """
    settings = settings or load_settings()

    # === Logging ===
    logging.basicConfig(level=settings.log_level)

    # === App lifecycle ===
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = MongoStore(settings.mongodb_uri, settings.mongodb_db, client=mongo_client)
        http = httpx.AsyncClient(transport=http_transport, timeout=30.0)
        try:
            await store.connect()
            services = build_services(settings, store, http)
            app.state.services = services
            if services.scheduler:
                services.scheduler.start()
            logger.info("✅ Startup complete: store connected, scheduler running.")
            yield
        except Exception:
            logger.exception("❌ Startup failed.")
            raise
        finally:
            services = getattr(app.state, "services", None)
            if services and services.scheduler:
                services.scheduler.shutdown()
            await http.aclose()
            await store.close()
            logger.info("🛑 Shutdown complete.")

    # === Initialize App ===
    app = FastAPI(title="MailConnect API", version="1.0.0", lifespan=lifespan)

    # === Exception Handlers ===
    register_exception_handlers(app)

    # === Middleware ===
    app.add_middleware(APILoggerMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # === Health Check ===
    @app.get("/ping")
    async def ping():
        return {"status": "ok", "message": "MailConnect API is live"}

    # === Mount API Routes ===
    app.include_router(auth.router, prefix="/api", tags=["Auth"])
    app.include_router(gmail.router, prefix="/api", tags=["Gmail"])
    app.include_router(emails.router, prefix="/api", tags=["Emails"])
    app.include_router(recipients.router, prefix="/api", tags=["Recipients"])
    app.include_router(recipient_lists.router, prefix="/api", tags=["Recipient Lists"])
    app.include_router(analytics.router, prefix="/api", tags=["Analytics"])

    return app


# === Dev Hot Reload ===
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("mailconnect.main:create_app", factory=True, host="0.0.0.0",
                port=int(os.getenv("PORT", 8000)), reload=os.getenv("ENV") == "dev")
