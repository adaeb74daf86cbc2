from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from fundchat import config as fc_config
from fundchat.api import accounts, chats, ledger, legacy
from fundchat.errors import FundchatError
from fundchat.runtime import AccountService, LedgerEngine, MessagingEngine
from fundchat.storage import CollectionStore, LockManager
from fundchat.storage.uploads import URL_PREFIX, ImageStore

log = logging.getLogger(__name__)


async def _fundchat_error_handler(request: Request, exc: FundchatError) -> JSONResponse:
    if exc.status_code >= 500:
        log.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": exc.code, "detail": exc.message},
    )


def create_app(cfg: Optional[Dict[str, Any]] = None) -> FastAPI:
    cfg = cfg if cfg is not None else fc_config.load_config()

    store = CollectionStore(fc_config.get_data_dir(cfg))
    locks = LockManager(timeout=fc_config.get_lock_timeout(cfg))

    ledger_engine = LedgerEngine(
        store,
        locks,
        places=fc_config.get_currency_places(cfg),
        max_balance=fc_config.get_max_balance(cfg),
    )
    chat_cfg = cfg.get("chats", {})
    messaging_engine = MessagingEngine(
        store,
        locks,
        epsilon=float(chat_cfg.get("timestamp_epsilon", 1e-6)),
        max_message_len=int(chat_cfg.get("max_message_len", 4000)),
    )
    account_service = AccountService(
        store,
        locks,
        starting_balance=fc_config.get_starting_balance(cfg),
        hash_params=fc_config.get_argon2_params(cfg),
    )
    upload_cfg = cfg.get("uploads", {})
    upload_dir = Path(fc_config.get_upload_dir(cfg))
    images = ImageStore(
        upload_dir,
        allowed_extensions=upload_cfg.get("allowed_extensions"),
        max_bytes=int(upload_cfg.get("max_bytes", 5 * 1024 * 1024)),
    )

    # A commit interrupted by a crash is rolled back before serving.
    store.recover()
    ledger_engine.seed_projects(fc_config.get_seed_projects(cfg))

    app = FastAPI(title="fundchat node")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=fc_config.get_cors_origins(cfg),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(FundchatError, _fundchat_error_handler)

    # One engine instance per concern, shared by every route set.
    app.state.config = cfg
    app.state.store = store
    app.state.locks = locks
    app.state.ledger = ledger_engine
    app.state.messaging = messaging_engine
    app.state.accounts = account_service
    app.state.images = images

    app.include_router(accounts.router)
    app.include_router(ledger.router)
    app.include_router(legacy.router)
    app.include_router(chats.router)

    upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount(URL_PREFIX, StaticFiles(directory=str(upload_dir)), name="uploads")

    @app.get("/health")
    def health():
        return {"ok": True, "collections": store.collections()}

    log.info("fundchat app ready (data_dir=%s)", store.data_dir)
    return app
