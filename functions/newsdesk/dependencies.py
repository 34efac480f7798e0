"""
Dependency wiring for the FastAPI app.

Backends are built once per app by ``build_services`` and kept on
``app.state``; request handlers reach them through the getters below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header, Request

from newsdesk.auth import AdminAccount, TokenAuthority, bearer_token
from newsdesk.cache import RuntimeCache
from newsdesk.config import Settings
from newsdesk.db import InMemoryItemStore, ItemStore, JsonFileItemStore, SqlItemStore
from newsdesk.service import ItemService
from newsdesk.storage import (
    CosStorageClient,
    InMemoryStorageClient,
    LocalStorageClient,
    StorageClient,
)
from newsdesk.uploads import UploadPipeline

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    authority: TokenAuthority
    admin: AdminAccount
    cache: RuntimeCache
    store: ItemStore
    storage: StorageClient
    items: ItemService
    uploads: UploadPipeline


def build_item_store(settings: Settings) -> ItemStore:
    if settings.use_in_memory_backends:
        return InMemoryItemStore()
    if settings.database_url:
        return SqlItemStore(settings.database_url)
    return JsonFileItemStore(settings.items_file)


def build_storage_client(settings: Settings) -> StorageClient:
    if settings.use_in_memory_backends:
        return InMemoryStorageClient()
    if settings.cos_bucket:
        return CosStorageClient(
            bucket=settings.cos_bucket,
            region=settings.cos_region or "",
            endpoint=settings.cos_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.storage_public_base_url or "",
        )
    return LocalStorageClient(
        root_dir=settings.uploads_dir, url_prefix=settings.uploads_url_prefix
    )


def build_services(settings: Settings) -> Services:
    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not set; login and protected routes will fail")

    cache = RuntimeCache()
    store = build_item_store(settings)
    storage = build_storage_client(settings)
    logger.info(
        "Using %s for items and %s for uploads",
        type(store).__name__,
        type(storage).__name__,
    )
    return Services(
        settings=settings,
        authority=TokenAuthority(
            settings.jwt_secret, ttl=timedelta(days=settings.token_ttl_days)
        ),
        admin=AdminAccount(
            username=settings.admin_user,
            password=settings.admin_password,
            password_hash=settings.admin_password_hash,
        ),
        cache=cache,
        store=store,
        storage=storage,
        items=ItemService(
            cache,
            store,
            list_limit=settings.list_limit,
            uploads_dir=None if settings.cos_bucket else settings.uploads_dir,
            uploads_url_prefix=settings.uploads_url_prefix,
        ),
        uploads=UploadPipeline(
            storage,
            max_bytes=settings.max_upload_bytes,
            read_timeout=settings.upload_read_timeout_seconds,
        ),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_item_service(services: Services = Depends(get_services)) -> ItemService:
    return services.items


def get_token_authority(services: Services = Depends(get_services)) -> TokenAuthority:
    return services.authority


def get_admin_account(services: Services = Depends(get_services)) -> AdminAccount:
    return services.admin


def get_upload_pipeline(services: Services = Depends(get_services)) -> UploadPipeline:
    return services.uploads


def require_admin(
    authorization: Optional[str] = Header(None),
    authority: TokenAuthority = Depends(get_token_authority),
) -> str:
    """Resolve the bearer token to the administrator identity."""
    return authority.verify(bearer_token(authorization))
