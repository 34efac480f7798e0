"""
HTTP routes for the newsdesk API.

Every route is mounted both at the root and under the API prefix; the item
collection answers to /items, /posts and /news alike.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as SchemaError
from starlette.concurrency import run_in_threadpool
from starlette.requests import ClientDisconnect

from newsdesk.auth import AdminAccount, TokenAuthority
from newsdesk.dependencies import (
    get_admin_account,
    get_item_service,
    get_token_authority,
    get_upload_pipeline,
    require_admin,
)
from newsdesk.errors import Unauthenticated, UploadParseError, UpstreamFailure, ValidationError
from newsdesk.schemas import (
    CreateItemRequest,
    CreateItemResponse,
    DeleteItemResponse,
    ErrorResponse,
    HealthResponse,
    ItemPayload,
    ListItemsResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    UploadResponse,
    UserInfo,
)
from newsdesk.service import ItemService
from newsdesk.uploads import ParsedForm, UploadPipeline, normalize_content_type

logger = logging.getLogger(__name__)

router = APIRouter(
    responses={
        code: {"model": ErrorResponse} for code in (400, 401, 404, 413, 500)
    }
)

ITEM_COLLECTION_PATHS = ("/items", "/posts", "/news")


def _parse_create_request(data) -> CreateItemRequest:
    if not isinstance(data, dict):
        raise ValidationError("Body must be a JSON object")
    try:
        payload = CreateItemRequest.model_validate(data)
    except SchemaError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "body"
        raise ValidationError(f"{field}: {first.get('msg', 'invalid value')}") from exc
    if not payload.title.strip():
        raise ValidationError("title is required")
    return payload


async def _read_form(pipeline: UploadPipeline, request: Request) -> ParsedForm:
    try:
        return await pipeline.read_form(
            request.headers.get("content-type"), request.stream()
        )
    except ClientDisconnect as exc:
        raise UploadParseError("Client disconnected during upload") from exc


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse()


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    admin: AdminAccount = Depends(get_admin_account),
    authority: TokenAuthority = Depends(get_token_authority),
):
    if not admin.check(payload.username, payload.password):
        logger.info("login_failed")
        raise Unauthenticated("Invalid credentials")
    logger.info("login_succeeded")
    return LoginResponse(token=authority.issue(admin.username))


@router.get("/me", response_model=MeResponse)
def me(identity: str = Depends(require_admin)):
    return MeResponse(user=UserInfo(username=identity))


def list_items(service: ItemService = Depends(get_item_service)):
    items = service.list()
    return ListItemsResponse(items=[ItemPayload.from_item(item) for item in items])


async def create_item(
    request: Request,
    identity: str = Depends(require_admin),
    service: ItemService = Depends(get_item_service),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
):
    """
    Create an item from a JSON body, or from a multipart form whose optional
    image file is uploaded first and linked as imageUrl.
    """
    content_type = normalize_content_type(request.headers.get("content-type"))
    stored_url = None
    if content_type == "multipart/form-data":
        form = await _read_form(pipeline, request)
        payload = _parse_create_request(form.fields)
        image_url = payload.imageUrl
        if form.asset is not None:
            image_url = stored_url = await pipeline.forward(form.asset)
    else:
        raw = await request.body()
        try:
            data = json.loads(raw or b"{}")
        except ValueError as exc:
            raise ValidationError("Body must be JSON") from exc
        payload = _parse_create_request(data)
        image_url = payload.imageUrl

    try:
        item = await run_in_threadpool(
            service.create,
            identity,
            title=payload.title,
            body=payload.body,
            source=payload.source,
            image_url=image_url,
        )
    except UpstreamFailure:
        if stored_url:
            logger.warning("Image %s was stored but its item was not created", stored_url)
        raise
    return CreateItemResponse(item=ItemPayload.from_item(item))


def delete_item(
    item_id: str,
    identity: str = Depends(require_admin),
    service: ItemService = Depends(get_item_service),
):
    return DeleteItemResponse(deleted=service.delete(identity, item_id))


for _path in ITEM_COLLECTION_PATHS:
    router.add_api_route(
        _path, list_items, methods=["GET"], response_model=ListItemsResponse
    )
    router.add_api_route(
        _path,
        create_item,
        methods=["POST"],
        response_model=CreateItemResponse,
        status_code=201,
    )
    router.add_api_route(
        f"{_path}/{{item_id}}",
        delete_item,
        methods=["DELETE"],
        response_model=DeleteItemResponse,
    )


@router.post("/upload", response_model=UploadResponse)
async def upload_image(
    request: Request,
    identity: str = Depends(require_admin),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
):
    try:
        url = await pipeline.upload(request.headers.get("content-type"), request.stream())
    except ClientDisconnect as exc:
        raise UploadParseError("Client disconnected during upload") from exc
    logger.info("Image uploaded by %s", identity)
    return UploadResponse(url=url)
