"""Oil Portrait Studio - FastAPI Application.

This module builds the web application.  :func:`create_app` returns a fully
wired FastAPI instance; ``main()`` is the CLI function that launches it under
uvicorn.

Architecture
------------
- **Configuration** comes from :class:`~oilportrait.core.config.OilPortraitConfig`
  (``OILPORTRAIT_*`` environment variables).
- **Collaborators** (artwork store, object storage, generation service,
  checkout client) are created in the lifespan and kept on ``app.state``.
  Any of them can be injected instead, which is how the tests substitute
  fakes for the AI service and the storefront.
- **All behaviour** lives in :class:`~oilportrait.core.workflow.ArtworkWorkflow`;
  handlers authenticate, parse, delegate and serialise.
- **Public media** written by the local storage backend is served by
  ``StaticFiles``.  Full-resolution paintings are never mounted.

Endpoints
---------
========  ================================  ==================================
Method    Path                              Purpose
========  ================================  ==================================
GET       ``/api/styles``                   Style presets for the form
POST      ``/api/images/generate``          Generate a watermarked painting
GET       ``/api/images/list``              Caller's gallery, 10 per page
GET       ``/api/images/download/{id}``     Full-resolution purchased painting
GET       ``/api/images/{id}``              Single artwork of the caller
POST      ``/api/checkout/create``          Checkout session for an artwork
GET       ``/api/admin/images``             Shop-wide listing, 20 per page
GET       ``/api/admin/stats``              Shop-wide counts
POST      ``/webhooks``                     Commerce platform notifications
GET       ``/webhooks``                     Liveness probe for the webhook URL
========  ================================  ==================================

Usage
-----
CLI (installed entry point)::

    oilportrait

Direct invocation::

    python -m oilportrait.api.main
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles

from oilportrait import __version__
from oilportrait.api.auth import (
    Principal,
    get_config,
    get_workflow,
    read_verified_webhook,
    require_principal,
)
from oilportrait.api.listing import list_artworks_page
from oilportrait.api.models import (
    ArtworkListResponse,
    ArtworkOut,
    CheckoutRequest,
    CheckoutResponse,
    GenerateResponse,
    StatsResponse,
    StyleOut,
    StylesResponse,
    WebhookResponse,
)
from oilportrait.core.artwork_store import ArtworkStore
from oilportrait.core.checkout import CheckoutClientBase, ShopifyCheckoutClient
from oilportrait.core.config import OilPortraitConfig
from oilportrait.core.errors import OilPortraitError, ValidationError
from oilportrait.core.generation import GenerationServiceBase, generation_registry
from oilportrait.core.records import PurchaseFilter
from oilportrait.core.storage import ObjectStorage, create_storage
from oilportrait.core.styles import load_style_presets
from oilportrait.core.workflow import ArtworkWorkflow

logger = logging.getLogger(__name__)

ORDERS_PAID_TOPIC = "orders/paid"


def _listing_response(page_data: dict) -> ArtworkListResponse:
    return ArtworkListResponse(
        images=[ArtworkOut.from_record(record) for record in page_data["images"]],
        total=page_data["total"],
        page=page_data["page"],
        page_size=page_data["page_size"],
        total_pages=page_data["total_pages"],
    )


# ---------------------------------------------------------------------------
# Error handlers.
# ---------------------------------------------------------------------------


async def _handle_app_error(request: Request, exc: OilPortraitError) -> JSONResponse:
    """Render a taxonomy error as ``{"detail": message}``."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed requests as 400, like every other validation failure."""
    errors = exc.errors()
    missing = any(error.get("type") == "missing" for error in errors)
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Missing required fields" if missing else "Invalid request",
            "errors": jsonable_encoder(errors),
        },
    )


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the failure and return a generic 500."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    config: OilPortraitConfig | None = None,
    *,
    store: ArtworkStore | None = None,
    storage: ObjectStorage | None = None,
    generation_service: GenerationServiceBase | None = None,
    checkout_client: CheckoutClientBase | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Configuration; a fresh :class:`OilPortraitConfig` is loaded
            from the environment when omitted.
        store: Artwork store to use instead of one at ``config.database_path``.
        storage: Object storage to use instead of ``config.storage_backend``.
        generation_service: Generation service to use instead of
            ``config.generation_backend``.
        checkout_client: Checkout client to use instead of the Storefront
            API client.

    Returns:
        The configured application.  Collaborators are created when the
        lifespan starts, so the app must be run (or entered with
        ``TestClient`` as a context manager) before serving requests.
    """
    config = config or OilPortraitConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Create the collaborators on startup and release them on shutdown.

        Collaborators passed to :func:`create_app` are used as-is and left
        open on shutdown; the ones built here are closed.
        """
        # --- Startup -------------------------------------------------------
        config.ensure_directories()
        owned: list = []

        app_store = store or ArtworkStore(config.database_path)
        app_storage = storage or create_storage(config)

        app_generation = generation_service
        if app_generation is None:
            app_generation = generation_registry.instantiate(config.generation_backend, config)
            owned.append(app_generation)

        app_checkout = checkout_client
        if app_checkout is None:
            app_checkout = ShopifyCheckoutClient(config)
            owned.append(app_checkout)

        styles = load_style_presets(config.styles_file)

        app.state.config = config
        app.state.workflow = ArtworkWorkflow(
            config,
            app_store,
            app_storage,
            app_generation,
            app_checkout,
            styles,
        )
        logger.info(
            "Oil Portrait Studio started (generation=%s, storage=%s, %d styles)",
            app_generation.name,
            config.storage_backend,
            len(styles),
        )

        yield  # Application runs here.

        # --- Shutdown ------------------------------------------------------
        for collaborator in owned:
            await collaborator.aclose()
        logger.info("Oil Portrait Studio stopped.")

    app = FastAPI(
        title="Oil Portrait Studio",
        description="AI oil-painting portraits sold through a Shopify storefront.",
        version=__version__,
        lifespan=lifespan,
    )

    # Storefront theme blocks call the API from the shop's own domain.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(OilPortraitError, _handle_app_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(Exception, _handle_unexpected)

    if config.storage_backend == "local" and storage is None:
        app.mount(
            config.media_url_prefix,
            StaticFiles(directory=str(config.media_dir / "public"), check_dir=False),
            name="media",
        )

    _register_routes(app)
    return app


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


def _register_routes(app: FastAPI) -> None:
    """Attach every route to ``app``.

    Literal paths under ``/api/images`` are declared before
    ``/api/images/{image_id}`` so they are not captured as ids.
    """

    @app.get("/api/styles", response_model=StylesResponse)
    async def list_styles(
        principal: Principal = Depends(require_principal),
        workflow: ArtworkWorkflow = Depends(get_workflow),
    ) -> StylesResponse:
        """Return the style presets offered on the generate form."""
        return StylesResponse(
            styles=[StyleOut(**preset.to_public_dict()) for preset in workflow.styles.values()]
        )

    @app.post("/api/images/generate", response_model=GenerateResponse)
    async def generate_image(
        image: UploadFile | None = File(None),
        style: str | None = Form(None),
        details: str | None = Form(None),
        principal: Principal = Depends(require_principal),
        workflow: ArtworkWorkflow = Depends(get_workflow),
    ) -> GenerateResponse:
        """Generate a watermarked painting from an uploaded portrait.

        The multipart form carries ``image`` (file), ``style`` and an
        optional ``details`` text.

        Returns:
            The new record's id, preview URLs and style.

        Raises:
            ValidationError: 400 for a missing image or style, an unknown
                style, or an unreadable or oversize image.
            GenerationError: 500 when generation or storage fails.
        """
        image_data = await image.read() if image is not None else None
        record = await workflow.generate(
            principal.tenant,
            image_data,
            style,
            details,
            filename=image.filename if image is not None else None,
        )
        return GenerateResponse(
            id=record.id,
            watermarked_image_url=record.watermarked_url,
            thumbnail_url=record.thumbnail_url,
            style_selected=record.style,
        )

    @app.get("/api/images/list", response_model=ArtworkListResponse)
    async def list_images(
        page: int = 1,
        purchase_filter: str | None = Query(None, alias="filter"),
        principal: Principal = Depends(require_principal),
        workflow: ArtworkWorkflow = Depends(get_workflow),
        config: OilPortraitConfig = Depends(get_config),
    ) -> ArtworkListResponse:
        """Return one page of the caller's own artworks, newest first.

        Args:
            page: One-based page number; clamped into range.
            purchase_filter: ``all`` (default), ``purchased`` or
                ``not-purchased`` (query parameter ``filter``).
        """
        page_data = list_artworks_page(
            workflow.store,
            principal.tenant,
            PurchaseFilter.parse(purchase_filter),
            page,
            config.gallery_page_size,
        )
        return _listing_response(page_data)

    @app.get("/api/images/download/{image_id}")
    async def download_image(
        image_id: str,
        principal: Principal = Depends(require_principal),
        workflow: ArtworkWorkflow = Depends(get_workflow),
    ) -> StreamingResponse:
        """Stream the full-resolution painting of a purchased artwork.

        Raises:
            NotFoundError: 404 if the artwork is absent or not the caller's.
            ForbiddenError: 403 if the artwork has not been purchased.
        """
        download = workflow.open_download(principal.tenant, image_id)
        return StreamingResponse(
            download.chunks,
            media_type=download.content_type,
            headers={"Content-Disposition": f'attachment; filename="{download.filename}"'},
        )

    @app.get("/api/images/{image_id}", response_model=ArtworkOut)
    async def get_image(
        image_id: str,
        principal: Principal = Depends(require_principal),
        workflow: ArtworkWorkflow = Depends(get_workflow),
    ) -> ArtworkOut:
        """Return a single artwork of the caller."""
        return ArtworkOut.from_record(workflow.get_artwork(principal.tenant, image_id))

    @app.post("/api/checkout/create", response_model=CheckoutResponse)
    async def create_checkout(
        req: CheckoutRequest,
        principal: Principal = Depends(require_principal),
        workflow: ArtworkWorkflow = Depends(get_workflow),
    ) -> CheckoutResponse:
        """Create a checkout session for one of the caller's artworks.

        The record is not modified; it becomes purchased when the paid-order
        webhook arrives.
        """
        checkout_url = await workflow.create_checkout(principal.tenant, req.image_id)
        return CheckoutResponse(checkout_url=checkout_url)

    @app.get("/api/admin/images", response_model=ArtworkListResponse)
    async def list_shop_images(
        page: int = 1,
        status: str | None = None,
        principal: Principal = Depends(require_principal),
        workflow: ArtworkWorkflow = Depends(get_workflow),
        config: OilPortraitConfig = Depends(get_config),
    ) -> ArtworkListResponse:
        """Return one page of every artwork of the caller's shop.

        Args:
            page: One-based page number; clamped into range.
            status: ``all`` (default), ``purchased`` or ``not-purchased``.
        """
        page_data = list_artworks_page(
            workflow.store,
            principal.shop_tenant,
            PurchaseFilter.parse(status),
            page,
            config.admin_page_size,
        )
        return _listing_response(page_data)

    @app.get("/api/admin/stats", response_model=StatsResponse)
    async def shop_stats(
        principal: Principal = Depends(require_principal),
        workflow: ArtworkWorkflow = Depends(get_workflow),
    ) -> StatsResponse:
        """Return artwork counts for the caller's shop."""
        return StatsResponse(**workflow.stats(principal.shop_tenant))

    @app.post("/webhooks", response_model=WebhookResponse)
    async def receive_webhook(
        request: Request,
        workflow: ArtworkWorkflow = Depends(get_workflow),
        config: OilPortraitConfig = Depends(get_config),
    ) -> WebhookResponse:
        """Receive a signed notification from the commerce platform.

        ``orders/paid`` deliveries mark the ordered artworks as purchased.
        Every other topic is acknowledged and ignored.

        Raises:
            Unauthorized: 401 if the HMAC signature does not match.
            ValidationError: 400 if an ``orders/paid`` body is not a valid
                order or the shop domain header is missing.
        """
        body = await read_verified_webhook(request, config)
        topic = request.headers.get("X-Shopify-Topic")

        if topic != ORDERS_PAID_TOPIC:
            logger.info("Webhook received (topic=%s), nothing to do", topic)
            return WebhookResponse(topic=topic)

        shop_id = request.headers.get("X-Shopify-Shop-Domain")
        if not shop_id:
            raise ValidationError("Missing shop domain")

        try:
            order = json.loads(body)
        except ValueError as e:
            raise ValidationError("Malformed order payload") from e

        updated = workflow.reconcile_order_paid(shop_id, order)
        logger.info(
            "Processed %s for %s: %d artwork(s) purchased",
            topic,
            shop_id,
            len(updated),
        )
        return WebhookResponse(topic=topic, updated=[record.id for record in updated])

    @app.get("/webhooks")
    async def webhook_probe() -> dict:
        """Answer reachability checks on the webhook URL."""
        return {"status": "ok"}


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from :data:`~oilportrait.core.config.config`
    (``OILPORTRAIT_SERVER_HOST``, ``OILPORTRAIT_SERVER_PORT``,
    ``OILPORTRAIT_LOG_LEVEL``).  Defaults to ``0.0.0.0:8000``.

    This function is registered as the ``oilportrait`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    from oilportrait.core.config import config

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "oilportrait.api.main:create_app",
        factory=True,
        host=config.server_host,
        port=config.server_port,
        log_level=config.log_level,
        reload=False,
    )


if __name__ == "__main__":
    main()
