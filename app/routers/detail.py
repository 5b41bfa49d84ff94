import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response

from app.config import Settings
from app.services.bots import AgentKind, classify_user_agent
from app.services.seo import build_meta_tags, inject_meta_tags, render_bot_page, render_redirect_page
from app.services.shell import ShellClient, ShellFetchError
from app.services.store import ListingNotFound, ListingStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter()

NO_STORE = {"Cache-Control": "private, no-cache, no-store, must-revalidate"}


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_shell_client(request: Request) -> ShellClient:
    return request.app.state.shell_client


async def render_social_preview(listing_id: str, store: ListingStore, settings: Settings) -> Response:
    """Lightweight meta-tag page for link-preview bots. Unknown ids are a hard 404."""
    try:
        listing = await store.get(listing_id)
        html = render_bot_page(listing, settings)
    except ListingNotFound:
        logger.info("Bot asked for unknown listing", extra={"listing_id": listing_id})
        return PlainTextResponse("Vehículo no encontrado", status_code=404, headers=NO_STORE)
    except Exception:
        logger.exception("Failed to build bot HTML", extra={"listing_id": listing_id})
        return PlainTextResponse("Error interno del servidor", status_code=500, headers=NO_STORE)
    return HTMLResponse(html, headers=NO_STORE)


async def inject_listing_tags(shell: str, listing_id: str, store: ListingStore, settings: Settings) -> str:
    """Best effort: any failure leaves the shell as it was."""
    try:
        listing = await store.get(listing_id)
    except ListingNotFound:
        logger.info("No listing to inject for crawler", extra={"listing_id": listing_id})
        return shell
    except Exception:
        logger.exception("Listing lookup failed during tag injection", extra={"listing_id": listing_id})
        return shell

    injected = inject_meta_tags(shell, build_meta_tags(listing, settings), settings.meta_marker)
    if injected is shell:
        logger.warning("Meta marker not found in shell, serving it untouched", extra={"listing_id": listing_id})
    return injected


async def render_app_shell(
    listing_id: Optional[str], kind: AgentKind, store: ListingStore,
    shell_client: ShellClient, settings: Settings,
) -> Response:
    try:
        shell = await shell_client.fetch(listing_id)
    except ShellFetchError as e:
        logger.error("Failed to proxy HTML shell, falling back to JS redirect", extra={"error": str(e)})
        return HTMLResponse(render_redirect_page(listing_id, settings), headers=NO_STORE)

    logger.info("Served HTML shell via proxy", extra={"listing_id": listing_id, "agent": kind.value})
    if kind is AgentKind.SEARCH_BOT and listing_id:
        shell = await inject_listing_tags(shell, listing_id, store, settings)
    return HTMLResponse(shell, headers=NO_STORE)


@router.get("/Coches/detalle.html", response_class=HTMLResponse)
async def vehicle_detail(
    request: Request,
    listing_id: Optional[str] = Query(default=None, alias="id"),
    store: ListingStore = Depends(get_store),
    shell_client: ShellClient = Depends(get_shell_client),
    settings: Settings = Depends(get_app_settings),
):
    """
    Detail page entry point.

    Link-preview bots asking for a listing get a tiny page with Open Graph
    tags. Everyone else gets the app shell; search crawlers get it with
    the listing's meta tags spliced in.
    """
    user_agent = request.headers.get("user-agent")
    kind = classify_user_agent(user_agent, settings.social_bot_signatures, settings.search_bot_signatures)
    logger.info("Detail request", extra={"agent": kind.value, "listing_id": listing_id, "user_agent": user_agent})

    if kind is AgentKind.SOCIAL_BOT and listing_id:
        return await render_social_preview(listing_id, store, settings)

    try:
        return await render_app_shell(listing_id, kind, store, shell_client, settings)
    except Exception:
        logger.exception("Unexpected failure serving the shell", extra={"listing_id": listing_id})
        return HTMLResponse(render_redirect_page(listing_id, settings), headers=NO_STORE)
