"""
Web front-end routes: the store, inquiry and delete pages plus static assets.

Server-side logic is kept minimal:
- Each page is a Jinja2 template with a single form.
- The forms talk to the JSON endpoints (``/store``, ``/inquiry``,
  ``/delete``) from client-side JS and render the answer in place.
- FastAPI's StaticFiles serves the CSS/JS assets.
"""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

# Resolve paths relative to this file for predictable packaging.
_WEB_ROOT = Path(__file__).resolve().parent
_TEMPLATES_DIR = _WEB_ROOT / "templates"
_STATIC_DIR = _WEB_ROOT / "static"
# Bump when static assets change and browsers should refetch them.
ASSET_VERSION = "20261019a"

templates = Jinja2Templates(directory=str(_TEMPLATES_DIR))

# (path, template, page title)
PAGES = (
    ("/", "index.html", "Store message"),
    ("/inquiry-page", "inquiry.html", "Message inquiry"),
    ("/delete-page", "delete.html", "Delete messages"),
)


def _render_page(request: Request, template_name: str, title: str) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        template_name,
        {"title": title, "asset_version": ASSET_VERSION},
    )


def _page_endpoint(template_name: str, title: str):
    async def page(request: Request) -> HTMLResponse:
        return _render_page(request, template_name, title)

    return page


def build_pages_router() -> APIRouter:
    """Build the router serving the three form pages."""
    router = APIRouter()

    for path, template_name, title in PAGES:
        router.add_api_route(
            path,
            _page_endpoint(template_name, title),
            methods=["GET"],
            response_class=HTMLResponse,
            include_in_schema=False,
            name=template_name.removesuffix(".html"),
        )

    return router


def register_web_routes(app: FastAPI) -> None:
    """
    Register the pages and static assets on the FastAPI app.

    Static files must be mounted on the FastAPI app (not an APIRouter),
    otherwise Starlette will not serve the assets correctly.
    """
    app.mount("/static", StaticFiles(directory=str(_STATIC_DIR)), name="static")
    app.include_router(build_pages_router())
