"""Embeddable tracking script."""

import html
import json
from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import FileResponse

router = APIRouter(tags=["script"])

SCRIPT_PATH = Path(__file__).resolve().parent.parent / "static" / "track.js"

# Any site may load the script; it runs on tenants' own pages.
SCRIPT_HEADERS = {
    "Cache-Control": "public, max-age=3600",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@router.get("/track.js", include_in_schema=False)
async def tracking_script() -> FileResponse:
    """Serve the browser tracker."""
    return FileResponse(
        SCRIPT_PATH,
        media_type="application/javascript",
        headers=SCRIPT_HEADERS,
    )


def tracking_snippet(
    api_url: str,
    tracking_id: str,
    debug: bool = False,
    auto_track: bool = True,
    loyalty_enabled: bool = True,
) -> str:
    """Render the HTML a tenant pastes into their pages.

    The first tag sets the globals ``track.js`` reads at load time; the
    second loads the script, which initializes itself when a tracking id is
    configured.

    Usage:
        {{ tracking_snippet("https://track.example.com", "T1") | safe }}
    """
    api_url = api_url.rstrip("/")
    config = {
        "ANALYTICS_API_URL": api_url,
        "ANALYTICS_TRACKING_ID": tracking_id,
        "ANALYTICS_DEBUG": debug,
        "ANALYTICS_AUTO_TRACK": auto_track,
        "ANALYTICS_LOYALTY_ENABLED": loyalty_enabled,
    }
    assignments = []
    for name, value in config.items():
        # "</" is escaped so a value cannot close the script element
        literal = json.dumps(value).replace("</", "<\\/")
        assignments.append(f"window.{name}={literal};")
    src = html.escape(f"{api_url}/track.js", quote=True)
    return f'<script>{"".join(assignments)}</script>\n<script async src="{src}"></script>'
