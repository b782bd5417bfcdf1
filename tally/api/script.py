"""
Tracking script endpoint
"""
from functools import lru_cache
import os

from flask import Blueprint, Response, current_app
import rjsmin

script_bp = Blueprint("script", __name__)

SCRIPT_PATH = os.path.join(os.path.dirname(__file__), "..", "static", "tracking.js")
TRACK_URL_PLACEHOLDER = "__TRACK_URL__"


def track_url(domain: str) -> str:
    """Beacon URL embedded in the script"""
    if domain == "localhost":
        return "http://localhost:8080/track"
    return f"https://{domain}/track"


@lru_cache(maxsize=None)
def render_script(domain: str) -> str:
    """
    Minified tracking script pointing at the domain's beacon URL

    Read and minified once per domain, then served from memory.
    """
    with open(SCRIPT_PATH, encoding="utf-8") as fh:
        source = fh.read()
    return rjsmin.jsmin(source).replace(TRACK_URL_PLACEHOLDER, track_url(domain))


@script_bp.route("/analytics.js", methods=["GET"])
def analytics_js():
    """Serve the tracking script, cached for a day"""
    settings = current_app.extensions["tally"].settings
    response = Response(render_script(settings.DOMAIN), mimetype="application/javascript")
    response.headers["Cache-Control"] = "public, max-age=86400"
    return response
