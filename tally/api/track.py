"""
Beacon ingestion endpoint
"""
from flask import Blueprint, current_app, jsonify, request
import logging

from tally.core.errors import StorageError
from tally.models.events import IngestResult, IngestStatus, PageviewEvent

logger = logging.getLogger(__name__)

track_bp = Blueprint("track", __name__)


def build_event(settings) -> PageviewEvent:
    """
    Extract a pageview from the current request

    The client-reported referrer wins over the Referer header, which for
    beacons is usually the tracked page itself.
    """
    return PageviewEvent(
        url=request.values.get("url"),
        user_agent=request.headers.get("User-Agent", ""),
        referrer=request.values.get("referrer") or request.headers.get("Referer"),
        client_ip=request.remote_addr or "",
        proxy_ip_hint=request.headers.get(settings.PROXY_IP_HEADER),
        country_hint=request.headers.get(settings.COUNTRY_HEADER),
    )


@track_bp.route("/track", methods=["GET", "POST"])
def track():
    """
    Record a pageview

    Parameters (query string or form):
    - url: Visited URL (required)
    - referrer: document.referrer of the visited page

    Response:
    {
      "status": "accepted",
      "discarded": false,
      "recorded": ["pages", "countries", "sources"],
      "failed": []
    }
    """
    services = current_app.extensions["tally"]

    try:
        event = build_event(services.settings)
        result = services.pipeline.ingest(event)

    except ValueError as e:
        logger.warning(f"Rejected pageview: {e} (remote_addr={request.remote_addr})")
        return (
            jsonify(
                IngestResult(status=IngestStatus.REJECTED, message=str(e)).model_dump(mode="json")
            ),
            400,
        )
    except StorageError:
        return (
            jsonify(
                IngestResult(
                    status=IngestStatus.FAILED, message="Failed to track pageview"
                ).model_dump(mode="json")
            ),
            500,
        )

    response = jsonify(result.model_dump(mode="json"))
    if request.args.get("url"):
        response.headers["Cache-Control"] = "public, max-age=3600, s-maxage=3600, must-revalidate"
    return response, 200
