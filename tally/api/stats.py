"""
Statistics query endpoint
"""
from flask import Blueprint, current_app, jsonify, request
import logging

from tally.core.errors import QueryError
from tally.models.events import StatsQuery, StatsResponse
from tally.utils.time_windows import DayBucketer

logger = logging.getLogger(__name__)

stats_bp = Blueprint("stats", __name__)


def parse_query() -> StatsQuery:
    """Build a StatsQuery from request arguments"""
    start = request.args.get("start")
    end = request.args.get("end")
    return StatsQuery(
        table=request.args.get("table", "pages"),
        domain=request.args.get("domain", ""),
        start_day=DayBucketer.parse_day(start) if start else None,
        end_day=DayBucketer.parse_day(end) if end else None,
        aggregate=request.args.get("aggregate", "").lower() == "true",
    )


@stats_bp.route("/stats", methods=["GET"])
def get_stats():
    """
    Daily unique visitors for a domain

    Query params:
    - domain: Site domain (required)
    - table: pages, countries or sources (default: pages)
    - aggregate: "true" to merge all paths per day (pages only)
    - start, end: ISO dates (default: last 30 days)
    - api_key: Required when API_KEY is configured

    Example:
    GET /stats?domain=example.com&aggregate=true

    Response:
    {
      "domain": "example.com",
      "table": "pages",
      "rows": [{"day": "2025-10-16", "visitors": 1247}],
      "accuracy": "±2%"
    }
    """
    services = current_app.extensions["tally"]
    settings = services.settings

    if settings.API_KEY and request.args.get("api_key") != settings.API_KEY:
        return jsonify({"error": "Unauthorized"}), 401

    if not request.args.get("domain"):
        return jsonify({"error": "domain parameter is required"}), 400

    try:
        query = parse_query()
        start_day, end_day = services.query.resolve_window(query.start_day, query.end_day)

        rows = services.query.query(
            query.table, query.domain, start_day, end_day, aggregate=query.aggregate
        )

        response = StatsResponse(
            domain=query.domain,
            table=query.table,
            start_day=start_day,
            end_day=end_day,
            aggregate=query.aggregate,
            rows=rows,
            accuracy=f"±{settings.HLL_ERROR_RATE:.0%}",
        )
        return jsonify(response.model_dump(mode="json", exclude_none=True)), 200

    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except QueryError as e:
        logger.error(f"Error querying stats: {e}", exc_info=True)
        return jsonify({"error": "Failed to fetch stats"}), 500
