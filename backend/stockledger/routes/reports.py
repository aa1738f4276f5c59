# Overview: Flask API routes for stock reports.

from flask import Blueprint, request

from ..services.reporting_service import daily_report
from ..validation import ValidationError
from stockledger.time_utils import parse_iso_date
from .errors import error_response

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/daily")
def daily_report_route():
    """Query params: date=YYYY-MM-DD (optional, default today UTC)."""
    try:
        try:
            day = parse_iso_date(request.args.get("date"))
        except ValueError:
            raise ValidationError("date must be YYYY-MM-DD")
        return daily_report(day=day)
    except Exception as e:
        return error_response(e)
