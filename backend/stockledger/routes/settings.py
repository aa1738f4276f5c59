# Overview: Flask API routes for display thresholds.

from flask import Blueprint, request

from ..services.settings_service import get_settings, update_settings
from .errors import error_response

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
def get_settings_route():
    try:
        return get_settings()
    except Exception as e:
        return error_response(e)


@settings_bp.put("")
def update_settings_route():
    payload = request.get_json(silent=True)
    try:
        return update_settings(payload)
    except Exception as e:
        return error_response(e)
