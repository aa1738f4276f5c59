from __future__ import annotations

import json
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import AppSetting
from ..validation import ValidationError
from .concurrency import run_write


KEY_EXPIRY_WARNING_DAYS = "expiry_warning_days"
KEY_DEPLETION_WARNING_DAYS = "depletion_warning_days"

# setting key -> config key holding its default
SETTINGS_DEFAULTS = {
    KEY_EXPIRY_WARNING_DAYS: "DEFAULT_EXPIRY_WARNING_DAYS",
    KEY_DEPLETION_WARNING_DAYS: "DEFAULT_DEPLETION_WARNING_DAYS",
}


def _default_for(key: str) -> int:
    fallback = {KEY_EXPIRY_WARNING_DAYS: 7, KEY_DEPLETION_WARNING_DAYS: 5}[key]
    return int(current_app.config.get(SETTINGS_DEFAULTS[key], fallback))


def _validate_value(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    return value


def _decode(row: AppSetting | None) -> int | None:
    if row is None or row.value is None:
        return None
    try:
        value = json.loads(row.value)
    except (TypeError, ValueError):
        return None
    try:
        return _validate_value(row.key, value)
    except ValidationError:
        return None


def get_settings() -> dict:
    """
    Current display thresholds.

    Missing or unreadable rows fall back to the configured defaults and are
    written back so the store is repaired for the next reader.
    """
    rows = {
        r.key: r
        for r in db.session.query(AppSetting).filter(AppSetting.key.in_(list(SETTINGS_DEFAULTS))).all()
    }

    result: dict[str, int] = {}
    repaired = []
    for key in SETTINGS_DEFAULTS:
        value = _decode(rows.get(key))
        if value is None:
            value = _default_for(key)
            repaired.append(key)
            row = rows.get(key)
            if row is None:
                db.session.add(AppSetting(key=key, value=json.dumps(value)))
            else:
                row.value = json.dumps(value)
        result[key] = value

    if repaired:
        db.session.commit()
        current_app.logger.warning("settings repaired with defaults: %s", ", ".join(repaired))

    return result


def update_settings(patch: dict) -> dict:
    if not isinstance(patch, dict) or not patch:
        raise ValidationError("settings payload must be a non-empty object")

    unknown = sorted(k for k in patch if k not in SETTINGS_DEFAULTS)
    if unknown:
        raise ValidationError(f"Unknown setting: {', '.join(unknown)}")

    clean = {k: _validate_value(k, v) for k, v in patch.items()}

    def _op(attempt):
        for key, value in clean.items():
            row = db.session.query(AppSetting).filter_by(key=key).first()
            if row is None:
                db.session.add(AppSetting(key=key, value=json.dumps(value)))
            else:
                row.value = json.dumps(value)
        attempt.flush()

    run_write(_op, what="update_settings")
    current_app.logger.info("settings updated: %s", clean)
    return get_settings()
