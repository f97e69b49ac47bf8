"""
Workspace configuration settings.
Settings are a JSON document per workspace; updates are merged, never replaced.
"""

import logging
from collections.abc import Iterable
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import Configuration

logger = logging.getLogger(__name__)

# Sections merged one level deep by the workspace settings endpoint
WORKSPACE_NESTED_SECTIONS = ("general", "availability", "notifications", "intake_form")


def merge_settings(
    existing: Optional[dict[str, Any]],
    updates: Optional[dict[str, Any]],
    nested_keys: Optional[Iterable[str]] = None,
) -> dict[str, Any]:
    """Merge updates over existing settings.

    Top-level keys from updates win. Keys listed in nested_keys are merged one
    level deep; with nested_keys=None every key whose update is a dict is.
    Neither input is mutated.
    """
    existing = existing if isinstance(existing, dict) else {}
    updates = updates if isinstance(updates, dict) else {}
    nested = None if nested_keys is None else set(nested_keys)

    merged = dict(existing)
    for key, value in updates.items():
        merge_nested = isinstance(value, dict) and (nested is None or key in nested)
        if merge_nested:
            current = existing.get(key)
            merged[key] = {**(current if isinstance(current, dict) else {}), **value}
        else:
            merged[key] = value
    return merged


def get_configuration(db: Session, workspace_id: int) -> Optional[Configuration]:
    return db.query(Configuration).filter(Configuration.workspace_id == workspace_id).first()


def get_settings(db: Session, workspace_id: int) -> dict[str, Any]:
    config = get_configuration(db, workspace_id)
    if not config or not isinstance(config.settings, dict):
        return {}
    return config.settings


def upsert_configuration(
    db: Session,
    workspace_id: int,
    updates: dict[str, Any],
    nested_keys: Optional[Iterable[str]] = None,
) -> dict[str, Any]:
    """Merge updates into the workspace configuration, creating it if missing"""
    config = get_configuration(db, workspace_id)
    merged = merge_settings(config.settings if config else {}, updates, nested_keys)

    if config:
        # Assign a new object so the JSON column is flagged dirty
        config.settings = merged
    else:
        config = Configuration(workspace_id=workspace_id, settings=merged)
        db.add(config)

    db.commit()
    db.refresh(config)
    logger.info(f"✅ Configuration saved for workspace {workspace_id}")
    return config.settings
