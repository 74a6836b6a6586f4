"""Persistence helpers for active rating parameter sets."""

from __future__ import annotations

import logging
from dataclasses import asdict, fields

from sqlalchemy.orm import Session

from cuerank.db.models import RatingParameterSet
from cuerank.rating.calculator import RatingParams

logger = logging.getLogger(__name__)

DEFAULT_PARAMS_VERSION = "defaults-v1"


def get_active_rating_params(session: Session) -> tuple[RatingParams, str]:
    """Return active persisted rating params, or defaults if none are active."""
    active = (
        session.query(RatingParameterSet)
        .filter(RatingParameterSet.is_active.is_(True))
        .order_by(RatingParameterSet.created_at.desc(), RatingParameterSet.id.desc())
        .first()
    )
    if not active:
        return RatingParams(), DEFAULT_PARAMS_VERSION

    known = {f.name for f in fields(RatingParams)}
    unknown = set(active.params or {}) - known
    if unknown:
        logger.warning(
            "Parameter set %s has unknown keys %s; using defaults",
            active.name,
            sorted(unknown),
        )
        return RatingParams(), DEFAULT_PARAMS_VERSION

    return RatingParams(**active.params), active.name


def persist_rating_params(
    session: Session,
    name: str,
    params: RatingParams,
    source: str = "manual",
    activate: bool = False,
) -> RatingParameterSet:
    """Persist a named rating params set and optionally activate it."""
    if activate:
        session.query(RatingParameterSet).update({RatingParameterSet.is_active: False})

    record = RatingParameterSet(
        name=name,
        params=asdict(params),
        source=source,
        is_active=activate,
    )
    session.add(record)
    session.flush()
    logger.info("Stored rating parameter set %s (active=%s)", name, activate)
    return record
