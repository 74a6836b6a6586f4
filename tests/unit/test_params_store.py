"""Unit tests for persisted rating parameter sets."""

import logging

from cuerank.db.models import RatingParameterSet
from cuerank.rating.calculator import RatingParams
from cuerank.rating.params_store import (
    DEFAULT_PARAMS_VERSION,
    get_active_rating_params,
    persist_rating_params,
)


def test_defaults_when_nothing_active(db_session):
    params, version = get_active_rating_params(db_session)
    assert params == RatingParams()
    assert version == DEFAULT_PARAMS_VERSION


def test_activated_set_is_returned(db_session):
    persist_rating_params(db_session, "k20", RatingParams(k_base=20.0), activate=True)
    params, version = get_active_rating_params(db_session)
    assert version == "k20"
    assert params.k_base == 20.0


def test_activation_replaces_previous_set(db_session):
    persist_rating_params(db_session, "first", RatingParams(k_base=16.0), activate=True)
    persist_rating_params(db_session, "second", RatingParams(k_base=18.0), activate=True)
    active = db_session.query(RatingParameterSet).filter(RatingParameterSet.is_active.is_(True)).all()
    assert [row.name for row in active] == ["second"]


def test_inactive_set_is_ignored(db_session):
    persist_rating_params(db_session, "draft", RatingParams(k_base=30.0))
    _, version = get_active_rating_params(db_session)
    assert version == DEFAULT_PARAMS_VERSION


def test_unknown_keys_fall_back_to_defaults(db_session, caplog):
    db_session.add(RatingParameterSet(name="legacy", params={"k": 32}, is_active=True))
    db_session.flush()
    with caplog.at_level(logging.WARNING):
        params, version = get_active_rating_params(db_session)
    assert version == DEFAULT_PARAMS_VERSION
    assert params == RatingParams()
    assert "unknown keys" in caplog.text
