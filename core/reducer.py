from __future__ import annotations

"""Merge classified stream output into session state."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from .classifier import classify, merge_layout
from .state import (
    ClassifiedFragments,
    Sentiment,
    Session,
    SessionError,
    SessionStatus,
    StreamUpdate,
)

logger = logging.getLogger(__name__)

_SENTIMENTS = {s.value: s for s in Sentiment}


def payload_sentiment(payload: Any) -> Optional[Sentiment]:
    if not isinstance(payload, dict):
        return None
    value = payload.get("sentiment")
    if isinstance(value, str):
        return _SENTIMENTS.get(value.strip().lower())
    return None


def merge_fragments(session: Session, fragments: ClassifiedFragments, update: StreamUpdate) -> Session:
    """Fold one classification into ``session`` and return the new value."""
    changes = {
        "report": fragments.report,
        "log_lines": list(fragments.log_lines),
        "references": list(update.references),
        "active_agents": list(fragments.active_agents),
        "layout": merge_layout(session.layout, fragments.layout),
        "status": SessionStatus.COMPLETED if update.is_final else SessionStatus.STREAMING,
        "update_count": session.update_count + 1,
        "updated_at": datetime.now(timezone.utc),
    }
    if fragments.has_payload:
        changes["has_payload"] = True
        changes["structured_payload"] = fragments.structured_payload
        sentiment = payload_sentiment(fragments.structured_payload)
        if sentiment is not None:
            changes["sentiment"] = sentiment
    return session.model_copy(update=changes)


def apply(session: Session, update: StreamUpdate) -> Session:
    """Apply one stream update to a session.

    Terminal sessions are returned unchanged. Report, logs and references
    are replaced wholesale since ``raw_text`` is cumulative; layout and the
    structured payload only ever advance. Task mutations are applied by the
    store against its task collection, see ``core.tasks``.
    """
    if session.is_terminal:
        logger.info(f"⏹️ REDUCER: Ignoring update for {session.status.value} session {session.id}")
        return session
    fragments = classify(update.raw_text, final=update.is_final)
    return merge_fragments(session, fragments, update)


def fail(session: Session, category: str, message: str) -> Session:
    """Mark a session as failed, keeping whatever it accumulated so far."""
    if session.is_terminal:
        logger.info(f"⏹️ REDUCER: Session {session.id} already {session.status.value}, not failing it")
        return session
    return session.model_copy(
        update={
            "status": SessionStatus.FAILED,
            "error": SessionError(category=category, message=message),
            "updated_at": datetime.now(timezone.utc),
        }
    )


__all__ = ["apply", "fail", "merge_fragments", "payload_sentiment"]
