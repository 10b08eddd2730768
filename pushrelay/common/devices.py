"""Device token reads and deactivation shared by both services."""

from collections import defaultdict
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from pushrelay.common.errors import DatastoreError
from pushrelay.common.logging import logger
from pushrelay.common.models import DeviceToken


def active_tokens_for_user(db, user_id: str) -> list[str]:
    """Return the active push tokens of one user (empty list when none)."""

    try:
        rows = db.execute(
            select(DeviceToken.push_token).where(
                DeviceToken.user_id == user_id,
                DeviceToken.is_active.is_(True),
            )
        ).scalars().all()
    except SQLAlchemyError as exc:
        raise DatastoreError("Error fetching tokens", details=str(exc)) from exc
    return list(rows)


def active_tokens_by_user(db, user_ids: Iterable[str]) -> dict[str, list[str]]:
    """Fetch active tokens for many users in one query, indexed by user id."""

    user_ids = list(user_ids)
    if not user_ids:
        return {}
    try:
        rows = db.execute(
            select(DeviceToken.user_id, DeviceToken.push_token).where(
                DeviceToken.user_id.in_(user_ids),
                DeviceToken.is_active.is_(True),
            )
        ).all()
    except SQLAlchemyError as exc:
        raise DatastoreError("Error fetching tokens", details=str(exc)) from exc

    tokens: dict[str, list[str]] = defaultdict(list)
    for row in rows:
        tokens[row.user_id].append(row.push_token)
    return dict(tokens)


def deactivate_tokens(db, tokens: Iterable[str]) -> int:
    """Flip every row holding one of `tokens` to inactive and commit."""

    tokens = sorted(set(tokens))
    if not tokens:
        return 0
    try:
        db.execute(
            update(DeviceToken)
            .where(DeviceToken.push_token.in_(tokens))
            .values(is_active=False)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise DatastoreError("Error deactivating tokens", details=str(exc)) from exc
    logger.info("tokens_deactivated count=%s", len(tokens))
    return len(tokens)
