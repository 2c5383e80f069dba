"""
User directory service: lookups used to validate actors and assignees.
"""
import logging
from sqlmodel import Session, select
from typing import Iterable, List

from drill_engine.core.exceptions import NotFoundError, ValidationError
from drill_engine.models.user import User

logger = logging.getLogger(__name__)


def unique_ids(ids: Iterable[int]) -> List[int]:
    """Drop repeated ids while keeping the first-seen order."""
    seen = set()
    result = []
    for user_id in ids:
        if user_id not in seen:
            seen.add(user_id)
            result.append(user_id)
    return result


def find_user_by_id(session: Session, user_id: int, resource: str = "User") -> User:
    """
    Get a user by id.

    Args:
        session: Database session
        user_id: User ID
        resource: Name used in the NotFoundError message (e.g., 'Assigner')

    Returns:
        The user

    Raises:
        NotFoundError: If the user does not exist
    """
    user = session.get(User, user_id)
    if not user:
        raise NotFoundError(resource)
    return user


def find_users_with_role(session: Session, user_ids: List[int], role: str) -> List[User]:
    """
    Get several users that must all exist and all hold the given role.

    Uses a single query for the whole list.

    Args:
        session: Database session
        user_ids: User IDs to look up
        role: Required role (e.g., 'learner')

    Returns:
        The users, in the order of user_ids

    Raises:
        NotFoundError: If any id does not exist
        ValidationError: If an existing user does not hold the role
    """
    ids = unique_ids(user_ids)
    if not ids:
        return []

    users = session.exec(
        select(User).where(User.id.in_(ids))  # type: ignore[attr-defined]
    ).all()
    users_by_id = {user.id: user for user in users}

    missing_ids = [user_id for user_id in ids if user_id not in users_by_id]
    if missing_ids:
        logger.warning(f"Users not found: {missing_ids}")
        raise NotFoundError(f"Users with IDs: {', '.join(str(i) for i in missing_ids)}")

    wrong_role_ids = [user_id for user_id in ids if users_by_id[user_id].role != role]
    if wrong_role_ids:
        logger.warning(f"Users without role '{role}': {wrong_role_ids}")
        raise ValidationError(f"One or more {role} IDs are invalid: {', '.join(str(i) for i in wrong_role_ids)}")

    return [users_by_id[user_id] for user_id in ids]
