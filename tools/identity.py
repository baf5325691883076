"""Identity arguments shared by every storage tool"""

from models.user import UserIdentity


def identity_from_args(display_name: str, user_id: str) -> UserIdentity:
    """Callers pass the already-authenticated identity on every call."""
    return UserIdentity(display_name=display_name or "", id=user_id or "")
