"""Client-side direct message policy check."""
from __future__ import annotations

from typing import Any, Mapping

from ..constants import DM_POLICY_EVERYONE, DM_POLICY_FOLLOWERS, DM_POLICY_NONE
from .errors import DirectMessageBlocked

BLOCKED_MESSAGES = {
    DM_POLICY_NONE: "This user is not accepting messages",
    DM_POLICY_FOLLOWERS: "This user only accepts messages from followers",
}


def check_dm_policy(recipient: Mapping[str, Any], *, sender_follows_recipient: bool) -> None:
    """Raise :class:`DirectMessageBlocked` when ``recipient`` would refuse the message.

    Uses state the caller already holds, so a blocked send never touches the network.
    """

    policy = recipient.get("allow_dm_from") or DM_POLICY_EVERYONE
    if policy == DM_POLICY_NONE:
        raise DirectMessageBlocked(BLOCKED_MESSAGES[DM_POLICY_NONE])
    if policy == DM_POLICY_FOLLOWERS and not sender_follows_recipient:
        raise DirectMessageBlocked(BLOCKED_MESSAGES[DM_POLICY_FOLLOWERS])


__all__ = ["BLOCKED_MESSAGES", "check_dm_policy"]
