"""Who is on the other end of a connection.

Hosts prove who they are with a signed token issued at login
(``TokenIdentity``). Participants simply assert a stable id and a display
name when they join (``ClaimedIdentity``). The lifecycle code never looks
at either; only the command layer does, to decide what a connection may do.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from livequiz.errors import ValidationError

HOST_ROLE = 'host'


@dataclass(frozen=True)
class TokenIdentity:
    host_id: str
    display_name: str
    is_host = True


@dataclass(frozen=True)
class ClaimedIdentity:
    participant_id: str
    display_name: str
    photo_ref: Optional[str] = None
    is_host = False

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> 'ClaimedIdentity':
        participant_id = data.get('participantId')
        display_name = data.get('displayName')
        if participant_id is not None and not isinstance(participant_id, str):
            raise ValidationError('participantId and displayName must be strings')
        if display_name is not None and not isinstance(display_name, str):
            raise ValidationError('participantId and displayName must be strings')
        participant_id = (participant_id or '').strip()
        display_name = (display_name or '').strip()
        if not participant_id or not display_name:
            raise ValidationError('Session code, participant id, and display name are required')
        return cls(
            participant_id=participant_id,
            display_name=display_name,
            photo_ref=data.get('photoRef') or None,
        )


def issue_host_token(user) -> str:
    """Sign a host token for a logged-in user. Needs an app context."""
    return create_access_token(
        identity=str(user.id),
        additional_claims={'role': HOST_ROLE, 'username': user.username},
    )


def resolve_identity(auth: Optional[Dict[str, Any]], logger=None) -> Optional[TokenIdentity]:
    """Turn the Socket.IO handshake ``auth`` into a host identity, if any.

    Invalid tokens are treated like no token at all: the connection may
    still join as a participant.
    """
    token = (auth or {}).get('token') if isinstance(auth, dict) else None
    if not token:
        return None
    try:
        claims = decode_token(token)
    except (JWTExtendedException, PyJWTError) as exc:
        if logger is not None:
            logger.info(f"[auth-reject] reason={exc.__class__.__name__}")
        return None
    if claims.get('role') != HOST_ROLE:
        return None
    return TokenIdentity(host_id=str(claims['sub']), display_name=claims.get('username') or 'Host')
