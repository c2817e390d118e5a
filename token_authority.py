import secrets
from enum import Enum

OWNER_PREFIX = "c-"
MEMBER_PREFIX = "u-"


class TokenKind(str, Enum):
    OWNER = "owner"
    MEMBER = "member"


class TokenRole(str, Enum):
    OWNER = "owner"
    MEMBER = "member"
    UNAUTHORIZED = "unauthorized"


class TokenAuthority:
    """Issues bearer tokens and decides what a token may do in a room.

    The prefix only helps when reading logs or keys; roles are decided by
    comparing token values against the room's stored state.
    """

    def __init__(self, nbytes: int = 24):
        self.nbytes = nbytes

    def issue(self, kind: TokenKind) -> str:
        prefix = OWNER_PREFIX if TokenKind(kind) is TokenKind.OWNER else MEMBER_PREFIX
        return prefix + secrets.token_urlsafe(self.nbytes)

    def classify(self, token, room) -> TokenRole:
        if not token:
            return TokenRole.UNAUTHORIZED
        if room.owner_token and secrets.compare_digest(token.encode(), room.owner_token.encode()):
            return TokenRole.OWNER
        if token in room.connected_tokens:
            return TokenRole.MEMBER
        return TokenRole.UNAUTHORIZED
