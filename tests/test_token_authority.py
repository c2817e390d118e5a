"""Token issue/classify tests."""

from room_lifecycle import Room
from token_authority import TokenAuthority, TokenKind, TokenRole


def make_room(owner="c-owner", members=("u-one",)):
    return Room(room_id="r1", owner_token=owner, connected_tokens=frozenset({owner, *members}))


def test_issue_uses_kind_prefix():
    tokens = TokenAuthority()
    assert tokens.issue(TokenKind.OWNER).startswith("c-")
    assert tokens.issue(TokenKind.MEMBER).startswith("u-")


def test_issued_tokens_are_unique():
    tokens = TokenAuthority()
    issued = {tokens.issue(TokenKind.MEMBER) for _ in range(1000)}
    assert len(issued) == 1000


def test_classify_owner_member_and_stranger():
    tokens = TokenAuthority()
    room = make_room()
    assert tokens.classify("c-owner", room) is TokenRole.OWNER
    assert tokens.classify("u-one", room) is TokenRole.MEMBER
    assert tokens.classify("u-two", room) is TokenRole.UNAUTHORIZED
    assert tokens.classify(None, room) is TokenRole.UNAUTHORIZED


def test_classify_ignores_prefix():
    """A member token dressed up with the owner prefix is still just unknown."""
    tokens = TokenAuthority()
    room = make_room()
    assert tokens.classify("c-one", room) is TokenRole.UNAUTHORIZED
    # An owner token that happens to carry the member prefix is still the owner
    room = make_room(owner="u-actually-owner")
    assert tokens.classify("u-actually-owner", room) is TokenRole.OWNER
