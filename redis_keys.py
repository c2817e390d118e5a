REDIS_META_KEY = "meta:{room_id}" # hash: owner, createdAt
REDIS_CONNECTED_KEY = "meta:{room_id}:connected" # set of every token admitted to the room
REDIS_MESSAGES_KEY = "messages:{room_id}" # list of message records, append order
REDIS_HISTORY_KEY = "history:{room_id}" # auxiliary, expires with the room
REDIS_ROOM_CHANNEL = "{room_id}" # pub/sub channel, also an auxiliary key name
REDIS_REALTIME_KEY = "realtime:{channel}" # poll strategy ring buffer


def room_keys(room_id: str) -> list[str]:
    """Every key that dies with the room on an explicit destroy."""
    return [
        REDIS_META_KEY.format(room_id=room_id),
        REDIS_CONNECTED_KEY.format(room_id=room_id),
        REDIS_MESSAGES_KEY.format(room_id=room_id),
        REDIS_HISTORY_KEY.format(room_id=room_id),
        REDIS_ROOM_CHANNEL.format(room_id=room_id),
    ]


def ttl_linked_keys(room_id: str) -> list[str]:
    """Keys re-armed to the room's remaining TTL whenever a message is posted."""
    return [
        REDIS_MESSAGES_KEY.format(room_id=room_id),
        REDIS_HISTORY_KEY.format(room_id=room_id),
        REDIS_ROOM_CHANNEL.format(room_id=room_id),
    ]
