class ChatError(Exception):
    """Base for errors that are reported to the caller as structured responses."""

    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__

    @property
    def error(self) -> str:
        return self.__class__.__name__


class BadRequest(ChatError):
    status_code = 400


class Unauthorized(ChatError):
    status_code = 401


class RoomNotFound(ChatError):
    status_code = 404

    def __init__(self, room_id: str):
        super().__init__(f"Room {room_id} not found")
        self.room_id = room_id


class StoreUnavailable(ChatError):
    status_code = 503
