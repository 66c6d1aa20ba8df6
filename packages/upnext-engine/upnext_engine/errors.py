class EngineError(Exception):
    """Base class for queue engine failures surfaced to callers."""


class NotFound(EngineError):
    pass


class RoomNotFound(NotFound):
    def __init__(self, room_id: str):
        super().__init__(f"Room {room_id} not found")
        self.room_id = room_id


class ItemNotFound(NotFound):
    def __init__(self, room_id: str, item_id: str):
        super().__init__(f"Item {item_id} not found in room {room_id}")
        self.room_id = room_id
        self.item_id = item_id


class InvalidInput(EngineError):
    pass


class InvalidDirection(InvalidInput):
    def __init__(self, direction: object):
        super().__init__(f"Invalid vote direction: {direction!r}")
        self.direction = direction


class NoItemsAvailable(EngineError):
    """The room has nothing pending; it is left Idle. Expected, not fatal."""

    def __init__(self, room_id: str):
        super().__init__(f"No items available in room {room_id}")
        self.room_id = room_id


class Conflict(EngineError):
    pass


class Forbidden(EngineError):
    pass
