from app.realtime.gateway import RealtimeGateway
from app.realtime.rooms import RoomRouter
from app.realtime.session import Principal, RealtimeSession

__all__ = [
    "Principal",
    "RealtimeGateway",
    "RealtimeSession",
    "RoomRouter",
]
