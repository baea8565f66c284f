"""Room-scoped delivery used by sessions.

Sessions only ever talk to a `BroadcastGateway`; `SocketIOGateway` adapts
Flask-SocketIO to it. Sends are fire-and-forget.
"""
from typing import Any, Callable, Dict

from flask import request


def game_room(code: str) -> str:
    return f"game:{code}"


def host_room(code: str) -> str:
    return f"host:{code}"


class BroadcastGateway:
    def identify(self) -> str:
        raise NotImplementedError

    def join_room(self, conn_id: str, room: str) -> None:
        raise NotImplementedError

    def leave_room(self, conn_id: str, room: str) -> None:
        raise NotImplementedError

    def send_to_room(self, room: str, event: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError

    def send_to_connection(self, conn_id: str, event: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError

    def on_disconnect(self, callback: Callable[[str], None]) -> None:
        raise NotImplementedError


class SocketIOGateway(BroadcastGateway):
    def __init__(self, socketio, namespace: str = '/'):
        self.socketio = socketio
        self.namespace = namespace

    def identify(self) -> str:
        # type: ignore: request.sid exists in Socket.IO context
        return request.sid  # type: ignore

    def join_room(self, conn_id, room):
        self.socketio.server.enter_room(conn_id, room, namespace=self.namespace)

    def leave_room(self, conn_id, room):
        self.socketio.server.leave_room(conn_id, room, namespace=self.namespace)

    def send_to_room(self, room, event, payload):
        self.socketio.emit(event, payload, to=room, namespace=self.namespace)

    def send_to_connection(self, conn_id, event, payload):
        self.socketio.emit(event, payload, to=conn_id, namespace=self.namespace)

    def on_disconnect(self, callback):
        def handle_disconnect(reason=None):
            callback(self.identify())

        self.socketio.on_event('disconnect', handle_disconnect, namespace=self.namespace)
