"""Shared extension instances bound to the app in ``create_app``."""
from __future__ import annotations

from flask_socketio import SocketIO

socketio = SocketIO(async_mode="threading")

__all__ = ["socketio"]
