"""
Realtime module - WebSocket rooms and event fan-out.
"""

from tuitionhub.modules.realtime.relay import RealtimeRelay, get_relay
from tuitionhub.modules.realtime.router import router

__all__ = ["RealtimeRelay", "get_relay", "router"]
