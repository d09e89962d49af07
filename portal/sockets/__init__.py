"""
Sockets Package
"""
from portal.sockets.session_events import register_socket_events

__all__ = ['register_socket_events']
