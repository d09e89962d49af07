"""
Flask Extensions
Centralized extension initialization
"""
from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO

from portal.tasks import SideEffectQueue

# Initialize extensions (without app binding)
db = SQLAlchemy()
socketio = SocketIO()

# Live test sessions keyed by session id (managed by services.session)
active_sessions = {}

# Best-effort work that must never block a submission
side_effects = SideEffectQueue()
