# dice_duel/extensions.py
"""
Flask extensions and shared process-wide objects.

Created here, bound in the app factory, so blueprints and socket handlers can
import them without circular imports.
"""

from flask_socketio import SocketIO
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import threading
import queue
from typing import Dict, Any

# --- Flask extensions ---

# cors_allowed_origins="*" accepts any origin; restrict it in production.
socketio = SocketIO(cors_allowed_origins="*")

# Rate limiting for the HTTP API, keyed by client IP
limiter = Limiter(key_func=get_remote_address)


# --- Shared state ---

# Which player id is connected on which Socket.IO session id.
# { 'sid': {'player_id': ..., 'connect_time': ...}, ... }
sid_to_player_map: Dict[str, Any] = {}

# Socket.IO handles each client on its own thread/greenlet
sid_to_player_lock = threading.Lock()

# Notifications produced outside a request (clock ticker, timeouts) are put
# here and emitted by the consumer worker.
notification_queue: queue.Queue = queue.Queue()
