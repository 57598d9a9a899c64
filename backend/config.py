import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/')
    # Comma-separated; '*' allows any origin
    CORS_ORIGINS = [
        o.strip() for o in os.environ.get(
            'CORS_ORIGINS',
            'http://localhost:5173,http://127.0.0.1:5173,http://localhost:5174,http://127.0.0.1:5174',
        ).split(',') if o.strip()
    ]
    # Match timers (seconds)
    DISCONNECT_GRACE_SEC = int(os.environ.get('DISCONNECT_GRACE_SEC', '30'))
    TURN_DURATION_SEC = int(os.environ.get('TURN_DURATION_SEC', '60'))
    STARTUP_GRACE_SEC = int(os.environ.get('STARTUP_GRACE_SEC', '60'))
    # Post-game countdown shown by clients before returning to the lobby
    RETURN_TO_LOBBY_SEC = int(os.environ.get('RETURN_TO_LOBBY_SEC', '10'))
    # Lobby
    MAX_LOBBY = int(os.environ.get('MAX_LOBBY', '200'))
    # 'suffix' assigns "name (2)"; 'reject' answers nameTaken
    NAME_COLLISION_POLICY = os.environ.get('NAME_COLLISION_POLICY', 'suffix')
    MAX_CHAT = int(os.environ.get('MAX_CHAT', '200'))
    MAX_CHAT_MESSAGE_LEN = int(os.environ.get('MAX_CHAT_MESSAGE_LEN', '500'))
    # Optional leaderboard endpoint; empty disables submission
    LEADERBOARD_URL = os.environ.get('LEADERBOARD_URL', '')
    LEADERBOARD_TIMEOUT_SEC = float(os.environ.get('LEADERBOARD_TIMEOUT_SEC', '5'))
    # Optional: heartbeat interval for timer worker logs (sec). 0 disables.
    TIMER_HEARTBEAT_SEC = int(os.environ.get('TIMER_HEARTBEAT_SEC', '0'))
