import os


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Shared secret for the admin role (socket auth and /api/admin/login)
    ADMIN_KEY = os.environ.get('ADMIN_KEY') or 'change-me'
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get('CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173').split(',')
        if origin.strip()
    ]
    # Registration limits
    MAX_PLAYERS = int(os.environ.get('MAX_PLAYERS', '90'))
    MIN_PLAYERS = int(os.environ.get('MIN_PLAYERS', '2'))
    MIN_STAKE = int(os.environ.get('MIN_STAKE', '25'))
    MAX_STAKE = int(os.environ.get('MAX_STAKE', '5000'))
    MAX_BOARD_NUMBER = int(os.environ.get('MAX_BOARD_NUMBER', '100'))
    PHONE_PATTERN = os.environ.get('PHONE_PATTERN', r'^09\d{8}$')
    # Money
    SERVICE_FEE = float(os.environ.get('SERVICE_FEE', '0.03'))
    MIN_WITHDRAWAL = int(os.environ.get('MIN_WITHDRAWAL', '25'))
    # Auto-draw timer (seconds)
    AUTO_CALL_ENABLED = _env_bool('AUTO_CALL_ENABLED', True)
    AUTO_CALL_INTERVAL_SEC = float(os.environ.get('AUTO_CALL_INTERVAL_SEC', '7'))
    # Inactivity sweep (seconds); auto-start when this many players are waiting. 0 disables.
    INACTIVE_TIMEOUT_SEC = int(os.environ.get('INACTIVE_TIMEOUT_SEC', str(30 * 60)))
    INACTIVITY_SWEEP_SEC = int(os.environ.get('INACTIVITY_SWEEP_SEC', '60'))
    AUTO_START_MIN_PLAYERS = int(os.environ.get('AUTO_START_MIN_PLAYERS', '5'))
    # Admin observers silent for longer than this stop receiving events
    ADMIN_STALE_SEC = int(os.environ.get('ADMIN_STALE_SEC', '300'))
    # Chat history and game journal size
    LOG_RETENTION = int(os.environ.get('LOG_RETENTION', '1000'))
    # Only accept marks for numbers already called
    STRICT_MARKING = _env_bool('STRICT_MARKING', False)
    # Optional: reshuffles every board card for this deployment
    BOARD_SEED = os.environ.get('BOARD_SEED')
    # Optional: heartbeat interval for timer worker logs (sec). 0 disables.
    TIMER_HEARTBEAT_SEC = int(os.environ.get('TIMER_HEARTBEAT_SEC', '0'))
