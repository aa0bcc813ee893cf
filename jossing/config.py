"""Database and application configuration."""
import os

DATABASE_CONFIG = {
    'host': os.getenv('DB_HOST', 'localhost'),
    'port': os.getenv('DB_PORT', '5432'),
    'database': os.getenv('DB_NAME', 'jossing'),
    'user': os.getenv('DB_USER', os.getenv('USER', 'postgres')),
    'password': os.getenv('DB_PASSWORD', ''),
}

# memory | postgres
STORE_BACKEND = os.getenv('JOSSING_STORE', 'memory')

# Seconds a seated player may take before the engine acts for them; 0 disables
TURN_TIMEOUT_SECONDS = float(os.getenv('JOSSING_TURN_TIMEOUT', '120'))

# Multiplier on AI thinking delays; 0 means AIs answer immediately
AI_THINK_SCALE = float(os.getenv('JOSSING_AI_THINK_SCALE', '0'))

DEALER_RESTRICTION = os.getenv('JOSSING_DEALER_RESTRICTION', '0') == '1'

LOG_LEVEL = os.getenv('JOSSING_LOG_LEVEL', 'INFO')
GAME_LOGS_DIR = os.getenv('JOSSING_GAME_LOGS', '')

MAX_EVENTS_PER_SESSION = int(os.getenv('JOSSING_MAX_EVENTS', '500'))

FLASK_HOST = os.getenv('FLASK_HOST', '0.0.0.0')
FLASK_PORT = int(os.getenv('FLASK_PORT', '3000'))
FLASK_DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'


def get_database_url():
    """Get PostgreSQL connection URL."""
    c = DATABASE_CONFIG
    return f"postgresql://{c['user']}:{c['password']}@{c['host']}:{c['port']}/{c['database']}"
