import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Tracker configuration settings"""
    
    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///tracker.db')
    
    # Remote API settings
    API_BASE_URL = os.getenv('API_BASE_URL', 'https://api.clashofclans.com/v1')
    API_TOKEN = os.getenv('API_TOKEN', '')
    HTTP_TIMEOUT_SECONDS = float(os.getenv('HTTP_TIMEOUT_SECONDS', 30))
    
    # Sync settings
    FETCH_TIMEOUT_SECONDS = float(os.getenv('FETCH_TIMEOUT_SECONDS', 10))
    RESET_HOUR_UTC = int(os.getenv('RESET_HOUR_UTC', 5))
    SESSION_CACHE_TTL_SECONDS = int(os.getenv('SESSION_CACHE_TTL_SECONDS', 3600))
    
    # Logging settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'True').lower() == 'true'
    
    @classmethod
    def get_async_database_url(cls):
        """Get the database URL with an async driver for sqlite"""
        database_url = cls.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        elif database_url == 'sqlite://':
            database_url = 'sqlite+aiosqlite://'
        return database_url
    
    @classmethod
    def validate(cls):
        """Validate that configuration values are usable"""
        if not 0 <= cls.RESET_HOUR_UTC <= 23:
            raise ValueError("RESET_HOUR_UTC must be between 0 and 23")
        if cls.FETCH_TIMEOUT_SECONDS <= 0:
            raise ValueError("FETCH_TIMEOUT_SECONDS must be positive")
        if cls.SESSION_CACHE_TTL_SECONDS <= 0:
            raise ValueError("SESSION_CACHE_TTL_SECONDS must be positive")
        if not cls.API_BASE_URL:
            raise ValueError("API_BASE_URL is required")
