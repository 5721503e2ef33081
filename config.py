'''Service configuration, read once from the environment at import time.'''
import os
from typing import List
from dotenv import load_dotenv

load_dotenv()


def _flag(name:str, default:bool=False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ('1', 'true', 'yes', 'on')


def _origins(raw:str) -> List[str]:
    return [origin.strip() for origin in raw.split(',') if origin.strip()]


VERSION : str = '1.0.0'
APP_ENV : str = os.getenv('APP_ENV', 'development')
LOG_LEVEL : str = os.getenv('LOG_LEVEL', 'INFO')
PORT : int = int(os.getenv('PORT', '3000'))

API_TOKEN : str = os.getenv('API_TOKEN', '')
READ_REQUIRES_TOKEN : bool = _flag('READ_REQUIRES_TOKEN')
TRUST_PROXY : bool = _flag('TRUST_PROXY')
CORS_ORIGINS : List[str] = _origins(os.getenv('CORS_ORIGIN', 'https://share.141029.xyz'))

SQLALCHEMY_DATABASE_URI : str = os.getenv('DATABASE_URL', 'sqlite:///data.db')
SQLALCHEMY_TRACK_MODIFICATIONS : bool = False
MAX_CONTENT_LENGTH : int = 1024 * 1024

PUBLIC_RATE_LIMIT : int = int(os.getenv('PUBLIC_RATE_LIMIT', '50'))
API_RATE_LIMIT : int = int(os.getenv('API_RATE_LIMIT', '200'))
RATE_LIMIT_WINDOW : int = int(os.getenv('RATE_LIMIT_WINDOW', '900'))
AUTH_FAILURE_LIMIT : int = int(os.getenv('AUTH_FAILURE_LIMIT', '5'))
AUTH_FAILURE_WINDOW : int = int(os.getenv('AUTH_FAILURE_WINDOW', '3600'))

# Flask-Caching
CACHE_TYPE : str = 'SimpleCache'
CACHE_DEFAULT_TIMEOUT : int = int(os.getenv('CACHE_TTL', '300'))
CACHE_THRESHOLD : int = int(os.getenv('CACHE_MAX_ENTRIES', '1000'))

ID_MAX_ATTEMPTS : int = int(os.getenv('ID_MAX_ATTEMPTS', '10'))
