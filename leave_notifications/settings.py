import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv('SECRET_KEY', 'leave-notifications-dev-key')
DEBUG = os.getenv('DEBUG', 'false').lower() in ('1', 'true', 'yes')
ALLOWED_HOSTS = [host.strip() for host in os.getenv('ALLOWED_HOSTS', '*').split(',') if host.strip()]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'leaves',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
]

ROOT_URLCONF = 'leave_notifications.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

if os.getenv('DB_ENGINE', 'sqlite') == 'postgresql':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('DB_NAME', 'leave_notifications'),
            'USER': os.getenv('DB_USER', 'postgres'),
            'PASSWORD': os.getenv('DB_PASSWORD', ''),
            'HOST': os.getenv('DB_HOST', 'localhost'),
            'PORT': os.getenv('DB_PORT', '5432'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.getenv('DB_NAME', str(BASE_DIR / 'db.sqlite3')),
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

USE_TZ = True
TIME_ZONE = 'UTC'
LANGUAGE_CODE = 'en-au'

STATIC_URL = 'static/'

# Slack
SLACK_BOT_TOKEN = os.getenv('SLACK_BOT_TOKEN')
SLACK_SIGNING_SECRET = os.getenv('SLACK_SIGNING_SECRET')
SLACK_TIMEOUT = int(os.getenv('SLACK_TIMEOUT', '30'))

# Calendar
LEAVE_TIMEZONE = os.getenv('LEAVE_TIMEZONE', 'Australia/Sydney')

# NSW public holidays, keyed by year
LEAVE_PUBLIC_HOLIDAYS = {
    2025: [
        '2025-01-01',  # New Year's Day
        '2025-01-27',  # Australia Day
        '2025-04-18',  # Good Friday
        '2025-04-21',  # Easter Monday
        '2025-04-25',  # ANZAC Day
        '2025-06-09',  # King's Birthday
        '2025-10-06',  # Labour Day
        '2025-12-25',  # Christmas Day
        '2025-12-26',  # Boxing Day
    ],
    2026: [
        '2026-01-01',  # New Year's Day
        '2026-01-26',  # Australia Day
        '2026-04-03',  # Good Friday
        '2026-04-06',  # Easter Monday
        '2026-04-25',  # ANZAC Day
        '2026-06-08',  # King's Birthday
        '2026-10-05',  # Labour Day
        '2026-12-25',  # Christmas Day
        '2026-12-28',  # Boxing Day (observed)
    ],
}

LEAVE_PUBLIC_HOLIDAYS_FILE = os.getenv('LEAVE_PUBLIC_HOLIDAYS_FILE')
if LEAVE_PUBLIC_HOLIDAYS_FILE:
    with open(LEAVE_PUBLIC_HOLIDAYS_FILE, encoding='utf-8') as holidays_file:
        LEAVE_PUBLIC_HOLIDAYS = {int(year): days for year, days in json.load(holidays_file).items()}

# Daily digest
DIGEST_HOUR = int(os.getenv('DIGEST_HOUR', '9'))
DIGEST_MINUTE = int(os.getenv('DIGEST_MINUTE', '0'))
DIGEST_CHANNEL_TIMEOUT = int(os.getenv('DIGEST_CHANNEL_TIMEOUT', '60'))
DIGEST_SCHEDULER_ENABLED = os.getenv('DIGEST_SCHEDULER_ENABLED', 'true').lower() in ('1', 'true', 'yes')

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'slack_sdk': {
            'level': 'WARNING',
        },
        'apscheduler': {
            'level': 'WARNING',
        },
    },
}
