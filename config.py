import os
from pathlib import Path

basedir = Path(__file__).parent


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Google OAuth client; a Gmail-specific client takes precedence when set
    GOOGLE_CLIENT_ID = os.environ.get('GOOGLE_GMAIL_CLIENT_ID') or os.environ.get('GOOGLE_CLIENT_ID')
    GOOGLE_CLIENT_SECRET = os.environ.get('GOOGLE_GMAIL_CLIENT_SECRET') or os.environ.get('GOOGLE_CLIENT_SECRET')
    GOOGLE_CREDENTIALS_FILE = os.environ.get('GOOGLE_CREDENTIALS_FILE', 'credentials.json')
    GOOGLE_TOKEN_URI = os.environ.get('GOOGLE_TOKEN_URI', 'https://oauth2.googleapis.com/token')
    GOOGLE_OAUTH_REDIRECT = os.environ.get('GOOGLE_GMAIL_OAUTH_REDIRECT') or \
        os.environ.get('GOOGLE_OAUTH_REDIRECT', 'http://127.0.0.1:3000/api/v1/gmail/oauth/callback')
    OAUTH_COMPLETE_REDIRECT = os.environ.get('OAUTH_COMPLETE_REDIRECT', '/')

    # Accept an explicit ?owner= / body owner when no session user is logged in
    TRUST_OWNER_PARAM = os.environ.get('TRUST_OWNER_PARAM', 'false').lower() == 'true'

    # Collaborators
    RESUME_RENDER_URL = os.environ.get('RESUME_RENDER_URL', 'http://localhost:3001/api/render-pdf')
    NOTIFY_URL = os.environ.get('NOTIFY_URL')
    INTERNAL_API_KEY = os.environ.get('INTERNAL_API_KEY')
    NOTIFY_WORKERS = int(os.environ.get('NOTIFY_WORKERS', '2'))

    HTTP_TIMEOUT = float(os.environ.get('HTTP_TIMEOUT', '30'))
    SYNC_MESSAGE_LIMIT = int(os.environ.get('SYNC_MESSAGE_LIMIT', '50'))


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TRUST_OWNER_PARAM = os.environ.get('TRUST_OWNER_PARAM', 'true').lower() == 'true'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        f'sqlite:///{basedir / "dev.db"}'


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        f'sqlite:///{basedir / "prod.db"}'


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    TRUST_OWNER_PARAM = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    GOOGLE_CLIENT_ID = 'test-client-id'
    GOOGLE_CLIENT_SECRET = 'test-client-secret'
    RESUME_RENDER_URL = 'http://render.test/api/render-pdf'
    NOTIFY_URL = None
    INTERNAL_API_KEY = None


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
