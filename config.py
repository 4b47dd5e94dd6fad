import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key')
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', 'jwt-secret-key-change-me-in-production')
    JWT_ACCESS_TOKEN_EXPIRES = 604800  # 7 days
    FLASK_ENV = os.environ.get('FLASK_ENV', 'development')

    if FLASK_ENV == 'development':
        DATABASE_URL = os.environ.get(
            'DEV_DATABASE_URL',
            os.environ.get('DATABASE_URL',
                           'sqlite:///' + os.path.join(BASE_DIR, 'quiztime.db')))
    else:
        DATABASE_URL = os.environ.get('PROD_DATABASE_URL', os.environ.get('DATABASE_URL'))

    # JSON documents used as the secondary store and import source
    DATA_DIR = os.environ.get('QUIZTIME_DATA_DIR', os.path.join(BASE_DIR, 'data'))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FILE = os.environ.get('LOG_FILE', 'app.log')

    # Seconds to wait on a lock or database call before giving up
    STORE_TIMEOUT = float(os.environ.get('STORE_TIMEOUT', 5))
    LEADERBOARD_SIZE = int(os.environ.get('LEADERBOARD_SIZE', 100))
    RANDOM_SEED = os.environ.get('RANDOM_SEED')
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'https://quiztime.app')

    if not DATABASE_URL:
        raise ValueError("DATABASE_URL environment variable is not set")


class TestConfig(Config):
    TESTING = True
    FLASK_ENV = 'development'
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length-for-hs256'
    DATABASE_URL = 'sqlite:///:memory:'
    LOG_FILE = None
    LOG_LEVEL = 'DEBUG'
    STORE_TIMEOUT = 2.0
    RANDOM_SEED = 1234
