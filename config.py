"""
Configuration for the blood bank dashboard service.
Values are read from environment variables with local-development defaults.
"""

import os


def _env_flag(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'bloodbank-dev-secret-key')

    # 'memory' keeps everything in-process; 'dynamodb' uses the AWS tables
    STORAGE_BACKEND = os.environ.get('STORAGE_BACKEND', 'memory')
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')
    DYNAMODB_TABLE_PREFIX = os.environ.get('DYNAMODB_TABLE_PREFIX', 'BloodBank')

    SEED_SAMPLE_DATA = _env_flag('SEED_SAMPLE_DATA', True)

    ACTIVITY_LIMIT = int(os.environ.get('ACTIVITY_LIMIT', 10))
    UPCOMING_DRIVES_LIMIT = int(os.environ.get('UPCOMING_DRIVES_LIMIT', 3))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class TestingConfig(Config):
    TESTING = True
    STORAGE_BACKEND = 'memory'
    SEED_SAMPLE_DATA = False
    LOG_LEVEL = 'WARNING'
