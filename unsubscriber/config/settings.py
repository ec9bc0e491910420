"""
Configuration settings for the unsubscriber.
"""

import os
from pathlib import Path

from dotenv import load_dotenv


ONE_CLICK_POLICY_FIRST_HEADER_LINK = 'first_header_link'
ONE_CLICK_POLICY_ANY_HEADER_LINK = 'any_header_link'
ONE_CLICK_POLICIES = (ONE_CLICK_POLICY_FIRST_HEADER_LINK, ONE_CLICK_POLICY_ANY_HEADER_LINK)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Configuration settings."""

    # Database settings
    DATABASE_URL = 'sqlite:///unsubscriber.db'

    # Planning/verification service
    OPENAI_API_KEY = None
    OPENAI_MODEL = 'gpt-4o-mini'
    OPENAI_TIMEOUT = 30.0

    # One-click unsubscribe
    ONE_CLICK_TIMEOUT = 20.0
    ONE_CLICK_USER_AGENT = 'MailUnsubscriber/0.1 (one-click unsubscribe)'
    ONE_CLICK_POLICY = ONE_CLICK_POLICY_FIRST_HEADER_LINK

    # Interactive agent
    AGENT_TIMEOUT = 45.0
    AGENT_MAX_ROUNDS = 2
    AGENT_HEADLESS = True
    AGENT_USER_AGENT = 'MailUnsubscriber/0.1 (agentic unsubscribe)'

    # Batch processing
    RATE_LIMIT_DELAY = 1.0

    # Logging
    LOG_LEVEL = 'INFO'

    @classmethod
    def reload(cls):
        """Re-read every setting from the environment."""
        cls.DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///unsubscriber.db')

        cls.OPENAI_API_KEY = os.getenv('OPENAI_API_KEY') or None
        cls.OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')
        cls.OPENAI_TIMEOUT = float(os.getenv('OPENAI_TIMEOUT', '30'))

        cls.ONE_CLICK_TIMEOUT = float(os.getenv('ONE_CLICK_TIMEOUT', '20'))
        cls.ONE_CLICK_USER_AGENT = os.getenv(
            'ONE_CLICK_USER_AGENT', 'MailUnsubscriber/0.1 (one-click unsubscribe)'
        )
        policy = os.getenv('ONE_CLICK_POLICY', ONE_CLICK_POLICY_FIRST_HEADER_LINK).strip().lower()
        if policy not in ONE_CLICK_POLICIES:
            raise ValueError(
                f"ONE_CLICK_POLICY must be one of {', '.join(ONE_CLICK_POLICIES)}, got {policy!r}"
            )
        cls.ONE_CLICK_POLICY = policy

        cls.AGENT_TIMEOUT = float(os.getenv('AGENT_TIMEOUT', '45'))
        cls.AGENT_MAX_ROUNDS = int(os.getenv('AGENT_MAX_ROUNDS', '2'))
        cls.AGENT_HEADLESS = _env_bool('AGENT_HEADLESS', 'true')
        cls.AGENT_USER_AGENT = os.getenv(
            'AGENT_USER_AGENT', 'MailUnsubscriber/0.1 (agentic unsubscribe)'
        )

        cls.RATE_LIMIT_DELAY = float(os.getenv('RATE_LIMIT_DELAY', '1.0'))
        cls.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    @classmethod
    def get_data_dir(cls) -> Path:
        """Get the data directory for storing the database."""
        data_dir = Path(os.getenv('DATA_DIR', Path.cwd() / 'data'))
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir

    @classmethod
    def get_database_url(cls) -> str:
        """Get the database URL, placing relative sqlite files in the data directory."""
        if cls.DATABASE_URL.startswith('sqlite:///') and cls.DATABASE_URL != 'sqlite:///:memory:':
            db_file = cls.DATABASE_URL[len('sqlite:///'):]
            if not os.path.isabs(db_file):
                return f"sqlite:///{cls.get_data_dir() / db_file}"
        return cls.DATABASE_URL

    @classmethod
    def is_openai_configured(cls) -> bool:
        return bool(cls.OPENAI_API_KEY)


Config.reload()


def load_config_from_env_file(env_file: str = '.env'):
    """Load configuration from environment file."""
    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)
    Config.reload()
