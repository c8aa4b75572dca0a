"""Configuration management."""

import os
from pathlib import Path
from typing import Any, Dict

import yaml
from dotenv import load_dotenv

# Load .env file if it exists
env_file = Path(__file__).parent.parent / '.env'
if env_file.exists():
    load_dotenv(env_file)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ('1', 'true', 'yes', 'on')


def load_config() -> Dict[str, Any]:
    """Load configuration from YAML file and environment variables."""
    config_file = Path(os.getenv('CANVAS_CONFIG', Path(__file__).parent.parent / 'config' / 'config.yaml'))

    # Load from YAML
    if config_file.exists():
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}
    else:
        config = {}

    # Override with environment variables
    config['SECRET_KEY'] = os.getenv('SECRET_KEY', config.get('secret_key', 'dev-secret-key-change-in-production'))
    config['ANTHROPIC_API_KEY'] = os.getenv('ANTHROPIC_API_KEY', config.get('anthropic_api_key', ''))
    config['LLM_MODEL'] = os.getenv('LLM_MODEL', config.get('llm_model', 'claude-3-5-sonnet-latest'))
    config['LLM_MAX_TOKENS'] = int(os.getenv('LLM_MAX_TOKENS', config.get('llm_max_tokens', 4096)))
    config['LLM_TEMPERATURE'] = os.getenv('LLM_TEMPERATURE', config.get('llm_temperature'))
    config['LLM_MAX_RETRIES'] = int(os.getenv('LLM_MAX_RETRIES', config.get('llm_max_retries', 2)))
    config['LLM_TIMEOUT'] = float(os.getenv('LLM_TIMEOUT', config.get('llm_timeout', 120)))
    config['DATA_DIR'] = os.getenv('DATA_DIR', config.get('data_dir', 'data/conversations'))
    config['SEARXNG_URL'] = os.getenv('SEARXNG_URL', config.get('searxng_url', 'http://127.0.0.1:8888/search'))
    config['SEARXNG_MAX_RESULTS'] = int(os.getenv('SEARXNG_MAX_RESULTS', config.get('searxng_max_results', 10)))
    config['API_KEY'] = os.getenv('API_KEY', config.get('api_key', ''))
    config['DEBUG'] = _env_bool('DEBUG', bool(config.get('debug', False)))
    config['HOST'] = os.getenv('HOST', config.get('host', '0.0.0.0'))
    config['PORT'] = int(os.getenv('PORT', config.get('port', 8000)))

    return config


def export_llm_settings(config: Dict[str, Any]) -> None:
    """Expose LLM settings to the client factory, which reads the environment."""
    for key in ('ANTHROPIC_API_KEY', 'LLM_MODEL', 'LLM_MAX_TOKENS', 'LLM_TEMPERATURE',
                'LLM_MAX_RETRIES', 'LLM_TIMEOUT', 'SEARXNG_URL'):
        value = config.get(key)
        if value not in (None, ''):
            os.environ.setdefault(key, str(value))
