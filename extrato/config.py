"""Configuration management."""
import copy
import os
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested dicts are merged key by key."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Configuration manager."""

    _instance = None

    def __new__(cls, config_path: str = None):
        """Singleton pattern to ensure single config instance."""
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
        return cls._instance

    def __init__(self, config_path: str = None):
        """Initialize configuration."""
        if config_path is None:
            config_path = os.getenv('CONFIG_PATH', 'config.yaml')
        self.config_path = config_path
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file on top of the defaults."""
        defaults = self._default_config()
        if not os.path.exists(self.config_path):
            return defaults

        with open(self.config_path, 'r', encoding='utf-8') as f:
            return _deep_merge(defaults, yaml.safe_load(f) or {})

    def reload(self, config_path: Optional[str] = None):
        """Re-read the YAML file, optionally from a new path."""
        if config_path:
            self.config_path = config_path
        self.config = self._load_config()

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            'gemini': {
                'api_key_env': 'GEMINI_API_KEY',
                'model': 'gemini-3-pro-preview',
                'base_url': 'https://generativelanguage.googleapis.com/v1beta/models',
                'timeout': 600,
                'temperature': 0.1,
                'thinking_budget': 32768,
            },
            'retry': {
                'max_attempts': 4,
                'base_delay': 1.0,
                'quota_multiplier': 5.0,
                'overload_multiplier': 2.0,
            },
            'layout': {
                'y_tolerance': 5.0,
            },
            'extraction': {
                'owner_name_max_length': 50,
                'min_line_length': 5,
                'tax_id_labels': ['CNPJ'],
                'owner_denylist': [
                    'extrato', 'período', 'periodo', 'página', 'pagina',
                    'saldo', 'banco', 'emitido', 'emissão', 'data', 'conta',
                    'agência', 'agencia', 'statement', 'period', 'page',
                    'balance', 'bank', 'issued', 'date', 'account',
                ],
                'known_banks': [
                    'Itaú', 'Bradesco', 'Santander', 'Banco do Brasil', 'Caixa',
                    'Nubank', 'Inter', 'BTG', 'Safra', 'C6',
                ],
                'outflow_patterns': [
                    r'\bpagamento\b', r'\bpagto\b', r'\bpgto\b',
                    r'\bd[eé]bito\b', r'\bdeb\b', r'\btarifa\b', r'\btar\b',
                    r'\bpix\b.*-\s*$', r'\bpix\s+(enviado|emitido)\b',
                    r'\btransfer[eê]ncia\s+enviada\b', r'\b(ted|doc)\s+enviad[oa]\b',
                ],
                'inflow_override_patterns': [
                    r'\bresg(ate)?\.?\s+(autom[aá]tico|aut\b|invest)',
                    r'\bres\.?\s+aplic\.?\s+aut',
                    r'\bresgate\s+aplic',
                ],
                'payment_method_keywords': {
                    'PIX': ['PIX'],
                    'TED': ['TED', 'DOC'],
                    'BOLETO': ['BOLETO'],
                    'CARTÃO': ['CARTAO', 'CARTÃO', 'COMPRA'],
                },
            },
            'import': {
                'extraction_mode': 'auto',
            },
            'storage': {
                'path': os.path.join('data', 'store.json'),
            },
            'logging': {
                'level': 'INFO',
            },
        }

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value by dot-separated path."""
        keys = key_path.split('.')
        value = self.config
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
                if value is None:
                    return default
            else:
                return default
        return value

    def get_gemini_api_key(self) -> Optional[str]:
        """Get Gemini API key from environment."""
        env_key = self.get('gemini.api_key_env', 'GEMINI_API_KEY')
        return os.getenv(env_key)

    @property
    def gemini_model(self) -> str:
        """Model name, ``GEMINI_MODEL`` wins over the YAML value."""
        return os.getenv('GEMINI_MODEL') or self.get('gemini.model', 'gemini-3-pro-preview')

    @property
    def y_tolerance(self) -> float:
        """Vertical band (page units) inside which fragments share a line."""
        return float(self.get('layout.y_tolerance', 5.0))

    @property
    def extraction_mode(self) -> str:
        return os.getenv('EXTRACTION_MODE') or self.get('import.extraction_mode', 'auto')

    @property
    def known_banks(self) -> List[str]:
        return list(self.get('extraction.known_banks', []))

    @property
    def storage_path(self) -> str:
        return os.getenv('STORE_PATH') or self.get('storage.path', os.path.join('data', 'store.json'))

    @property
    def log_level(self) -> str:
        return os.getenv('LOG_LEVEL') or self.get('logging.level', 'INFO')


# Global config instance
config = Config()
