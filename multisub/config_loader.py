"""Handles loading configuration from YAML files."""

import copy
import yaml
import os
import logging
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    'temp_dir': 'temp',
    'output_dir': 'output',
    'log_dir': 'logs',
    'log_file': 'multisub.log',
    'ffmpeg_path': None,
    'ffprobe_path': None,
    'segment_length_seconds': 300,
    # Speech-to-text
    'transcription_backend': 'openai',
    'transcription_model': 'whisper-1',
    'whisper_model': 'medium',
    'whisper_fp16': True,
    'device': 'cuda',
    'source_language_hint': None,
    'fallback_language': 'en',
    'transcription_workers': 3,
    # Translation
    'translation_backend': 'openai',
    'translation_model': 'gpt-4o',
    'huggingface_model_template': 'Helsinki-NLP/opus-mt-{source}-{target}',
    'target_languages': ['ja', 'es'],
    'max_entries_per_chunk': 15,
    'max_api_calls': 25,
    'reserved_tokens': 500,
    'expansion_factor': 2.0,
    'context_window': None,
    'temperature': 0.3,
    'translation_workers': 3,
    'openai_api_key': None,
}

_BACKENDS = {
    'transcription_backend': ('openai', 'whisper'),
    'translation_backend': ('openai', 'huggingface'),
}

_POSITIVE_INTS = (
    'transcription_workers', 'translation_workers',
    'max_entries_per_chunk', 'max_api_calls',
)

class ConfigLoader:
    """Loads configuration settings from a YAML file."""

    def load_config(self, config_path: str) -> dict:
        """
        Loads configuration from the specified YAML file path.

        Args:
            config_path: The path to the YAML configuration file.

        Returns:
            A dictionary containing the loaded configuration settings.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the file cannot be parsed as YAML or
                              if there are other reading errors.
        """
        logger.info(f"Attempting to load configuration from: {config_path}")
        if not os.path.exists(config_path):
            logger.error(f"Configuration file not found at path: {config_path}")
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        if not os.path.isfile(config_path):
             logger.error(f"Configuration path is not a file: {config_path}")
             raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Invalid YAML format in {config_path}: {e}") from e
        except IOError as e:
            logger.error(f"Error reading configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Could not read configuration file {config_path}: {e}") from e

        if config is None:
            config = {}
        if not isinstance(config, dict):
            logger.error(f"Configuration file {config_path} did not load as a dictionary (root object).")
            raise ConfigurationError(f"Invalid YAML structure in {config_path}. Root must be a mapping (dictionary).")

        merged = self.with_defaults(config)
        logger.info(f"Configuration loaded successfully from {config_path}")
        return merged

    def with_defaults(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Overlays a partial configuration onto DEFAULT_CONFIG and validates it."""
        unknown = sorted(set(config) - set(DEFAULT_CONFIG))
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {', '.join(unknown)}")
        merged = copy.deepcopy(DEFAULT_CONFIG)
        merged.update({k: v for k, v in config.items() if k in DEFAULT_CONFIG})
        validate_config(merged)
        return merged


def validate_config(config: Dict[str, Any]) -> None:
    """
    Checks value types and ranges of a merged configuration.

    Raises:
        ConfigurationError: On the first invalid value.
    """
    for key, allowed in _BACKENDS.items():
        if config.get(key) not in allowed:
            raise ConfigurationError(f"'{key}' must be one of {allowed}, got {config.get(key)!r}")

    for key in _POSITIVE_INTS:
        value = config.get(key)
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigurationError(f"'{key}' must be a positive integer, got {value!r}")

    segment_length = config.get('segment_length_seconds')
    if isinstance(segment_length, bool) or not isinstance(segment_length, (int, float)) or segment_length <= 0:
        raise ConfigurationError(f"'segment_length_seconds' must be a positive number, got {segment_length!r}")

    if not isinstance(config.get('reserved_tokens'), int) or config['reserved_tokens'] < 0:
        raise ConfigurationError("'reserved_tokens' must be a non-negative integer")

    try:
        factor = float(config.get('expansion_factor'))
    except (TypeError, ValueError) as e:
        raise ConfigurationError("'expansion_factor' must be a number") from e
    if factor < 0:
        raise ConfigurationError("'expansion_factor' cannot be negative")

    window = config.get('context_window')
    if window is not None and (not isinstance(window, int) or window <= 0):
        raise ConfigurationError("'context_window' must be a positive integer when set")

    languages = config.get('target_languages')
    if isinstance(languages, str):
        config['target_languages'] = [lang.strip() for lang in languages.split(',') if lang.strip()]
    elif not isinstance(languages, list) or not all(isinstance(lang, str) for lang in languages):
        raise ConfigurationError("'target_languages' must be a list of language codes")


def resolve_api_key(config: Dict[str, Any]) -> Optional[str]:
    """
    Returns the OpenAI API key from the config, falling back to the
    OPENAI_API_KEY environment variable (a local .env file is honoured).
    """
    load_dotenv(override=False)
    return config.get('openai_api_key') or os.getenv('OPENAI_API_KEY')
