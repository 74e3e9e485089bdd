"""Configuration Management

Loads and validates configuration from YAML files and environment variables.
Secrets (API keys and tokens) are read from the environment only.
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

MIB = 1024 * 1024

DEFAULT_MODELS = [
    "google/vit-base-patch16-224",
    "microsoft/resnet-50",
    "facebook/deit-base-distilled-patch16-224",
    "microsoft/beit-base-patch16-224",
]

DEFAULT_PROXY_ENDPOINTS = [
    "https://api-inference.huggingface.co/models/{model}",
    "https://router.huggingface.co/hf-inference/{model}",
    "https://router.huggingface.co/models/{model}",
]


class Config:
    """Configuration manager for the application."""

    DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "settings.yaml"

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_path: Optional path to configuration file.
        """
        load_dotenv()

        self.config_path = Path(
            config_path or os.environ.get("CONFIG_FILE", self.DEFAULT_CONFIG_PATH)
        )
        self._config = self._load_config()

    def _load_config(self) -> dict:
        """Load configuration from YAML file.

        Returns:
            Configuration dictionary.
        """
        if self.config_path.exists():
            with open(self.config_path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        return {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value using dot notation.

        Args:
            key: Configuration key (e.g., "storage.max_bytes").
            default: Default value if key not found.

        Returns:
            Configuration value.
        """
        value = self._config

        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    # Storage
    @property
    def storage_dir(self) -> Path:
        """Directory backing the local key/value storage."""
        return Path(self.get("storage.directory", "data/storage"))

    @property
    def storage_key(self) -> str:
        """Name of the storage entry holding the photo collection."""
        return self.get("storage.key", "mysight_photos")

    @property
    def storage_max_bytes(self) -> int:
        """Ceiling for the serialized photo collection."""
        return int(self.get("storage.max_bytes", 4 * MIB))

    @property
    def storage_quota_bytes(self) -> int:
        """Quota enforced by the storage medium itself."""
        return int(self.get("storage.quota_bytes", 5 * MIB))

    # Image processing
    @property
    def max_file_size(self) -> int:
        """Raw upload ceiling in bytes."""
        return int(self.get("image_processing.max_file_size", 5 * MIB))

    @property
    def max_width(self) -> int:
        return int(self.get("image_processing.max_width", 1920))

    @property
    def max_height(self) -> int:
        return int(self.get("image_processing.max_height", 1920))

    @property
    def passthrough_size(self) -> int:
        """Encoded size below which small images are kept untouched."""
        return int(self.get("image_processing.passthrough_size", 2 * MIB))

    @property
    def max_encoded_size(self) -> int:
        """Encoded (base64-estimated) ceiling after recompression."""
        return int(self.get("image_processing.max_encoded_size", 4 * MIB))

    @property
    def jpeg_quality(self) -> int:
        """Get re-encoding quality setting.

        Returns:
            Quality (1-100).
        """
        return int(self.get("image_processing.quality", 85))

    # Keyword detection
    @property
    def auto_keywords(self) -> bool:
        return bool(self.get("keywords.auto", True))

    @property
    def api_type(self) -> str:
        """Keyword source selection: exif, google, huggingface or combined."""
        return self.get("keywords.api_type", "combined")

    @property
    def huggingface_proxy_url(self) -> str:
        """URL of the inference proxy that relays classification requests."""
        return os.environ.get("HF_WORKER_URL") or self.get(
            "huggingface.proxy_url", "http://127.0.0.1:8787/api/huggingface"
        )

    @property
    def huggingface_models(self) -> list:
        return self.get("huggingface.models", DEFAULT_MODELS)

    @property
    def huggingface_origin(self) -> Optional[str]:
        """Origin the inference requests are issued from, if any."""
        return self.get("huggingface.origin")

    @property
    def huggingface_warmup_backoff(self) -> float:
        """Seconds to wait after a model answers 503 (warming up)."""
        return float(self.get("huggingface.warmup_backoff", 5.0))

    @property
    def huggingface_timeout(self) -> float:
        return float(self.get("huggingface.timeout", 60.0))

    @property
    def vision_min_confidence(self) -> float:
        """Get minimum label confidence for Vision API.

        Returns:
            Minimum confidence score.
        """
        return float(self.get("vision_api.min_confidence", 0.7))

    # Translation
    @property
    def use_deepl(self) -> bool:
        return bool(self.get("translation.use_deepl", False))

    @property
    def deepl_target_lang(self) -> str:
        return self.get("translation.target_lang", "RU")

    # Proxy
    @property
    def proxy_endpoints(self) -> list:
        """Candidate upstream URL templates, tried in order."""
        return self.get("proxy.endpoints", DEFAULT_PROXY_ENDPOINTS)

    @property
    def proxy_host(self) -> str:
        return self.get("proxy.host", "127.0.0.1")

    @property
    def proxy_port(self) -> int:
        return int(self.get("proxy.port", 8787))

    @property
    def proxy_timeout(self) -> float:
        return float(self.get("proxy.timeout", 60.0))

    # Secrets
    @property
    def google_vision_api_key(self) -> Optional[str]:
        """Get Google Vision API key.

        Returns:
            API key or None.
        """
        return os.environ.get("GOOGLE_VISION_API_KEY") or None

    @property
    def hf_token(self) -> Optional[str]:
        return os.environ.get("HF_TOKEN") or None

    @property
    def deepl_api_key(self) -> Optional[str]:
        return os.environ.get("DEEPL_API_KEY") or None

    # Logging
    @property
    def log_level(self) -> str:
        """Get logging level.

        Returns:
            Log level string.
        """
        return self.get("logging.level", "INFO")

    @property
    def log_file(self) -> Optional[Path]:
        """Get log file path.

        Returns:
            Path to log file, or None to log to the console only.
        """
        path = self.get("logging.file")
        return Path(path) if path else None

    @property
    def debug(self) -> bool:
        """Check if debug mode is enabled.

        Returns:
            True if debug mode is enabled.
        """
        return os.environ.get("DEBUG", "").lower() in ("true", "1", "yes")
