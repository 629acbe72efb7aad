"""Configuration settings for the calling agent."""

import os
from pathlib import Path
from typing import Optional, Dict, Any, Union, List
from dataclasses import dataclass, field, asdict, fields
import json
import structlog
from dotenv import load_dotenv
import threading


logger = structlog.get_logger()


DEFAULT_AGENT_NAMES = [
    "Sarah", "Emma", "Lisa", "Anna", "Rachel",
    "Jessica", "Emily", "Sophie", "Olivia", "Grace",
]


@dataclass
class SchedulerSettings:
    """Spacing between calls to the generation provider."""
    min_interval: float = 1.0  # seconds


@dataclass
class RetrySettings:
    """Retry configuration for rate limited generation calls."""
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds, multiplied by the attempt number


@dataclass
class VoiceSettings:
    """Speech capture and synthesis timing."""
    silence_threshold: float = 3.0  # seconds
    silence_tick: float = 1.0
    restart_delay: float = 0.3
    recovery_delay: float = 1.0
    synthesis_retries: int = 3
    synthesis_retry_delay: float = 0.1
    resume_delay: float = 0.3
    voice_wait_timeout: float = 5.0
    voice_poll_interval: float = 0.1
    preferred_voice: Optional[str] = None
    preferred_language: str = "en"


@dataclass
class ProviderSettings:
    """Provider selection and provider-specific settings."""
    generation_provider: str = "gemini"
    capture_provider: str = "console"
    synthesis_provider: str = "elevenlabs"

    # Gemini
    gemini_model: str = "gemini-pro"
    gemini_temperature: float = 0.7
    gemini_max_tokens: int = 2048

    # ElevenLabs
    elevenlabs_voice_id: str = "EXAVITQu4vr4xnSDxMaL"  # Sarah voice
    elevenlabs_model_id: str = "eleven_flash_v2_5"
    elevenlabs_output_format: str = "mp3_22050_32"
    elevenlabs_stability: float = 0.5
    elevenlabs_similarity_boost: float = 0.8
    elevenlabs_style: float = 0.0
    elevenlabs_speed: float = 0.9
    elevenlabs_use_speaker_boost: bool = True


@dataclass
class TimeoutSettings:
    """Timeout settings for provider calls."""
    generation_timeout: float = 30.0  # seconds


@dataclass
class AgentSettings:
    """Identity of the calling agent."""
    product_name: str = "DialAI"
    agent_names: List[str] = field(default_factory=lambda: list(DEFAULT_AGENT_NAMES))
    knowledge_base_id: str = "default"


@dataclass
class StorageSettings:
    """Where call records and custom knowledge bases are persisted."""
    calls_path: str = "~/.dialai/calls.json"
    knowledge_bases_path: str = "~/.dialai/knowledge_bases.json"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = "INFO"
    format: str = "json"
    file_enabled: bool = True
    file_rotation_mb: int = 10
    file_backup_count: int = 7
    log_dir: str = "./logs"


_SECTIONS = (
    "scheduler", "retries", "voice", "providers",
    "timeouts", "agent", "storage", "logging",
)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Main settings class for the calling agent."""

    def __init__(self, config_file: Optional[Union[str, Path]] = None,
                 load_env_file: bool = True):
        self.config_file = Path(config_file) if config_file else None
        self._lock = threading.RLock()
        self._env_loaded = False

        self.scheduler = SchedulerSettings()
        self.retries = RetrySettings()
        self.voice = VoiceSettings()
        self.providers = ProviderSettings()
        self.timeouts = TimeoutSettings()
        self.agent = AgentSettings()
        self.storage = StorageSettings()
        self.logging = LoggingSettings()

        if load_env_file:
            self._load_env_file()

        if self.config_file and self.config_file.exists():
            self.load_from_file()

        self.load_from_env()

    def _load_env_file(self) -> None:
        """Load environment variables from the nearest .env file."""
        if self._env_loaded:
            return
        current_dir = Path.cwd()
        for parent in [current_dir] + list(current_dir.parents):
            env_file = parent / ".env"
            if env_file.exists():
                load_dotenv(env_file)
                logger.debug("Loaded .env file", path=str(env_file))
                break
        self._env_loaded = True

    def load_from_file(self) -> None:
        """Load settings from the JSON configuration file.

        Unknown sections and keys are ignored so that older config files keep
        working after fields are renamed.
        """
        if not self.config_file or not self.config_file.exists():
            return

        try:
            with self._lock:
                with open(self.config_file, "r") as f:
                    config = json.load(f)

                for section_name in _SECTIONS:
                    section_config = config.get(section_name)
                    if not isinstance(section_config, dict):
                        continue
                    section = getattr(self, section_name)
                    for key, value in section_config.items():
                        if hasattr(section, key):
                            setattr(section, key, value)

                logger.info("Loaded settings from file", file=str(self.config_file))

        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load settings from file",
                         file=str(self.config_file),
                         error=str(e))

    def load_from_env(self) -> None:
        """Load settings from environment variables."""
        with self._lock:
            if os.getenv("DIALAI_MIN_INTERVAL"):
                self.scheduler.min_interval = float(os.getenv("DIALAI_MIN_INTERVAL"))

            if os.getenv("DIALAI_MAX_RETRIES"):
                self.retries.max_attempts = int(os.getenv("DIALAI_MAX_RETRIES"))
            if os.getenv("DIALAI_RETRY_DELAY"):
                self.retries.base_delay = float(os.getenv("DIALAI_RETRY_DELAY"))

            if os.getenv("DIALAI_SILENCE_THRESHOLD"):
                self.voice.silence_threshold = float(os.getenv("DIALAI_SILENCE_THRESHOLD"))
            if os.getenv("DIALAI_PREFERRED_VOICE"):
                self.voice.preferred_voice = os.getenv("DIALAI_PREFERRED_VOICE")

            if os.getenv("GENERATION_PROVIDER"):
                self.providers.generation_provider = os.getenv("GENERATION_PROVIDER")
            if os.getenv("CAPTURE_PROVIDER"):
                self.providers.capture_provider = os.getenv("CAPTURE_PROVIDER")
            if os.getenv("SYNTHESIS_PROVIDER"):
                self.providers.synthesis_provider = os.getenv("SYNTHESIS_PROVIDER")

            if os.getenv("GEMINI_MODEL"):
                self.providers.gemini_model = os.getenv("GEMINI_MODEL")
            if os.getenv("GEMINI_TEMPERATURE"):
                self.providers.gemini_temperature = float(os.getenv("GEMINI_TEMPERATURE"))
            if os.getenv("GEMINI_MAX_TOKENS"):
                self.providers.gemini_max_tokens = int(os.getenv("GEMINI_MAX_TOKENS"))

            if os.getenv("ELEVENLABS_VOICE_ID"):
                self.providers.elevenlabs_voice_id = os.getenv("ELEVENLABS_VOICE_ID")
            if os.getenv("ELEVENLABS_MODEL_ID"):
                self.providers.elevenlabs_model_id = os.getenv("ELEVENLABS_MODEL_ID")
            if os.getenv("ELEVENLABS_OUTPUT_FORMAT"):
                self.providers.elevenlabs_output_format = os.getenv("ELEVENLABS_OUTPUT_FORMAT")

            if os.getenv("GENERATION_TIMEOUT"):
                self.timeouts.generation_timeout = float(os.getenv("GENERATION_TIMEOUT"))

            if os.getenv("DIALAI_PRODUCT_NAME"):
                self.agent.product_name = os.getenv("DIALAI_PRODUCT_NAME")
            if os.getenv("DIALAI_KNOWLEDGE_BASE"):
                self.agent.knowledge_base_id = os.getenv("DIALAI_KNOWLEDGE_BASE")

            if os.getenv("DIALAI_CALLS_PATH"):
                self.storage.calls_path = os.getenv("DIALAI_CALLS_PATH")
            if os.getenv("DIALAI_KNOWLEDGE_BASES_PATH"):
                self.storage.knowledge_bases_path = os.getenv("DIALAI_KNOWLEDGE_BASES_PATH")

            if os.getenv("LOG_LEVEL"):
                self.logging.level = os.getenv("LOG_LEVEL")
            if os.getenv("LOG_FORMAT"):
                self.logging.format = os.getenv("LOG_FORMAT")
            if os.getenv("LOG_FILE_ENABLED"):
                self.logging.file_enabled = _env_bool(os.getenv("LOG_FILE_ENABLED"))

    def save_to_file(self, file_path: Optional[Union[str, Path]] = None) -> None:
        """Save current settings to file."""
        save_path = Path(file_path) if file_path else self.config_file
        if not save_path:
            raise ValueError("No file path provided")

        try:
            with self._lock:
                save_path.parent.mkdir(parents=True, exist_ok=True)
                with open(save_path, "w") as f:
                    json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

                logger.info("Saved settings to file", file=str(save_path))

        except OSError as e:
            logger.error("Failed to save settings to file",
                         file=str(save_path), error=str(e))
            raise

    def get_provider_config(self, provider_type: str) -> Dict[str, Any]:
        """Get constructor kwargs for a specific provider."""
        if provider_type == "gemini":
            return {
                "model_name": self.providers.gemini_model,
                "temperature": self.providers.gemini_temperature,
                "max_tokens": self.providers.gemini_max_tokens,
                "timeout": self.timeouts.generation_timeout,
            }
        elif provider_type == "elevenlabs":
            return {
                "voice_id": self.providers.elevenlabs_voice_id,
                "model_id": self.providers.elevenlabs_model_id,
                "output_format": self.providers.elevenlabs_output_format,
                "stability": self.providers.elevenlabs_stability,
                "similarity_boost": self.providers.elevenlabs_similarity_boost,
                "style": self.providers.elevenlabs_style,
                "speed": self.providers.elevenlabs_speed,
                "use_speaker_boost": self.providers.elevenlabs_use_speaker_boost,
            }
        elif provider_type == "console":
            return {}
        else:
            raise ValueError(f"Unknown provider type: {provider_type}")

    def voice_coordinator_config(self) -> Dict[str, Any]:
        """Keyword arguments for VoiceCoordinator.

        Without an explicit preferred voice, the configured ElevenLabs voice id
        is preferred so it wins over whatever voice the account lists first.
        """
        config = {f.name: getattr(self.voice, f.name) for f in fields(self.voice)}
        if not config["preferred_voice"] and self.providers.synthesis_provider == "elevenlabs":
            config["preferred_voice"] = self.providers.elevenlabs_voice_id
        return config

    @property
    def calls_path(self) -> Path:
        return Path(self.storage.calls_path).expanduser()

    @property
    def knowledge_bases_path(self) -> Path:
        return Path(self.storage.knowledge_bases_path).expanduser()

    def reload(self) -> None:
        """Reload settings from file and environment."""
        with self._lock:
            if self.config_file and self.config_file.exists():
                self.load_from_file()
            self.load_from_env()
            logger.info("Settings reloaded")

    def validate(self) -> list[str]:
        """Validate current settings and return list of issues."""
        issues = []

        if self.scheduler.min_interval < 0:
            issues.append(f"Invalid minimum interval: {self.scheduler.min_interval}")

        if self.retries.max_attempts < 1:
            issues.append(f"Invalid max attempts: {self.retries.max_attempts}")
        if self.retries.base_delay < 0:
            issues.append(f"Invalid retry delay: {self.retries.base_delay}")

        if self.voice.silence_threshold <= 0:
            issues.append(f"Invalid silence threshold: {self.voice.silence_threshold}")
        if self.voice.silence_tick <= 0:
            issues.append(f"Invalid silence tick: {self.voice.silence_tick}")
        if self.voice.synthesis_retries < 0:
            issues.append(f"Invalid synthesis retries: {self.voice.synthesis_retries}")

        if self.timeouts.generation_timeout <= 0:
            issues.append(f"Invalid generation timeout: {self.timeouts.generation_timeout}")

        if not self.agent.agent_names:
            issues.append("Agent name pool is empty")

        if self.providers.generation_provider not in ["gemini"]:
            issues.append(f"Unknown generation provider: {self.providers.generation_provider}")
        if self.providers.capture_provider not in ["console"]:
            issues.append(f"Unknown capture provider: {self.providers.capture_provider}")
        if self.providers.synthesis_provider not in ["elevenlabs"]:
            issues.append(f"Unknown synthesis provider: {self.providers.synthesis_provider}")

        return issues

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary for serialization."""
        return {name: asdict(getattr(self, name)) for name in _SECTIONS}


# Global settings instance
settings = Settings()
