"""Application configuration loader."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]


logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "APP_CONFIG_FILE"
CONFIG_PATH = Path(__file__).resolve().parents[1] / "config.toml"

WAIT_UNTIL_OPTIONS = {"load", "domcontentloaded", "networkidle", "commit", "networkquiet"}
CONNECT_MODES = {"cdp", "playwright"}

DEFAULT_SUMMARY_PROMPT = "You are a helpful assistant that summarizes web page content."
DEFAULT_IMAGE_PROMPT = "You are a helpful assistant that describes and analyzes screenshots of web pages."
DEFAULT_STRUCTURED_PROMPT = (
    "You extract structured data from web page text. Reply with a single JSON document inside a "
    "```json fenced block and nothing else."
)
DEFAULT_CODEGEN_PROMPT = "You are an assistant that generates complete, self-contained service code."


class Config:
    """Typed view over the TOML settings.

    Attributes are upper-case constants read once at import. Secrets, model
    defaults and remote endpoints can be overridden from the environment.
    """

    def __init__(self, data: Dict[str, Any]) -> None:
        """Populate settings from the parsed TOML tables in ``data``."""
        openai = data.get("openai", {})
        models = data.get("models", {})
        llm = data.get("llm", {})
        browser = data.get("browser", {})
        extraction = data.get("extraction", {})
        image_settings = data.get("image", {})
        request = data.get("request", {})
        database = data.get("database", {})
        cors = data.get("cors", {})
        logging_settings = data.get("logging", {})
        prompts = data.get("prompts", {})
        server = data.get("server", {})

        self.OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", openai.get("base_url", ""))
        self.OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", openai.get("api_key", ""))

        self.DEFAULT_IMAGE_MODEL: str = os.getenv(
            "DEFAULT_IMAGE_MODEL", models.get("default_image", "@cf/meta/llama-3.2-11b-vision-instruct")
        )
        self.DEFAULT_TEXT_MODEL: str = os.getenv(
            "DEFAULT_TEXT_MODEL", models.get("default_text", "@cf/meta/llama-3.1-8b-instruct")
        )
        self.LINK_ANALYSIS_MODEL: str = models.get("link_analysis", "@cf/google/gemma-3-12b-it")
        self.CODEGEN_MODEL: str = models.get("codegen", "@cf/meta/llama-4-scout-17b-16e-instruct")

        self.LLM_TEMPERATURE: float = float(os.getenv("LLM_TEMPERATURE", llm.get("temperature", 0.2)))
        self.LLM_MAX_TOKENS: Optional[int] = self._optional_int(os.getenv("LLM_MAX_TOKENS", llm.get("max_tokens", 2000)))
        self.LLM_TIMEOUT_SECONDS: float = float(os.getenv("LLM_TIMEOUT_SECONDS", llm.get("timeout_seconds", 60)))
        self.CODEGEN_TEMPERATURE: float = float(llm.get("codegen_temperature", 0.1))
        self.CODEGEN_MAX_TOKENS: Optional[int] = self._optional_int(llm.get("codegen_max_tokens", 100000))

        self.BROWSER_WS_ENDPOINT: str = os.getenv("BROWSER_WS_ENDPOINT", browser.get("ws_endpoint", ""))
        connect_mode = str(browser.get("connect_mode", "cdp")).strip().lower()
        self.BROWSER_CONNECT_MODE: str = connect_mode if connect_mode in CONNECT_MODES else "cdp"
        self.BROWSER_CONNECT_TIMEOUT_MS: int = int(browser.get("connect_timeout_ms", 30000))
        self.BROWSER_NAVIGATION_TIMEOUT_MS: int = int(browser.get("navigation_timeout_ms", 30000))
        self.BROWSER_SELECTOR_TIMEOUT_MS: int = int(browser.get("selector_timeout_ms", 10000))
        wait_until_candidate = str(browser.get("default_wait_until", "networkquiet")).strip().lower()
        if wait_until_candidate not in WAIT_UNTIL_OPTIONS:
            wait_until_candidate = "networkquiet"
        self.BROWSER_DEFAULT_WAIT_UNTIL: str = wait_until_candidate
        self.BROWSER_NETWORK_QUIET_MS: int = int(browser.get("network_quiet_ms", 500))
        self.BROWSER_NETWORK_MAX_INFLIGHT: int = int(browser.get("network_max_inflight", 2))
        self.BROWSER_HEADLESS: bool = self._as_bool(browser.get("headless", True))

        self.SUMMARY_MAX_CHARS: int = int(extraction.get("summary_max_chars", 8000))
        self.ANALYSIS_MAX_CHARS: int = int(extraction.get("analysis_max_chars", 10000))

        self.IMAGE_FORMAT: str = str(image_settings.get("format", "webp")).lower()
        self.IMAGE_COMPRESSION_QUALITY: int = int(image_settings.get("compression_quality", 80))
        self.IMAGE_MAX_DIMENSION: int = int(image_settings.get("max_dimension", 2048))

        self.REQUEST_TIMEOUT_SECONDS: float = float(
            os.getenv("REQUEST_TIMEOUT_SECONDS", request.get("timeout_seconds", 90))
        )
        self.DISCONNECT_POLL_SECONDS: float = float(request.get("disconnect_poll_seconds", 0.5))

        self.DATABASE_URL: str = os.getenv("DATABASE_URL", database.get("url", "sqlite:///./data/pagelens.db"))

        self.CORS_ALLOW_ORIGINS: List[str] = [str(origin) for origin in cors.get("allow_origins", ["*"])]

        self.LOG_LEVEL: str = str(os.getenv("LOG_LEVEL", logging_settings.get("level", "INFO"))).upper()

        self.SERVER_HOST: str = os.getenv("SERVER_HOST", server.get("host", "0.0.0.0"))
        self.SERVER_PORT: int = int(os.getenv("SERVER_PORT", server.get("port", 8000)))

        self.SUMMARY_SYSTEM_PROMPT: str = prompts.get("summary", DEFAULT_SUMMARY_PROMPT)
        self.IMAGE_SYSTEM_PROMPT: str = prompts.get("image_analysis", DEFAULT_IMAGE_PROMPT)
        self.STRUCTURED_SYSTEM_PROMPT: str = prompts.get("structured_extraction", DEFAULT_STRUCTURED_PROMPT)
        self.LINK_ANALYSIS_SYSTEM_PROMPT: str = prompts.get("link_analysis", DEFAULT_SUMMARY_PROMPT)
        self.CODEGEN_SYSTEM_PROMPT: str = prompts.get("codegen", DEFAULT_CODEGEN_PROMPT)

    @staticmethod
    def _optional_int(value: Any) -> Optional[int]:
        """Interpret ``value`` as an integer limit.

        ``None``, empty strings and the words ``none``/``null`` (any case)
        mean "no limit" and map to ``None``.

        Raises:
            ValueError: When a non-empty value is not an integer.
        """
        if value is None:
            return None
        text = str(value).strip()
        if text.lower() in ("", "none", "null"):
            return None
        return int(text)

    @staticmethod
    def _as_bool(value: Any) -> bool:
        """Interpret TOML booleans and env-style strings such as ``off``."""
        if isinstance(value, bool):
            return value
        if value is None:
            return False
        return str(value).strip().lower() not in {"0", "false", "no", "off"}


def load_config(path: Path | str | None = None) -> Config:
    """Read the service configuration.

    Lookup order is the ``path`` argument, then ``$APP_CONFIG_FILE``, then
    ``backend/config.toml``.

    Args:
        path: Explicit TOML file to read.

    Returns:
        Config: Parsed settings. Built-in defaults are used when the default
        file does not exist.

    Raises:
        FileNotFoundError: When an explicitly chosen file does not exist.
        tomllib.TOMLDecodeError: When the file is not valid TOML.
    """
    if path:
        config_path = Path(path)
    elif os.getenv(CONFIG_ENV_VAR):
        config_path = Path(os.environ[CONFIG_ENV_VAR])
    else:
        config_path = CONFIG_PATH

    if not config_path.is_file():
        if config_path != CONFIG_PATH:
            raise FileNotFoundError(f"Config file {config_path} does not exist")
        logger.warning("No config file at %s; running on built-in defaults", config_path)
        return Config({})

    with config_path.open("rb") as fh:
        return Config(tomllib.load(fh))


config = load_config()
