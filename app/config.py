import logging
import os
import sys
from functools import lru_cache
from typing import List

from pydantic import BaseModel, Field
from pythonjsonlogger import jsonlogger


# Link-unfurling crawlers of chat/social apps
DEFAULT_SOCIAL_BOTS = [
    "facebookexternalhit",
    "WhatsApp",
    "Twitterbot",
    "LinkedInBot",
    "Slackbot",
    "TelegramBot",
    "Discordbot",
    "SkypeUriPreview",
    "Pinterestbot",
]

# General web crawlers
DEFAULT_SEARCH_BOTS = [
    "Googlebot",
    "Google-InspectionTool",
    "bingbot",
    "DuckDuckBot",
    "YandexBot",
    "Baiduspider",
    "Applebot",
    "Slurp",
]


def _split_env(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    """Runtime configuration, read from the environment (.env supported)."""
    database_url: str = "sqlite:///./jveloce.db"
    site_name: str = "Autos JVeloce"
    site_city: str = "Jaén"
    site_url: str = "https://autosjveloce.com"
    detail_path: str = "/Coches/detalle.html"
    shell_origin: str = "https://jveloce-cf602.web.app"
    shell_path: str = "/Coches/detalle-app.html"
    shell_timeout: float = 8.0
    shell_cache_seconds: float = 0.0
    image_proxy_url: str = "https://wsrv.nl/"
    fallback_image_url: str = "https://autosjveloce.com/assets/logo%20con%20fondo.png"
    favicon_url: str = "https://autosjveloce.com/assets/icons/favicon.png"
    meta_marker: str = "<!-- SEO_META -->"
    storage_url: str = "https://storage.example.com/upload"
    storage_public_url: str = "https://storage.example.com/files"
    storage_token: str = ""
    social_bot_signatures: List[str] = Field(default_factory=lambda: list(DEFAULT_SOCIAL_BOTS))
    search_bot_signatures: List[str] = Field(default_factory=lambda: list(DEFAULT_SEARCH_BOTS))
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            site_name=os.getenv("SITE_NAME", defaults.site_name),
            site_city=os.getenv("SITE_CITY", defaults.site_city),
            site_url=os.getenv("SITE_URL", defaults.site_url).rstrip("/"),
            detail_path=os.getenv("DETAIL_PATH", defaults.detail_path),
            shell_origin=os.getenv("SHELL_ORIGIN", defaults.shell_origin).rstrip("/"),
            shell_path=os.getenv("SHELL_PATH", defaults.shell_path),
            shell_timeout=float(os.getenv("SHELL_TIMEOUT", defaults.shell_timeout)),
            shell_cache_seconds=float(os.getenv("SHELL_CACHE_SECONDS", defaults.shell_cache_seconds)),
            image_proxy_url=os.getenv("IMAGE_PROXY_URL", defaults.image_proxy_url),
            fallback_image_url=os.getenv("FALLBACK_IMAGE_URL", defaults.fallback_image_url),
            favicon_url=os.getenv("FAVICON_URL", defaults.favicon_url),
            meta_marker=os.getenv("META_MARKER", defaults.meta_marker),
            storage_url=os.getenv("STORAGE_URL", defaults.storage_url),
            storage_public_url=os.getenv("STORAGE_PUBLIC_URL", defaults.storage_public_url).rstrip("/"),
            storage_token=os.getenv("STORAGE_TOKEN", defaults.storage_token),
            social_bot_signatures=_split_env("SOCIAL_BOT_SIGNATURES", DEFAULT_SOCIAL_BOTS),
            search_bot_signatures=_split_env("SEARCH_BOT_SIGNATURES", DEFAULT_SEARCH_BOTS),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


def setup_logging(level: str = "INFO") -> None:
    """
    Configures JSON logging on stdout for the whole process.
    Transport and SQL layers are kept at WARNING to avoid noise.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Avoid duplicate lines when called twice (reload, tests)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    log_handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    log_handler.setFormatter(formatter)
    root_logger.addHandler(log_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    root_logger.info("Logging configured", extra={"level": level})
