"""Unified settings for robyn-image-api."""

import tomllib
from pathlib import Path
from typing import ClassVar, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


def read_pyproject(pyproject_path: Path) -> dict:
    """Read pyproject.toml into a dict, empty when the file is not shipped."""
    if not pyproject_path.is_file():
        return {}
    with pyproject_path.open("rb") as file_handle:
        return tomllib.load(file_handle)


def get_version(base_dir: Path) -> str:
    """Get version from git tags or fallback to package metadata."""
    try:
        import git

        repo = git.Repo(base_dir, search_parent_directories=True)
        latest_tag = max(repo.tags, key=lambda t: t.commit.committed_datetime, default=None)
        return str(latest_tag) if latest_tag else "0.0.0"
    except Exception:
        try:
            import importlib.metadata

            return importlib.metadata.version("robyn-image-api")
        except Exception:
            return "0.0.0"


class Settings(BaseSettings):
    """Unified settings for robyn-image-api service."""

    DEBUG: bool = True
    ENVIRONMENT: Literal["DEV", "PROD"] = "DEV"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # ClassVar to prevent Pydantic from trying to load from env
    BASE_DIR: ClassVar[Path] = Path(__file__).parent.parent.parent
    PROJECT: ClassVar[dict] = read_pyproject(BASE_DIR / "pyproject.toml")
    API_NAME: ClassVar[str] = PROJECT.get("project", {}).get("name", "robyn-image-api")
    API_DESCRIPTION: ClassVar[str] = PROJECT.get("project", {}).get("description", "Image transformation API")
    API_VERSION: ClassVar[str] = get_version(BASE_DIR)

    # Server
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Workers
    MAX_WORKERS: int = 4

    # Uploads
    MAX_FILE_SIZE: int = 10 * 1024 * 1024
    MAX_FILES: int = 5
    # Decoded width * height; larger images are rejected before any pixel work
    MAX_PIXELS: int = 4000 * 4000
    ALLOWED_CONTENT_TYPES: frozenset[str] = frozenset(
        {"image/jpeg", "image/png", "image/gif", "image/webp", "image/avif", "image/bmp"}
    )
    IMAGE_FIELD: str = "image"
    OPTIONS_FIELD: str = "options"

    # Output
    DEFAULT_FORMAT: Literal["jpeg", "png", "webp"] = "png"
    DEFAULT_QUALITY: int = 80

    @property
    def api_url(self) -> str:
        return f"http://{self.API_HOST}:{self.API_PORT}"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()  # type: ignore
