"""Application settings using Pydantic Settings."""

import json
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from fxsync.core.exceptions import ConfigurationError

CERTIFICATE_FILENAME = "certificate.json"


class Settings(BaseSettings):
    """Settings loaded from ``FX_*`` environment variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="FX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # General
    log_level: str = "INFO"
    log_json: bool = False

    # Remote platform
    domain: str = ""
    certificate: str = ""
    request_timeout: float = 30.0
    tenant_id: str = ""
    commit_message: str = "fx-cli upload"

    # Project layout
    project_root: Path = Field(default_factory=Path.cwd)
    ledger_filename: str = "unchangeableJson.json"
    ledger_search_depth: int = 4

    @property
    def base_url(self) -> str:
        """Domain normalised to ``https://host`` without a trailing slash."""
        domain = self.domain.strip()
        if not domain:
            return ""
        if not domain.startswith(("http://", "https://")):
            domain = f"https://{domain}"
        return domain.rstrip("/")

    @property
    def is_authenticated(self) -> bool:
        return bool(self.domain and self.certificate)

    def require_auth(self) -> None:
        if not self.is_authenticated:
            raise ConfigurationError(
                "Missing domain or certificate; set FX_DOMAIN/FX_CERTIFICATE "
                f"or provide {CERTIFICATE_FILENAME} in the project root",
            )


def _read_certificate_file(project_root: Path) -> dict[str, str]:
    path = project_root / CERTIFICATE_FILENAME
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"Unreadable {CERTIFICATE_FILENAME}: {e}",
            details={"path": str(path)},
        ) from e
    if not data.get("domain") or not data.get("certificate"):
        return {}
    return {"domain": data["domain"], "certificate": data["certificate"]}


def load_settings(project_root: str | Path | None = None, **overrides) -> Settings:
    """Build a fresh ``Settings`` for *project_root*.

    ``certificate.json`` in the project root takes precedence over the
    environment for ``domain``/``certificate``; explicit *overrides* win over
    both.
    """
    root = Path(project_root) if project_root is not None else Path.cwd()
    values: dict = {"project_root": root}
    values.update(_read_certificate_file(root))
    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)
