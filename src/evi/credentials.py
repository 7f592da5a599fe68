from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from config.settings import Settings, get_settings
from evi.errors import InitError


@dataclass(frozen=True)
class Credentials:
    api_key: str
    config_id: str | None = None

    def __repr__(self) -> str:
        return f"Credentials(api_key='{mask_secret(self.api_key)}', config_id={self.config_id!r})"


def resolve_credentials(settings: Settings | None = None) -> Credentials:
    settings = settings or get_settings()
    if not settings.hume_api_key:
        raise InitError("HUME_API_KEY is not configured")

    return Credentials(api_key=settings.hume_api_key, config_id=settings.hume_config_id)


def build_chat_url(endpoint: str, credentials: Credentials, *, verbose_transcription: bool = True) -> str:
    params = {"api_key": credentials.api_key}
    if credentials.config_id:
        params["config_id"] = credentials.config_id
    if verbose_transcription:
        params["verbose_transcription"] = "true"

    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{urlencode(params)}"


def redact_url(url: str) -> str:
    """Return ``url`` with the ``api_key`` query parameter masked for logging."""

    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [(key, "***" if key == "api_key" else value) for key, value in parse_qsl(parts.query, keep_blank_values=True)]
    return urlunsplit(parts._replace(query=urlencode(query, safe="*")))


def mask_secret(value: str | None, *, visible: int = 4) -> str:
    if not value:
        return "Not set"
    return value[:visible] + "..."
