"""Configuration management for the mail-to-task pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Sequence

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so BaseSettings can pick values up seamlessly.
load_dotenv()


def _split_list(value: str | Sequence[str] | None, coerce_lower: bool = True) -> list[str]:
    """Turn delimiter-separated env strings into cleaned lists."""
    if value is None:
        return []
    if isinstance(value, str):
        items = re.split(r"[;,]", value)
    else:
        items = list(value)
    cleaned: list[str] = []
    for item in items:
        trimmed = item.strip()
        if not trimmed:
            continue
        cleaned.append(trimmed.lower() if coerce_lower else trimmed)
    return cleaned


def parse_octal_mode(value: str | int) -> int:
    """Accept permission bits written as ``0600``, ``0o600`` or an int."""
    if isinstance(value, int):
        return value
    text = value.strip().lower()
    if not text.startswith("0"):
        raise ValueError(f"File mode must be octal and begin with '0' or '0o': {value!r}")
    return int(text, 8)


@dataclass(frozen=True)
class PipelineConfig:
    """Everything the document pipeline needs; no environment access below this."""

    attachments_dir: Path
    attachments_url: str
    file_mode: int = 0o600
    dir_mode: int = 0o700
    ocr_enabled: bool = False
    ocr_languages: str = "eng"


class Settings(BaseSettings):
    """App configuration derived from environment variables."""

    incoming_email: str = Field(..., alias="MAILTO_THINGS_INCOMING_EMAIL")
    outgoing_email: str = Field(..., alias="MAILTO_THINGS_OUTGOING_EMAIL")
    attachments_dir: Path = Field(..., alias="MAILTO_THINGS_ATTACHMENTS_DIR")
    attachments_dir_url: str = Field(..., alias="MAILTO_THINGS_ATTACHMENTS_DIR_URL")
    file_create_mode: int = Field(0o600, alias="MAILTO_THINGS_FILE_CREATE_MODE")
    dir_create_mode: int = Field(0o700, alias="MAILTO_THINGS_DIR_CREATE_MODE")
    ocr_enabled: bool = Field(False, alias="MAILTO_THINGS_OCR_ENABLED")
    ocr_languages: str = Field("eng", alias="MAILTO_THINGS_OCR_LANGUAGES")
    processed_db: Path = Field(Path("data/processed_messages.db"), alias="MAILTO_THINGS_PROCESSED_DB")

    graph_tenant_id: str | None = Field(None, alias="GRAPH_TENANT_ID")
    graph_client_id: str = Field(..., alias="GRAPH_CLIENT_ID")
    graph_client_secret: str | None = Field(None, alias="GRAPH_CLIENT_SECRET")
    graph_mailbox: str | None = Field(None, alias="GRAPH_MAILBOX")
    graph_auth_mode: Literal["client_credentials", "device_code"] = Field(
        "device_code", alias="GRAPH_AUTH_MODE"
    )
    graph_authority: str | None = Field(None, alias="GRAPH_AUTHORITY")
    graph_scopes_raw: str = Field("Mail.ReadWrite;Mail.Send", alias="GRAPH_SCOPES")
    graph_page_size: int = Field(25, alias="GRAPH_PAGE_SIZE")
    graph_mail_folder: str | None = Field("Inbox", alias="GRAPH_MAIL_FOLDER")
    graph_token_cache: Path = Field(Path("data/msal_token_cache.bin"), alias="GRAPH_TOKEN_CACHE")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _validate_authentication(self):
        if self.graph_auth_mode == "client_credentials":
            if not self.graph_client_secret:
                raise ValueError("GRAPH_CLIENT_SECRET is required for client_credentials mode.")
            if not self.graph_mailbox:
                raise ValueError("GRAPH_MAILBOX is required for client_credentials mode.")
            if not (self.graph_tenant_id or self.graph_authority):
                raise ValueError(
                    "GRAPH_TENANT_ID or GRAPH_AUTHORITY must be provided for client_credentials mode."
                )
        else:
            if self.graph_mailbox:
                raise ValueError(
                    "GRAPH_MAILBOX must be omitted for device_code mode; the signed-in mailbox is used."
                )
        return self

    @field_validator(
        "graph_tenant_id",
        "graph_client_secret",
        "graph_mailbox",
        "graph_authority",
        "graph_mail_folder",
        mode="before",
    )
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @field_validator("file_create_mode", "dir_create_mode", mode="before")
    @classmethod
    def _parse_mode(cls, value):
        return parse_octal_mode(value)

    @field_validator("attachments_dir_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value):
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value

    @field_validator("incoming_email", "outgoing_email", mode="before")
    @classmethod
    def _normalize_address(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    def pipeline_config(self) -> PipelineConfig:
        return PipelineConfig(
            attachments_dir=self.attachments_dir,
            attachments_url=self.attachments_dir_url,
            file_mode=self.file_create_mode,
            dir_mode=self.dir_create_mode,
            ocr_enabled=self.ocr_enabled,
            ocr_languages=self.ocr_languages,
        )

    @property
    def authority_url(self) -> str:
        if self.graph_authority:
            return self.graph_authority.rstrip("/")
        if self.graph_tenant_id:
            return f"https://login.microsoftonline.com/{self.graph_tenant_id}"
        return "https://login.microsoftonline.com/consumers"

    @property
    def graph_scopes(self) -> list[str]:
        """Scopes requested for delegated Graph auth."""
        scopes = _split_list(self.graph_scopes_raw, coerce_lower=False)
        return scopes or ["Mail.ReadWrite", "Mail.Send"]
