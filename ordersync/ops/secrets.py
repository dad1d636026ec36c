"""Credential helpers: env loading and masking for logs."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_SENSITIVE_KEY_TOKENS = (
    "secret",
    "token",
    "password",
    "credential",
    "api_key",
    "authorization",
)
_SENSITIVE_QUERY_KEYS = {"token", "access_token", "jwt"}
_CI_ENV_VARS = ("CI", "GITHUB_ACTIONS", "GITLAB_CI", "BUILDKITE", "CIRCLECI", "JENKINS_URL")


def is_ci_environment(env: Mapping[str, str] | None = None) -> bool:
    """Return whether current process is running in CI environment."""
    env_map = env if env is not None else os.environ
    for name in _CI_ENV_VARS:
        normalized = str(env_map.get(name, "")).strip().lower()
        if normalized not in {"", "0", "false", "no", "off"}:
            return True
    return False


def mask_secret(
    value: str | None,
    *,
    visible_prefix: int = 2,
    visible_suffix: int = 2,
    force_full_redaction: bool = False,
) -> str:
    """Mask a credential, keeping a short prefix and suffix outside CI."""
    if value is None:
        return "[MISSING]"
    text_value = str(value)
    if text_value == "":
        return "[EMPTY]"
    if force_full_redaction or is_ci_environment():
        return "[REDACTED]"

    prefix_length = max(int(visible_prefix), 0)
    suffix_length = max(int(visible_suffix), 0)
    if len(text_value) <= prefix_length + suffix_length:
        return "*" * len(text_value)
    hidden = len(text_value) - prefix_length - suffix_length
    return text_value[:prefix_length] + "*" * hidden + text_value[len(text_value) - suffix_length:]


def redact_url(url: str, *, force_full_redaction: bool = False) -> str:
    """Mask credential query parameters such as `?token=` in a URL."""
    parts = urlsplit(str(url))
    if not parts.query:
        return str(url)
    pairs = [
        (
            key,
            mask_secret(value, force_full_redaction=force_full_redaction)
            if key.lower() in _SENSITIVE_QUERY_KEYS
            else value,
        )
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(pairs, safe="*[]"), parts.fragment)
    )


@dataclass(slots=True, frozen=True)
class Credential:
    """Bearer token with a log-safe string form."""

    name: str
    raw_value: str
    source: str

    def reveal(self) -> str:
        return self.raw_value

    def masked(self, *, force_full_redaction: bool = False) -> str:
        return mask_secret(self.raw_value, force_full_redaction=force_full_redaction)

    def __str__(self) -> str:
        return self.masked()

    def __repr__(self) -> str:
        return (
            f"Credential(name={self.name!r}, source={self.source!r}, "
            f"value={self.masked(force_full_redaction=True)!r})"
        )


def read_secret_env(
    env_var: str,
    *,
    default: str | None = None,
    required: bool = False,
) -> str | None:
    """Read one secret from the environment; blank values count as missing."""
    env_name = str(env_var).strip()
    if not env_name:
        msg = "env_var cannot be blank."
        raise ValueError(msg)

    value = os.environ.get(env_name)
    if value is None or value == "":
        if required and default is None:
            msg = f"Missing required environment secret: {env_name}"
            raise KeyError(msg)
        return default
    return value


def load_credential(env_var: str, *, explicit_value: str | None = None) -> Credential:
    """Prefer an explicitly passed token, else read `env_var`."""
    if explicit_value:
        return Credential(name=env_var, raw_value=explicit_value, source="argument")
    value = read_secret_env(env_var, required=True)
    return Credential(name=env_var, raw_value=str(value), source="env")


def sanitize_logging_payload(
    fields: Mapping[str, Any],
    *,
    force_full_redaction: bool | None = None,
) -> dict[str, Any]:
    """Redact secret-like keys and URL tokens. CI defaults to full redaction."""
    full = is_ci_environment() if force_full_redaction is None else bool(force_full_redaction)
    return {str(key): _sanitize_value(str(key), value, full) for key, value in fields.items()}


def _sanitize_value(key_name: str, value: Any, force_full_redaction: bool) -> Any:
    if isinstance(value, Credential):
        return value.masked(force_full_redaction=force_full_redaction)
    if _looks_sensitive_key(key_name) and isinstance(value, str):
        return mask_secret(value, force_full_redaction=force_full_redaction)
    if isinstance(value, str) and "://" in value:
        return redact_url(value, force_full_redaction=force_full_redaction)
    if isinstance(value, Mapping):
        return {
            str(nested_key): _sanitize_value(str(nested_key), nested_value, force_full_redaction)
            for nested_key, nested_value in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_sanitize_value(key_name, item, force_full_redaction) for item in value)
    return value


def _looks_sensitive_key(key_name: str) -> bool:
    normalized = str(key_name).strip().lower()
    if not normalized:
        return False
    return any(token in normalized for token in _SENSITIVE_KEY_TOKENS)


__all__ = [
    "Credential",
    "is_ci_environment",
    "load_credential",
    "mask_secret",
    "read_secret_env",
    "redact_url",
    "sanitize_logging_payload",
]
