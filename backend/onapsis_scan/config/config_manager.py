from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import find_dotenv, load_dotenv

from ..scanner.errors import ConfigurationError

DEFAULT_LANGUAGE = "ui5"
DEFAULT_REQUEST_TIMEOUT = 60.0

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class StepConfig:
    """Resolved settings for one run of the scan step."""

    scan_service_url: str
    access_token: str = ""
    language: str = DEFAULT_LANGUAGE
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    verify_tls: bool = True
    scan_name: Optional[str] = None
    scan_description: Optional[str] = None
    verbose: bool = False

    def __repr__(self) -> str:
        # Never echo the token into logs or tracebacks.
        return (
            f"StepConfig(scan_service_url={self.scan_service_url!r}, language={self.language!r}, "
            f"request_timeout={self.request_timeout!r}, verify_tls={self.verify_tls!r})"
        )


def parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def parse_timeout(value: Any, name: str = "request timeout") -> float:
    try:
        timeout = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number of seconds, got {value!r}") from exc
    if timeout <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value!r}")
    return timeout


def load_step_config(
    overrides: Optional[Mapping[str, Any]] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[Path | str] = None,
) -> StepConfig:
    """
    Resolve the step configuration.

    Values given in ``overrides`` (usually parsed CLI flags, ``None`` meaning
    "not given") win over the environment, which wins over a ``.env`` file,
    which wins over the defaults.

    Args:
        overrides: Explicit values keyed by ``StepConfig`` field name.
        environ: Environment mapping; defaults to ``os.environ`` after
            loading ``.env``.
        dotenv_path: Optional explicit path of the ``.env`` file.

    Raises:
        ConfigurationError: If a required option is missing or a value is invalid.
    """
    if environ is None:
        # The step runs inside the workspace, so .env is searched from there.
        load_dotenv(dotenv_path=dotenv_path or find_dotenv(usecwd=True), override=False)
        environ = os.environ
    overrides = {key: value for key, value in (overrides or {}).items() if value is not None}

    def _pick(field_name: str, env_name: str, default: Any = None) -> Any:
        if field_name in overrides:
            return overrides[field_name]
        value = environ.get(env_name)
        if value is None or value == "":
            return default
        return value

    url = _pick("scan_service_url", "SCAN_SERVICE_URL")
    if not url:
        raise ConfigurationError("scan service URL is required (--scan-service-url or SCAN_SERVICE_URL)")
    token = _pick("access_token", "SCAN_ACCESS_TOKEN")
    if not token:
        raise ConfigurationError("access token is required (--access-token or SCAN_ACCESS_TOKEN)")

    return StepConfig(
        scan_service_url=str(url),
        access_token=str(token),
        language=str(_pick("language", "SCAN_LANGUAGE", DEFAULT_LANGUAGE)),
        request_timeout=parse_timeout(_pick("request_timeout", "SCAN_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)),
        verify_tls=parse_bool(_pick("verify_tls", "SCAN_VERIFY_TLS", True), "SCAN_VERIFY_TLS"),
        scan_name=_pick("scan_name", "SCAN_NAME"),
        scan_description=_pick("scan_description", "SCAN_DESCRIPTION"),
        verbose=parse_bool(_pick("verbose", "SCAN_VERBOSE", False), "SCAN_VERBOSE"),
    )
