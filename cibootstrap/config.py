"""
Runtime settings read from the environment.

Command line flags take precedence; see app.py.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .cluster import DEFAULT_BOT_SERVICE_ACCOUNT
from .webhooks import GITHUB_API_URL

TRUE_VALUES = {"1", "true", "yes", "on"}


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in TRUE_VALUES


@dataclass
class Settings:
    jenkins_url: Optional[str] = None
    ci_token: Optional[str] = None
    git_username: Optional[str] = None
    git_token: Optional[str] = None
    git_password: Optional[str] = None
    git_api_url: str = GITHUB_API_URL
    insecure_tls: bool = False
    http_timeout: float = 30.0
    bot_service_account: str = DEFAULT_BOT_SERVICE_ACCOUNT
    discovery_namespace: Optional[str] = None
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        timeout = env.get("HTTP_TIMEOUT")
        try:
            http_timeout = float(timeout) if timeout else 30.0
        except ValueError:
            raise ValueError(f"HTTP_TIMEOUT must be a number of seconds, got {timeout!r}") from None
        return cls(
            jenkins_url=env.get("JENKINS_URL"),
            ci_token=env.get("CI_TOKEN"),
            git_username=env.get("GIT_USERNAME"),
            git_token=env.get("GIT_TOKEN"),
            git_password=env.get("GIT_PASSWORD"),
            git_api_url=env.get("GIT_API_URL") or GITHUB_API_URL,
            insecure_tls=_flag(env.get("CI_INSECURE_TLS")),
            http_timeout=http_timeout,
            bot_service_account=env.get("BOT_SERVICE_ACCOUNT") or DEFAULT_BOT_SERVICE_ACCOUNT,
            discovery_namespace=env.get("DISCOVERY_NAMESPACE"),
            log_level=env.get("LOG_LEVEL") or "INFO",
            log_dir=env.get("LOG_DIR"),
        )
