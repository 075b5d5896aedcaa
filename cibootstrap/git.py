import base64
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationMissing


@dataclass
class GitAccount:
    """Credentials of the user the webhooks and CI credential act for."""

    username: str
    token: Optional[str] = None
    password: Optional[str] = None

    def token_or_password(self) -> Optional[str]:
        return self.token or self.password

    def auth_header(self) -> Optional[str]:
        if self.token:
            return f"Bearer {self.token}"
        if self.username and self.password:
            raw = f"{self.username}:{self.password}".encode("utf-8")
            return "Basic " + base64.b64encode(raw).decode("ascii")
        return None

    def mandatory_auth_header(self) -> str:
        header = self.auth_header()
        if header is None:
            raise ConfigurationMissing("git token or password")
        return header
