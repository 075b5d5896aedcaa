"""
Pytest configuration and shared fixtures.

HTTP is faked at the requests.Session seam: HttpInvoker gets a
session_factory that hands out FakeSession objects backed by a
FakeServer holding scripted replies per (method, url).
"""

import pytest
import requests
from requests.structures import CaseInsensitiveDict
from typing import Dict, List, Optional

from cibootstrap.git import GitAccount
from cibootstrap.invoker import HttpInvoker

JENKINS_URL = "https://jenkins.example.com"


def make_response(
    status: int,
    body: str = "",
    headers: Optional[Dict[str, str]] = None,
    reason: Optional[str] = None,
    url: str = "",
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.reason = reason if reason is not None else {
        200: "OK", 201: "Created", 302: "Found", 404: "Not Found", 422: "Unprocessable Entity",
    }.get(status, "")
    response.headers = CaseInsensitiveDict(headers or {})
    response._content = body.encode("utf-8")
    response.encoding = "utf-8"
    response.url = url
    return response


class FakeSession:
    def __init__(self, server: "FakeServer"):
        self.server = server
        self.verify = True
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True
        return False

    def request(self, method, url, **kwargs):
        return self.server.handle(self, method, url, **kwargs)


class FakeServer:
    """Scripted replies; the last reply for a route repeats. Unrouted URLs get 404."""

    def __init__(self):
        self.routes: Dict[tuple, list] = {}
        self.calls: List[dict] = []
        self.sessions: List[FakeSession] = []

    def route(self, method: str, url: str, *replies):
        self.routes.setdefault((method.upper(), url), []).extend(replies)

    def session(self) -> FakeSession:
        s = FakeSession(self)
        self.sessions.append(s)
        return s

    def invoker(self, **kwargs) -> HttpInvoker:
        return HttpInvoker(session_factory=self.session, **kwargs)

    def handle(self, session, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, "verify": session.verify, **kwargs})
        replies = self.routes.get((method.upper(), url))
        if not replies:
            return make_response(404, url=url)
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def called(self, method: str, url: str) -> List[dict]:
        return [c for c in self.calls if c["method"] == method.upper() and c["url"] == url]


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def account() -> GitAccount:
    return GitAccount(username="acme", token="ghp_test")


@pytest.fixture
def existing_descriptor() -> str:
    """Organization job config.xml already holding one repository."""
    return """<?xml version="1.0" encoding="UTF-8"?>
<jenkins.branch.OrganizationFolder plugin="branch-api@2.0.8">
  <description>existing</description>
  <navigators>
    <org.jenkinsci.plugins.github__branch__source.GitHubSCMNavigator plugin="github-branch-source@2.0.5">
      <repoOwner>acme</repoOwner>
      <scanCredentialsId>cd-github</scanCredentialsId>
      <pattern>widgets</pattern>
    </org.jenkinsci.plugins.github__branch__source.GitHubSCMNavigator>
  </navigators>
</jenkins.branch.OrganizationFolder>
"""


@pytest.fixture
def descriptor_without_navigator() -> str:
    return """<?xml version="1.0" encoding="UTF-8"?>
<flow-definition plugin="workflow-job@2.10">
  <description>plain pipeline job</description>
</flow-definition>
"""
