"""Git provider webhook registration."""

import json

from .errors import ProvisioningError, WebhookRegistrationError
from .git import GitAccount
from .invoker import HttpInvoker
from .logger import get_logger
from .urls import path_join

logger = get_logger()

GITHUB_API_URL = "https://api.github.com"
GITHUB_WEB_URL = "https://github.com"
WEBHOOK_PATH = "/github-webhook/"


def webhook_endpoint(jenkins_url: str) -> str:
    """URL on Jenkins that receives push events."""
    return path_join(jenkins_url, WEBHOOK_PATH)


def hooks_url(api_url: str, owner: str, repo: str) -> str:
    return path_join(api_url, "repos", owner, repo, "hooks")


def webhook_payload(webhook_url: str, secret: str) -> dict:
    return {
        "name": "web",
        "active": True,
        "events": ["*"],
        "config": {
            "url": webhook_url,
            "insecure_ssl": "1",
            "content_type": "json",
            "secret": secret,
        },
    }


def register_webhook(
    invoker: HttpInvoker,
    account: GitAccount,
    webhook_url: str,
    owner: str,
    repo: str,
    secret: str,
    api_url: str = GITHUB_API_URL,
) -> None:
    """Register a webhook on owner/repo that posts all events to webhook_url.

    Existing hooks are not inspected; calling this twice creates two hooks
    (or a 422 from the provider, which is reported as an error).

    Raises:
        WebhookRegistrationError: the provider answered with a non-2xx status
            or could not be reached
        ConfigurationMissing: the account has neither token nor password
    """
    auth_header = account.mandatory_auth_header()
    create_url = hooks_url(api_url, owner, repo)
    try:
        response = invoker.invoke(
            create_url,
            method="POST",
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Authorization": auth_header,
            },
            body=json.dumps(webhook_payload(webhook_url, secret)),
        )
    except ProvisioningError as e:
        status = getattr(e, "status", None)
        reason = getattr(e, "reason", None) or str(e)
        logger.error("Failed to create the git web hook", url=create_url, status=status, reason=reason)
        raise WebhookRegistrationError(status, reason, create_url) from e
    logger.info(
        "Created git web hook",
        url=create_url,
        status=response.status_code,
        reason=response.reason,
    )
