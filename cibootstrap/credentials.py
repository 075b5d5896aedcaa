"""Jenkins credential used by the organization job to scan git."""

import json

import requests

from .invoker import HttpInvoker
from .logger import get_logger
from .urls import path_join

logger = get_logger()

CREDENTIAL_ID = "cd-github"
CREDENTIAL_DESCRIPTION = "cd-github"
CREDENTIAL_CLASS = "com.cloudbees.plugins.credentials.impl.UsernamePasswordCredentialsImpl"
CREDENTIALS_STORE_PATH = "/credentials/store/system/domain/_/"


def credential_payload(owner: str, token: str) -> dict:
    return {
        "": "0",
        "credentials": {
            "scope": "GLOBAL",
            "id": CREDENTIAL_ID,
            "username": owner,
            "password": token,
            "description": CREDENTIAL_DESCRIPTION,
            "$class": CREDENTIAL_CLASS,
        },
    }


def ensure_credential(
    invoker: HttpInvoker,
    jenkins_url: str,
    owner: str,
    token: str,
    auth_header: str,
) -> requests.Response:
    """Create the git credential on Jenkins.

    There is no existence check: Jenkins overwrites a credential posted
    with an id it already knows, so the call is repeated every batch.
    """
    create_url = path_join(jenkins_url, CREDENTIALS_STORE_PATH)
    logger.info("Creating Jenkins credentials for git user", owner=owner, url=create_url)
    return invoker.invoke(
        create_url,
        method="POST",
        headers={
            "Accept": "application/json",
            "Authorization": auth_header,
            "Content-Type": "application/x-www-form-urlencoded",
        },
        body={"json": json.dumps(credential_payload(owner, token))},
    )
