"""Best-effort build triggering for a Jenkins job."""

from typing import Optional

from .errors import ProvisioningError
from .invoker import HttpInvoker
from .logger import get_logger
from .urls import path_join

logger = get_logger()

TRIGGERED = "triggered"
SKIPPED = "skipped"
FAILED = "failed"


def last_build_status(invoker: HttpInvoker, job_url: str, auth_header: str) -> Optional[dict]:
    """Parsed lastBuild JSON, or None if it could not be fetched or read."""
    url = path_join(job_url, "lastBuild/api/json")
    try:
        response = invoker.invoke(url, headers={"Authorization": auth_header, "Accept": "application/json"})
        data = response.json()
    except ProvisioningError as e:
        logger.debug("Could not load last build", url=url, error=str(e))
        return None
    except ValueError as e:
        logger.warning("Failed to parse last build JSON", url=url, error=str(e))
        return None
    return data if isinstance(data, dict) else None


def trigger_if_idle(invoker: HttpInvoker, job_url: str, auth_header: str) -> str:
    """Trigger a build unless the last one is still running.

    Returns TRIGGERED, SKIPPED or FAILED. Failures are logged, not raised.
    """
    status = last_build_status(invoker, job_url, auth_header)
    building = status.get("building") if status else None
    if building is True:
        logger.info("Build is already running, not triggering another one", job_url=job_url)
        return SKIPPED

    trigger_url = path_join(job_url, "build?delay=0")
    logger.info("Triggering Jenkins build", url=trigger_url, building=building)
    try:
        invoker.invoke(trigger_url, method="POST", headers={"Authorization": auth_header})
    except ProvisioningError as e:
        logger.warning("Failed to trigger job", url=trigger_url, error=str(e))
        return FAILED
    return TRIGGERED
