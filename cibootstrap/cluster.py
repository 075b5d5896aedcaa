"""
Cluster collaborator: secrets, namespaces, services and BuildConfigs
through kubectl.

The bot secret shared with webhook deliveries is a service account token
found by naming convention. BuildConfigs carry the jenkins-sync
annotations so the sync plugin adopts them instead of creating duplicates.
"""

import base64
import binascii
import json
import subprocess
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from .errors import ProvisioningError, ServiceUrlNotFound
from .logger import get_logger

logger = get_logger()

DEFAULT_BOT_SERVICE_ACCOUNT = "cd-bot"
# Webhook secret used when no bot token is found.
DEFAULT_BOT_SECRET = "secret101"

JENKINS_SERVICE = "jenkins"
EXPOSE_URL_ANNOTATION = "fabric8.io/exposeUrl"

CommandRunner = Callable[..., subprocess.CompletedProcess]


class ClusterCommandError(ProvisioningError):
    def __init__(self, command: List[str], returncode: int, stderr: str):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip()
        if len(detail) > 400:
            detail = f"{detail[:397]}..."
        super().__init__(f"Command {' '.join(command)!r} failed (returncode={returncode}): {detail}")


def default_runner(command: List[str], input: Optional[str] = None) -> subprocess.CompletedProcess:
    return subprocess.run(command, input=input, capture_output=True, text=True, check=False)


class KubectlCluster:
    """Reads namespaces and secrets with kubectl."""

    def __init__(self, runner: Optional[CommandRunner] = None):
        self._runner = runner or default_runner

    def _get_json(self, command: List[str]) -> dict:
        completed = self._runner(command)
        if completed.returncode != 0:
            raise ClusterCommandError(command, completed.returncode, completed.stderr or "")
        return json.loads(completed.stdout or "{}")

    def list_secrets(self, namespace: str) -> List[dict]:
        """Secrets as [{"name": ..., "data": {...}}]."""
        payload = self._get_json(["kubectl", "get", "secrets", "-n", namespace, "-o", "json"])
        return [
            {
                "name": item.get("metadata", {}).get("name", ""),
                "data": item.get("data") or {},
            }
            for item in payload.get("items", [])
        ]

    def list_namespaces(self) -> List[str]:
        payload = self._get_json(["kubectl", "get", "namespaces", "-o", "json"])
        names = {item.get("metadata", {}).get("name", "") for item in payload.get("items", [])}
        return sorted(n for n in names if n.strip())

    def service_url(self, service: str, namespace: str, scheme: str = "https") -> str:
        """External URL of a service: its route host, else the expose annotation."""
        try:
            route = self._get_json(["kubectl", "get", "route", service, "-n", namespace, "-o", "json"])
        except ClusterCommandError as e:
            logger.debug("No route for service", service=service, namespace=namespace, error=str(e))
            route = {}
        host = (route.get("spec") or {}).get("host")
        if host:
            return f"{scheme}://{host}"

        payload = self._get_json(["kubectl", "get", "service", service, "-n", namespace, "-o", "json"])
        annotations = (payload.get("metadata") or {}).get("annotations") or {}
        url = annotations.get(EXPOSE_URL_ANNOTATION)
        if not url:
            raise ServiceUrlNotFound(service, namespace)
        return url

    def apply(self, manifest: dict) -> None:
        """kubectl apply the manifest in its own namespace."""
        namespace = manifest["metadata"]["namespace"]
        command = ["kubectl", "apply", "-n", namespace, "-f", "-"]
        completed = self._runner(command, input=json.dumps(manifest))
        if completed.returncode != 0:
            raise ClusterCommandError(command, completed.returncode, completed.stderr or "")
        logger.info(
            "Applied cluster resource",
            kind=manifest.get("kind"),
            name=manifest["metadata"].get("name"),
            namespace=namespace,
        )


def find_bot_secret(secrets: Iterable[dict], service_account: str) -> Optional[str]:
    """Decoded token of the first "<service_account>-token-*" secret."""
    prefix = f"{service_account}-token-"
    for secret in secrets:
        if not secret.get("name", "").startswith(prefix):
            continue
        token = (secret.get("data") or {}).get("token")
        if token is None:
            continue
        try:
            return base64.b64decode(token).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            logger.warning("Ignoring undecodable bot token", secret=secret.get("name"), error=str(e))
    return None


def resolve_bot_secret(
    list_secrets: Callable[[str], List[dict]],
    namespace: str,
    service_account: str = DEFAULT_BOT_SERVICE_ACCOUNT,
    default: str = DEFAULT_BOT_SECRET,
) -> str:
    """Bot secret from the cluster, or the default when none is found."""
    secret = find_bot_secret(list_secrets(namespace), service_account)
    if not secret:
        logger.warning(
            "No bot token found, falling back to default webhook secret",
            namespace=namespace,
            service_account=service_account,
        )
        return default
    return secret


@dataclass
class NamespaceCache:
    """Namespaces per user key, owned by whoever builds the run."""

    entries: Dict[str, List[str]] = field(default_factory=dict)

    def get_or_load(self, key: str, loader: Callable[[], List[str]]) -> List[str]:
        if key not in self.entries:
            logger.info("Loading namespaces", key=key)
            self.entries[key] = list(loader())
        return self.entries[key]

    def invalidate(self, key: str) -> None:
        self.entries.pop(key, None)


def jenkins_sync_annotations(owner: str, repo: str, branch: str = "master") -> Dict[str, str]:
    """Annotations that make a BuildConfig look like jenkins-sync created it."""
    return {
        "jenkins.openshift.org/generated-by": "jenkins",
        "jenkins.openshift.org/job-path": f"{owner}/{repo}/{branch}",
    }


def build_config_manifest(name: str, namespace: str, git_url: str, annotations: Dict[str, str]) -> dict:
    """Pipeline BuildConfig building git_url from its Jenkinsfile."""
    return {
        "apiVersion": "build.openshift.io/v1",
        "kind": "BuildConfig",
        "metadata": {
            "name": name.lower(),
            "namespace": namespace,
            "annotations": dict(annotations),
        },
        "spec": {
            "source": {"type": "Git", "git": {"uri": git_url}},
            "strategy": {
                "type": "JenkinsPipeline",
                "jenkinsPipelineStrategy": {"jenkinsfilePath": "Jenkinsfile"},
            },
        },
    }
