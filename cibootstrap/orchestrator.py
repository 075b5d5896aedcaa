"""
Provisioning orchestrator.

Runs one batch (one owner, N repositories) through:

    start -> [build config x N] -> credential -> (descriptor -> webhook -> trigger) x N -> done

The credential is created once, before the first descriptor. Repositories
are processed in input order; the first failure in the build config,
credential, descriptor or webhook stage ends the batch. Build triggering
never fails a batch. Nothing that was created is rolled back.

With a cluster collaborator and a discovery namespace, a missing Jenkins
URL is read from the jenkins service and a missing webhook secret from the
bot service account token. Without them the webhook secret falls back to
the default.
"""

from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional

from bs4 import BeautifulSoup

from . import builds
from .cluster import (
    DEFAULT_BOT_SECRET,
    DEFAULT_BOT_SERVICE_ACCOUNT,
    JENKINS_SERVICE,
    build_config_manifest,
    jenkins_sync_annotations,
    resolve_bot_secret,
)
from .credentials import ensure_credential
from .descriptor import ensure_descriptor, load_template, render_descriptor
from .errors import ConfigurationMissing, ProvisioningError
from .git import GitAccount
from .invoker import HttpInvoker
from .logger import get_logger
from .schema import first_missing_attribute, validate_request
from .urls import config_xml_url, create_item_url, git_clone_url, job_url
from .webhooks import GITHUB_API_URL, GITHUB_WEB_URL, register_webhook, webhook_endpoint

logger = get_logger()

STAGE_START = "start"
STAGE_BUILD_CONFIG = "build-config"
STAGE_CREDENTIAL = "credential"
STAGE_DESCRIPTOR = "descriptor"
STAGE_WEBHOOK = "webhook"
STAGE_TRIGGER = "trigger"
STAGE_DONE = "done"


@dataclass
class ProvisioningRequest:
    jenkins_url: Optional[str]
    ci_auth_header: str
    account: GitAccount
    repos: List[str]
    owner: Optional[str] = None
    webhook_secret: str = ""
    git_api_url: str = GITHUB_API_URL
    git_web_url: str = GITHUB_WEB_URL
    register_webhooks: bool = True
    trigger_build: bool = True
    discovery_namespace: Optional[str] = None
    bot_service_account: str = DEFAULT_BOT_SERVICE_ACCOUNT
    build_namespace: Optional[str] = None

    @property
    def git_owner(self) -> Optional[str]:
        """Explicit owner, else the account's own user name."""
        return self.owner or (self.account.username if self.account else None)


@dataclass
class RepoOutcome:
    repo: str
    created: bool = False
    webhook: bool = False
    trigger: Optional[str] = None


@dataclass
class BatchResult:
    success: bool
    provisioned: int = 0
    error: Optional[ProvisioningError] = None
    failed_stage: Optional[str] = None
    failed_repo: Optional[str] = None
    outcomes: List[RepoOutcome] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.success:
            return f"Provisioned CI for {self.provisioned} repositories"
        where = self.failed_stage or STAGE_START
        if self.failed_repo:
            where = f"{where} of {self.failed_repo}"
        return (
            f"Failed at {where} after {self.provisioned} repositories were provisioned: {self.error}"
        )


class ProvisioningOrchestrator:
    """Sequences credential, descriptor, webhook and trigger per repository.

    ci_invoker talks to Jenkins (often with insecure=True on test clusters),
    git_invoker talks to the git provider API. cluster is optional and
    provides list_secrets, service_url and apply (see KubectlCluster).
    """

    def __init__(
        self,
        ci_invoker: HttpInvoker,
        git_invoker: Optional[HttpInvoker] = None,
        template_loader: Callable[[], BeautifulSoup] = load_template,
        cluster=None,
    ):
        self.ci_invoker = ci_invoker
        self.git_invoker = git_invoker or HttpInvoker()
        self.template_loader = template_loader
        self.cluster = cluster

    def provision(self, request: ProvisioningRequest) -> BatchResult:
        try:
            request = self._resolve_cluster_settings(request)
        except ProvisioningError as e:
            logger.error("Could not read provisioning settings from the cluster", error=str(e))
            return BatchResult(success=False, error=e, failed_stage=STAGE_START)

        owner = request.git_owner
        errors = validate_request({
            "jenkins_url": request.jenkins_url,
            "owner": owner,
            "ci_auth_header": request.ci_auth_header,
            "repos": request.repos,
        })
        if request.account is None:
            errors.insert(0, "Missing required field: account")
        if request.build_namespace and self.cluster is None:
            errors.append("Missing required field: cluster")
        if errors:
            logger.error("Invalid provisioning request", errors=errors)
            return BatchResult(
                success=False,
                error=ConfigurationMissing(first_missing_attribute(errors)),
                failed_stage=STAGE_START,
            )

        result = BatchResult(success=True)
        logger.info("Starting provisioning batch", owner=owner, repos=request.repos)

        if request.build_namespace:
            for repo in request.repos:
                if not self._run_stage(result, STAGE_BUILD_CONFIG, repo,
                                       lambda: self._apply_build_config(request, owner, repo)):
                    return result

        if not self._run_stage(result, STAGE_CREDENTIAL, None, lambda: ensure_credential(
            self.ci_invoker,
            request.jenkins_url,
            owner,
            request.account.token_or_password() or "",
            request.ci_auth_header,
        )):
            return result

        for repo in request.repos:
            outcome = RepoOutcome(repo=repo)
            result.outcomes.append(outcome)

            if not self._run_stage(result, STAGE_DESCRIPTOR, repo,
                                   lambda: self._apply_descriptor(request, owner, repo, outcome)):
                return result

            if request.register_webhooks:
                if not self._run_stage(result, STAGE_WEBHOOK, repo, lambda: register_webhook(
                    self.git_invoker,
                    request.account,
                    webhook_endpoint(request.jenkins_url),
                    owner,
                    repo,
                    request.webhook_secret,
                    api_url=request.git_api_url,
                )):
                    return result
                outcome.webhook = True

            if request.trigger_build:
                outcome.trigger = self._trigger(request, owner)

            result.provisioned += 1

        logger.info("Provisioning batch complete", owner=owner, provisioned=result.provisioned)
        return result

    def _run_stage(self, result: BatchResult, stage: str, repo: Optional[str], step: Callable) -> bool:
        """Run a batch-fatal step; record the failure on result and return False if it raises."""
        logger.record_step_attempt(stage)
        try:
            step()
        except ProvisioningError as e:
            logger.record_step_failure(stage, type(e).__name__)
            logger.error(f"Provisioning failed at {stage}", repo=repo, error=str(e))
            result.success = False
            result.error = e
            result.failed_stage = stage
            result.failed_repo = repo
            return False
        logger.record_step_success(stage)
        return True

    def _resolve_cluster_settings(self, request: ProvisioningRequest) -> ProvisioningRequest:
        """Fill in the Jenkins URL and webhook secret the caller left out."""
        namespace = request.discovery_namespace
        use_cluster = self.cluster is not None and bool(namespace)

        if not request.jenkins_url and use_cluster:
            jenkins_url = self.cluster.service_url(JENKINS_SERVICE, namespace)
            logger.info("Found Jenkins URL in cluster", namespace=namespace, url=jenkins_url)
            request = replace(request, jenkins_url=jenkins_url)

        if request.register_webhooks and not request.webhook_secret:
            if use_cluster:
                secret = resolve_bot_secret(
                    self.cluster.list_secrets,
                    namespace,
                    service_account=request.bot_service_account,
                )
            else:
                logger.warning("No discovery namespace given, using default webhook secret")
                secret = DEFAULT_BOT_SECRET
            request = replace(request, webhook_secret=secret)
        return request

    def _apply_build_config(self, request: ProvisioningRequest, owner: str, repo: str):
        manifest = build_config_manifest(
            repo,
            request.build_namespace,
            git_clone_url(request.git_web_url, owner, repo),
            jenkins_sync_annotations(owner, repo),
        )
        self.cluster.apply(manifest)

    def _apply_descriptor(self, request: ProvisioningRequest, owner: str, repo: str, outcome: RepoOutcome):
        job = job_url(request.jenkins_url, owner)
        get_url = config_xml_url(job)
        headers = {"Authorization": request.ci_auth_header}

        def fetch_existing() -> bytes:
            return self.ci_invoker.invoke(get_url, headers={**headers, "Accept": "text/xml"}).content

        document, created = ensure_descriptor(fetch_existing, self.template_loader, owner, repo)
        outcome.created = created

        if created:
            target = create_item_url(request.jenkins_url, owner)
            logger.info("Creating organization job", url=target)
        else:
            target = get_url
            logger.info("Updating organization job", url=target)
        return self.ci_invoker.invoke(
            target,
            method="POST",
            headers={**headers, "Content-Type": "text/xml"},
            body=render_descriptor(document),
        )

    def _trigger(self, request: ProvisioningRequest, owner: str) -> str:
        logger.record_step_attempt(STAGE_TRIGGER)
        status = builds.trigger_if_idle(self.ci_invoker, job_url(request.jenkins_url, owner), request.ci_auth_header)
        if status == builds.FAILED:
            logger.record_step_failure(STAGE_TRIGGER, "TriggerFailed")
        else:
            logger.record_step_success(STAGE_TRIGGER)
        return status


def provision(
    request: ProvisioningRequest,
    ci_invoker: HttpInvoker,
    git_invoker: Optional[HttpInvoker] = None,
    template_loader: Callable[[], BeautifulSoup] = load_template,
    cluster=None,
) -> BatchResult:
    """Run one batch with explicit collaborators."""
    return ProvisioningOrchestrator(ci_invoker, git_invoker, template_loader, cluster).provision(request)
