import argparse
from pathlib import Path

from . import __version__
from .builds import FAILED, trigger_if_idle
from .cluster import ClusterCommandError, KubectlCluster, NamespaceCache
from .config import Settings
from .descriptor import combine_job_pattern
from .env import load_env
from .git import GitAccount
from .invoker import HttpInvoker
from .logger import get_logger
from .orchestrator import ProvisioningOrchestrator, ProvisioningRequest

logger = get_logger()


def _split_repos(value: str) -> list:
    return [r.strip() for r in value.split(",") if r.strip()] if value else []


def _ci_auth_header(token: str) -> str:
    if not token:
        raise SystemExit("CI_TOKEN not set. Set env var or pass --ci-token.")
    return f"Bearer {token}"


def _ci_invoker(args: argparse.Namespace, settings: Settings) -> HttpInvoker:
    return HttpInvoker(timeout=settings.http_timeout, insecure=args.insecure or settings.insecure_tls)


def cmd_provision(args: argparse.Namespace, settings: Settings) -> None:
    repos = _split_repos(args.repos)
    if not repos:
        raise SystemExit("No repositories specified. Use --repos \"repo1,repo2\"")
    namespace = args.namespace or settings.discovery_namespace
    jenkins_url = args.jenkins_url or settings.jenkins_url
    if not jenkins_url and not namespace:
        raise SystemExit("JENKINS_URL not set. Set env var, pass --jenkins-url or --namespace.")
    username = args.git_user or settings.git_username
    if not username:
        raise SystemExit("GIT_USERNAME not set. Set env var or pass --git-user.")

    account = GitAccount(
        username=username,
        token=args.git_token or settings.git_token,
        password=settings.git_password,
    )

    request = ProvisioningRequest(
        jenkins_url=jenkins_url,
        ci_auth_header=_ci_auth_header(args.ci_token or settings.ci_token),
        account=account,
        repos=repos,
        owner=args.owner,
        webhook_secret=args.webhook_secret or "",
        git_api_url=settings.git_api_url,
        register_webhooks=not args.no_webhooks,
        trigger_build=not args.no_trigger,
        discovery_namespace=namespace,
        bot_service_account=settings.bot_service_account,
        build_namespace=args.build_namespace,
    )
    orchestrator = ProvisioningOrchestrator(
        ci_invoker=_ci_invoker(args, settings),
        git_invoker=HttpInvoker(timeout=settings.http_timeout),
        cluster=KubectlCluster() if namespace or args.build_namespace else None,
    )
    result = orchestrator.provision(request)
    for outcome in result.outcomes:
        print(f"[{'created' if outcome.created else 'updated'}] {request.git_owner}/{outcome.repo} trigger={outcome.trigger}")
    logger.log_metrics_summary()
    if not result.success:
        raise SystemExit(result.message)
    print(result.message)


def cmd_trigger(args: argparse.Namespace, settings: Settings) -> None:
    status = trigger_if_idle(
        _ci_invoker(args, settings),
        args.job_url,
        _ci_auth_header(args.ci_token or settings.ci_token),
    )
    print(f"Build: {status}")
    if status == FAILED:
        raise SystemExit(2)


def cmd_namespaces(args: argparse.Namespace, settings: Settings) -> None:
    cluster = KubectlCluster()
    cache = NamespaceCache()
    try:
        namespaces = cache.get_or_load(args.key, cluster.list_namespaces)
    except ClusterCommandError as e:
        raise SystemExit(f"kubectl failed: {e}") from e
    if not namespaces:
        print("No namespaces found.")
        return
    for name in namespaces:
        print(name)


def cmd_pattern(args: argparse.Namespace, settings: Settings) -> None:
    print(combine_job_pattern(args.old, args.repo))


def main(argv=None):
    # Load .env if present (JENKINS_URL, CI_TOKEN, GIT_TOKEN, etc.)
    load_env()
    try:
        settings = Settings.from_env()
    except ValueError as e:
        raise SystemExit(str(e))

    parser = argparse.ArgumentParser(prog="cibootstrap", description="Wire git repositories into Jenkins CI")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--insecure", action="store_true", help="Skip TLS verification for Jenkins calls (or set CI_INSECURE_TLS)")
    parser.add_argument("--ci-token", help="Jenkins bearer token (or set CI_TOKEN)")

    subparsers = parser.add_subparsers(dest="command")
    prv = subparsers.add_parser("provision", help="Create credential, organization job, webhooks and trigger builds")
    prv.add_argument("--repos", required=True, help="Comma-separated repository names")
    prv.add_argument("--owner", help="Git owner or organization (default: git user)")
    prv.add_argument("--jenkins-url", help="Jenkins base URL (or set JENKINS_URL)")
    prv.add_argument("--git-user", help="Git user name (or set GIT_USERNAME)")
    prv.add_argument("--git-token", help="Git API token (or set GIT_TOKEN)")
    prv.add_argument("--namespace", help="Namespace holding the jenkins service and bot service account token (or set DISCOVERY_NAMESPACE)")
    prv.add_argument("--build-namespace", help="Also apply an OpenShift BuildConfig per repository in this namespace")
    prv.add_argument("--webhook-secret", help="Use this webhook secret instead of the cluster bot token")
    prv.add_argument("--no-webhooks", action="store_true", help="Do not register git webhooks")
    prv.add_argument("--no-trigger", action="store_true", help="Do not trigger a build after import")
    prv.set_defaults(func=cmd_provision)

    trg = subparsers.add_parser("trigger", help="Trigger a Jenkins job unless it is already building")
    trg.add_argument("--job-url", required=True, help="URL of the Jenkins job")
    trg.set_defaults(func=cmd_trigger)

    nss = subparsers.add_parser("namespaces", help="List cluster namespaces visible to kubectl")
    nss.add_argument("--key", default="default", help="Cache key (user) for the namespace lookup")
    nss.set_defaults(func=cmd_namespaces)

    pat = subparsers.add_parser("pattern", help="Show the organization job pattern after adding a repository")
    pat.add_argument("--old", default="", help="Current pattern")
    pat.add_argument("--repo", required=True, help="Repository to add")
    pat.set_defaults(func=cmd_pattern)

    args = parser.parse_args(argv)

    try:
        logger.set_level(settings.log_level)
    except ValueError as e:
        raise SystemExit(str(e))
    if settings.log_dir:
        logger.add_file_handler(Path(settings.log_dir))

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args, settings)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
