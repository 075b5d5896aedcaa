"""
Tests for the command line entry point.
"""

import pytest

from cibootstrap import __version__, app
from cibootstrap.orchestrator import BatchResult, RepoOutcome
from cibootstrap.errors import WebhookRegistrationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ["JENKINS_URL", "CI_TOKEN", "GIT_USERNAME", "GIT_TOKEN", "GIT_PASSWORD",
                 "DISCOVERY_NAMESPACE", "LOG_DIR", "CI_INSECURE_TLS", "LOG_LEVEL", "HTTP_TIMEOUT"]:
        monkeypatch.delenv(name, raising=False)


class FakeOrchestrator:
    requests = []
    result = BatchResult(success=True, provisioned=1, outcomes=[RepoOutcome(repo="widgets", created=True)])

    def __init__(self, ci_invoker, git_invoker, cluster=None):
        self.ci_invoker = ci_invoker
        self.git_invoker = git_invoker
        self.cluster = cluster

    def provision(self, request):
        FakeOrchestrator.requests.append((self, request))
        return FakeOrchestrator.result


@pytest.fixture
def fake_orchestrator(monkeypatch):
    FakeOrchestrator.requests = []
    FakeOrchestrator.result = BatchResult(
        success=True, provisioned=1, outcomes=[RepoOutcome(repo="widgets", created=True)]
    )
    monkeypatch.setattr(app, "ProvisioningOrchestrator", FakeOrchestrator)
    return FakeOrchestrator


BASE_ARGS = ["--ci-token", "ci", "provision", "--repos", "widgets", "--jenkins-url", "https://ci.example.com",
             "--git-user", "acme", "--git-token", "ghp"]


class TestCli:
    def test_version(self, capsys):
        """--version prints the package version."""
        app.main(["--version"])

        assert capsys.readouterr().out.strip() == __version__

    def test_pattern(self, capsys):
        """pattern prints the combined job pattern."""
        app.main(["pattern", "--old", "widgets", "--repo", "gadgets"])

        assert capsys.readouterr().out.strip() == "widgets|gadgets"

    def test_provision_builds_request(self, fake_orchestrator, capsys):
        """Flags end up on the request and on the two invokers."""
        app.main(["--insecure"] + BASE_ARGS + ["--webhook-secret", "s", "--no-trigger"])

        orchestrator, request = fake_orchestrator.requests[0]
        assert request.repos == ["widgets"]
        assert request.ci_auth_header == "Bearer ci"
        assert request.account.token == "ghp"
        assert request.webhook_secret == "s"
        assert request.trigger_build is False
        assert orchestrator.ci_invoker.insecure is True
        assert orchestrator.git_invoker.insecure is False
        assert "Provisioned CI for 1 repositories" in capsys.readouterr().out

    def test_provision_without_namespace_has_no_cluster(self, fake_orchestrator):
        """Without a namespace the orchestrator gets no cluster and picks the default secret itself."""
        app.main(BASE_ARGS)

        orchestrator, request = fake_orchestrator.requests[0]
        assert request.webhook_secret == ""
        assert request.discovery_namespace is None
        assert orchestrator.cluster is None

    def test_provision_passes_cluster_for_namespace(self, fake_orchestrator, monkeypatch):
        """A discovery namespace hands a kubectl cluster to the orchestrator."""
        class Cluster:
            pass

        monkeypatch.setattr(app, "KubectlCluster", Cluster)

        app.main(BASE_ARGS + ["--namespace", "team-ci", "--build-namespace", "team-dev"])

        orchestrator, request = fake_orchestrator.requests[0]
        assert isinstance(orchestrator.cluster, Cluster)
        assert request.discovery_namespace == "team-ci"
        assert request.build_namespace == "team-dev"
        assert request.bot_service_account == "cd-bot"

    def test_provision_jenkins_url_can_come_from_namespace(self, fake_orchestrator, monkeypatch):
        """With a namespace and no JENKINS_URL the lookup is left to the orchestrator."""
        monkeypatch.setattr(app, "KubectlCluster", lambda: object())
        args = ["--ci-token", "ci", "provision", "--repos", "widgets", "--git-user", "acme",
                "--git-token", "ghp", "--namespace", "team-ci"]

        app.main(args)

        _, request = fake_orchestrator.requests[0]
        assert request.jenkins_url is None

    def test_provision_requires_jenkins_url_or_namespace(self, fake_orchestrator):
        """Neither a Jenkins URL nor a namespace is a usage error."""
        args = ["--ci-token", "ci", "provision", "--repos", "widgets", "--git-user", "acme"]

        with pytest.raises(SystemExit, match="JENKINS_URL"):
            app.main(args)

    def test_unknown_log_level_exits(self, monkeypatch):
        """A bad LOG_LEVEL is reported instead of a traceback."""
        monkeypatch.setenv("LOG_LEVEL", "chatty")

        with pytest.raises(SystemExit, match="Unknown log level"):
            app.main(["pattern", "--repo", "widgets"])

    def test_bad_timeout_exits(self, monkeypatch):
        """A non-numeric HTTP_TIMEOUT is reported instead of a traceback."""
        monkeypatch.setenv("HTTP_TIMEOUT", "soon")

        with pytest.raises(SystemExit, match="HTTP_TIMEOUT"):
            app.main(["pattern", "--repo", "widgets"])

    def test_provision_failure_exits(self, fake_orchestrator):
        """A failed batch exits with its summary message."""
        fake_orchestrator.result = BatchResult(
            success=False,
            error=WebhookRegistrationError(422, "Unprocessable Entity", "u"),
            failed_stage="webhook",
            failed_repo="widgets",
        )

        with pytest.raises(SystemExit) as exc_info:
            app.main(BASE_ARGS + ["--webhook-secret", "s"])

        assert "webhook of widgets" in str(exc_info.value)

    def test_provision_requires_ci_token(self, fake_orchestrator):
        """Missing CI token is a usage error."""
        args = [a for a in BASE_ARGS if a not in ("--ci-token", "ci")]

        with pytest.raises(SystemExit, match="CI_TOKEN"):
            app.main(args + ["--webhook-secret", "s"])

    def test_provision_reads_environment(self, fake_orchestrator, monkeypatch):
        """Environment variables fill in absent flags."""
        monkeypatch.setenv("JENKINS_URL", "https://env-ci.example.com")
        monkeypatch.setenv("CI_TOKEN", "env-ci")
        monkeypatch.setenv("GIT_USERNAME", "acme")
        monkeypatch.setenv("GIT_TOKEN", "env-ghp")

        app.main(["provision", "--repos", "widgets, gadgets", "--no-webhooks"])

        _, request = fake_orchestrator.requests[0]
        assert request.jenkins_url == "https://env-ci.example.com"
        assert request.ci_auth_header == "Bearer env-ci"
        assert request.repos == ["widgets", "gadgets"]
        assert request.register_webhooks is False

    def test_namespaces(self, monkeypatch, capsys):
        """namespaces prints one namespace per line."""
        class Cluster:
            def list_namespaces(self):
                return ["team-a", "team-b"]

        monkeypatch.setattr(app, "KubectlCluster", Cluster)

        app.main(["namespaces"])

        out = capsys.readouterr().out
        assert "team-a\n" in out
        assert "team-b\n" in out

    def test_namespaces_kubectl_failure_exits(self, monkeypatch):
        """kubectl errors become an exit message."""
        from cibootstrap.cluster import ClusterCommandError

        class Cluster:
            def list_namespaces(self):
                raise ClusterCommandError(["kubectl", "get", "namespaces"], 1, "forbidden")

        monkeypatch.setattr(app, "KubectlCluster", Cluster)

        with pytest.raises(SystemExit, match="forbidden"):
            app.main(["namespaces"])

    def test_trigger_failure_exits(self, monkeypatch, capsys):
        """A failed trigger exits with status 2."""
        calls = []

        def fake_trigger(invoker, job_url, auth_header):
            calls.append((invoker.insecure, job_url, auth_header))
            return "failed"

        monkeypatch.setattr(app, "trigger_if_idle", fake_trigger)

        with pytest.raises(SystemExit) as exc_info:
            app.main(["--ci-token", "ci", "--insecure", "trigger", "--job-url", "https://ci.example.com/job/acme"])

        assert exc_info.value.code == 2
        assert calls == [(True, "https://ci.example.com/job/acme", "Bearer ci")]
        assert "Build: failed" in capsys.readouterr().out
