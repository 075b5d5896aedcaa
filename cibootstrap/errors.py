"""
Error taxonomy for provisioning.

Everything raised by the HTTP, XML and provider layers derives from
ProvisioningError so the orchestrator can decide which failures abort
a batch and which are only worth a warning.
"""

from typing import Optional


class ProvisioningError(Exception):
    """Base class for all provisioning failures."""
    pass


class ConfigurationMissing(ProvisioningError):
    """A required input attribute is absent."""

    def __init__(self, attribute: str):
        self.attribute = attribute
        super().__init__(f"No attribute: {attribute}")


class HttpStatusError(ProvisioningError):
    """Response status outside [200, 300)."""

    def __init__(self, status: int, reason: str, url: str):
        self.status = status
        self.reason = reason or ""
        self.url = url
        super().__init__(f"Failed to process {url} and got status: {status} {self.reason}".rstrip())


class RedirectLoopError(ProvisioningError):
    """A second redirect was received within one invocation."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Redirected more than once while processing {url}")


class MissingLocationError(ProvisioningError):
    """A redirect arrived without a Location header."""

    def __init__(self, url: str, status: int = 302):
        self.url = url
        self.status = status
        super().__init__(f"Failed to process {url} and got status: {status} but no location header!")


class TransportError(ProvisioningError):
    """Connection, timeout or TLS failure below the HTTP layer."""

    def __init__(self, url: str, cause: Exception):
        self.url = url
        self.cause = cause
        super().__init__(f"Request to {url} failed: {cause}")


class TemplateStructureError(ProvisioningError):
    """Job descriptor is missing a required element."""
    pass


class WebhookRegistrationError(ProvisioningError):
    """The git provider refused to create the webhook."""

    def __init__(self, status: Optional[int], message: str, url: str = ""):
        self.status = status
        self.message = message
        self.url = url
        super().__init__(
            f"Failed to create the git web hook at: {url}. Status: {status} message: {message}"
        )


class XmlParseError(ProvisioningError):
    """Body could not be read as an XML document."""
    pass


class ServiceUrlNotFound(ProvisioningError):
    """No externally reachable URL is published for a cluster service."""

    def __init__(self, service: str, namespace: str):
        self.service = service
        self.namespace = namespace
        super().__init__(f"Failed to find the URL of service {service} in namespace {namespace}")
