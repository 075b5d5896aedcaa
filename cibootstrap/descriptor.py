"""
Organization job descriptor (Jenkins config.xml) handling.

The descriptor holds a GitHub SCM navigator element whose repoOwner and
pattern children decide which repositories the organization job scans.
Merging a repository into it overwrites the owner and appends the
repository name to the pattern.
"""

from pathlib import Path
from typing import Callable, Optional, Tuple, Union

from bs4 import BeautifulSoup, Tag
from bs4.builder import ParserRejectedMarkup

from .errors import ProvisioningError, TemplateStructureError, XmlParseError
from .logger import get_logger

logger = get_logger()

NAVIGATOR_ELEMENT = "org.jenkinsci.plugins.github__branch__source.GitHubSCMNavigator"
TEMPLATE_NAME = "github-org-job-config.xml"
TEMPLATE_DIR = Path(__file__).parent / "templates"


def combine_job_pattern(old_pattern: Optional[str], repo: str) -> str:
    """Append repo to a pipe separated pattern.

    Repeated calls with the same repo append it again; the pattern is
    never deduplicated.
    """
    old_pattern = (old_pattern or "").strip()
    if not old_pattern:
        return repo
    return f"{old_pattern}|{repo}"


def parse_descriptor(text) -> BeautifulSoup:
    if not text or not text.strip():
        raise XmlParseError("Empty job descriptor")
    try:
        document = BeautifulSoup(text, "xml")
    except ParserRejectedMarkup as e:
        raise XmlParseError(f"Job descriptor is not XML: {e}") from e
    if document.find() is None:
        raise XmlParseError("Job descriptor has no root element")
    return document


def render_descriptor(document: BeautifulSoup) -> bytes:
    return str(document).encode("utf-8")


def load_template(name: str = TEMPLATE_NAME) -> BeautifulSoup:
    """Load a bundled descriptor template by file name."""
    path = TEMPLATE_DIR / name
    if not path.exists():
        logger.error(f"Could not load template {name}", path=str(path))
        raise TemplateStructureError(f"Cannot find the template job XML {name}")
    try:
        return parse_descriptor(path.read_text(encoding="utf-8"))
    except XmlParseError as e:
        raise TemplateStructureError(f"Cannot parse the template job XML {name}: {e}") from e


def find_navigator(document: BeautifulSoup) -> Optional[Tag]:
    """First navigator element in the document, or None."""
    return document.find(NAVIGATOR_ELEMENT)


def _mandatory_first_child(element: Tag, name: str) -> Tag:
    child = element.find(name, recursive=False)
    if child is None:
        raise TemplateStructureError(
            f"The element <{element.name}> should have at least one child called <{name}>"
        )
    return child


def _set_element_text(element: Tag, value: str) -> bool:
    """Replace the element text; True if it differed."""
    if element.get_text() == value:
        return False
    element.string = value
    return True


def merge_owner_and_repo(document: BeautifulSoup, owner: str, repo: str) -> Tuple[BeautifulSoup, bool]:
    """Write owner and repo into the navigator element.

    Returns the document and whether any text changed.
    """
    navigator = find_navigator(document)
    if navigator is None:
        raise TemplateStructureError(
            f"No element <{NAVIGATOR_ELEMENT}> found in the organization job"
        )
    repo_owner = _mandatory_first_child(navigator, "repoOwner")
    pattern = _mandatory_first_child(navigator, "pattern")

    new_pattern = combine_job_pattern(pattern.get_text(), repo)
    changed = _set_element_text(repo_owner, owner)
    if _set_element_text(pattern, new_pattern):
        changed = True
    return document, changed


def ensure_descriptor(
    fetch_existing: Callable[[], Union[str, bytes]],
    template_loader: Callable[[], BeautifulSoup],
    owner: str,
    repo: str,
) -> Tuple[BeautifulSoup, bool]:
    """
    Fetch the current descriptor or fall back to the template, then merge.

    Args:
        fetch_existing: returns the current config.xml body (raw bytes are
            decoded according to the XML declaration)
        template_loader: returns a fresh template document
        owner: git owner written to repoOwner
        repo: repository appended to pattern

    Returns:
        (document, created) where created is True when the template was used
    """
    document = None
    try:
        document = parse_descriptor(fetch_existing())
    except ProvisioningError as e:
        logger.warning("Failed to get organization job, probably does not exist", error=str(e))

    created = False
    if document is None or find_navigator(document) is None:
        created = True
        document = template_loader()

    document, changed = merge_owner_and_repo(document, owner, repo)
    logger.info(
        "Merged repository into organization job",
        owner=owner,
        repo=repo,
        created=created,
        changed=changed,
    )
    return document, created
