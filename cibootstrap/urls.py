from urllib.parse import urlparse


def strip_trailing_slash(url: str) -> str:
    return url.rstrip("/")


def path_join(*parts: str) -> str:
    """Join URL segments with exactly one slash between each.

    A trailing slash on the last segment is kept, so
    path_join("https://ci", "/github-webhook/") ends with "/".
    """
    parts = [p for p in parts if p]
    if not parts:
        return ""
    result = parts[0]
    for part in parts[1:]:
        result = result.rstrip("/") + "/" + part.lstrip("/")
    return result


def is_absolute_url(url: str) -> bool:
    p = urlparse(url)
    return bool(p.scheme and p.netloc)


def job_url(jenkins_url: str, owner: str) -> str:
    """URL of the organization job named after the git owner."""
    return path_join(jenkins_url, "job", owner)


def create_item_url(jenkins_url: str, owner: str) -> str:
    return path_join(jenkins_url, f"createItem?name={owner}")


def config_xml_url(job: str) -> str:
    return path_join(job, "config.xml")


def git_clone_url(web_url: str, owner: str, repo: str) -> str:
    return path_join(web_url, owner, f"{repo}.git")
