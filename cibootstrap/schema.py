from typing import Any, Dict, List, Optional

from .urls import is_absolute_url

REQUIRED_STR_FIELDS = ["jenkins_url", "owner", "ci_auth_header"]


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def validate_request(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    The first message always names the first missing attribute.
    """
    errors: List[str] = []

    for f in REQUIRED_STR_FIELDS:
        if f not in data or data[f] is None:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    repos = data.get("repos")
    if not repos:
        errors.append("Missing required field: repos")
    elif isinstance(repos, str) or not all(_is_non_empty_str(r) for r in repos):
        errors.append("Field 'repos' must be a list of non-empty strings")

    if _is_non_empty_str(data.get("jenkins_url")) and not is_absolute_url(data["jenkins_url"]):
        errors.append("Field 'jenkins_url' must be a valid absolute URL (scheme + host)")

    return errors


def first_missing_attribute(errors: List[str]) -> Optional[str]:
    """Field name mentioned by the first error, if any."""
    if not errors:
        return None
    first = errors[0]
    if first.startswith("Missing required field: "):
        return first[len("Missing required field: "):]
    if "'" in first:
        return first.split("'")[1]
    return first
