"""
Subdomain Slugs

Turns a free-text business name into a DNS-label-safe subdomain and finds
the first free variant of it.

    "Acme Corp!!" -> "acme-corp"
    "123 Shop"    -> "biz-123-shop"
    ""            -> "biz-"
"""
import re
from typing import Callable, Iterator

NON_ALNUM = re.compile(r"[^a-z0-9]+")
REPEATED_DASHES = re.compile(r"-+")
STARTS_WITH_LETTER = re.compile(r"^[a-z]")

DEFAULT_MAX_LENGTH = 30
DEFAULT_FALLBACK_PREFIX = "biz-"


def slugify_business_name(
    name: str,
    max_length: int = DEFAULT_MAX_LENGTH,
    fallback_prefix: str = DEFAULT_FALLBACK_PREFIX,
) -> str:
    """
    Normalize a business name into a subdomain slug.

    The result starts with a letter and is at most max_length characters.
    Names that normalize to nothing become the bare fallback prefix.
    """
    slug = (name or "").lower()
    slug = NON_ALNUM.sub("-", slug)
    slug = slug.strip("-")
    slug = REPEATED_DASHES.sub("-", slug)

    if not STARTS_WITH_LETTER.match(slug):
        slug = fallback_prefix + slug

    if len(slug) > max_length:
        # A cut can land right after a dash
        slug = slug[:max_length].rstrip("-")

    return slug


def subdomain_candidates(base: str, max_length: int = DEFAULT_MAX_LENGTH) -> Iterator[str]:
    """
    Yield base, base-1, base-2, ...

    Suffixed candidates shorten the base so the whole label stays within
    max_length.
    """
    yield base
    counter = 1
    while True:
        suffix = f"-{counter}"
        stem = base
        if len(stem) + len(suffix) > max_length:
            stem = stem[:max_length - len(suffix)].rstrip("-")
        yield stem + suffix
        counter += 1


def resolve_unique_subdomain(
    base: str,
    is_taken: Callable[[str], bool],
    max_length: int = DEFAULT_MAX_LENGTH,
) -> str:
    """Return the first candidate for which is_taken() is False."""
    for candidate in subdomain_candidates(base, max_length):
        if not is_taken(candidate):
            return candidate


def tenant_domain(subdomain: str, base_domain: str) -> str:
    return f"{subdomain}.{base_domain}"


def dashboard_url(subdomain: str, base_domain: str) -> str:
    return f"https://{tenant_domain(subdomain, base_domain)}/dashboard"
