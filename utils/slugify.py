"""Domain → slug / display-name helpers."""
import re
from typing import Iterable

_PROTOCOL = re.compile(r"^https?://", re.IGNORECASE)
_WWW = re.compile(r"^www\.", re.IGNORECASE)


def bare_domain(domain: str) -> str:
    """Strip protocol, `www.` and any path: 'https://www.acme.com/x' → 'acme.com'."""
    clean = _WWW.sub("", _PROTOCOL.sub("", domain.strip()))
    return clean.split("/")[0].lower()


def domain_to_slug(domain: str) -> str:
    """'acme.com' → 'acme', 'app.stripe.com' → 'app-stripe'."""
    parts = bare_domain(domain).split(".")
    if len(parts) > 2:
        return "-".join(parts[:-1])
    return parts[0]


def extract_company_name(domain: str) -> str:
    name = bare_domain(domain).split(".")[0] or "Company"
    return name[:1].upper() + name[1:]


def website_url(domain: str) -> str:
    return domain if domain.startswith("http") else f"https://{domain}"


def next_available_slug(base_slug: str, existing: Iterable[str]) -> str:
    """Return `base_slug`, or `base_slug-N` with N one past the highest taken suffix."""
    existing = set(existing)
    if base_slug not in existing:
        return base_slug

    suffix = re.compile(rf"^{re.escape(base_slug)}-(\d+)$")
    highest = 1
    for slug in existing:
        match = suffix.match(slug)
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{base_slug}-{highest + 1}"
