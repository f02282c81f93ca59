"""Organizational domain utilities"""
from functools import lru_cache

from publicsuffixlist import PublicSuffixList


class OrgDomainError(ValueError):
    """Raised when a domain has no recognized ICANN public suffix"""
    pass


@lru_cache(maxsize=1)
def _suffix_list() -> PublicSuffixList:
    return PublicSuffixList(only_icann=True, accept_unknown=False)


def get_org_domain(domain: str) -> str:
    """
    Get the organizational domain for a domain name

    The organizational domain is the public suffix plus one label to its
    left, e.g. "mail.example.co.uk" -> "example.co.uk". A domain with at
    most one label beyond its suffix is its own organizational domain.

    Args:
        domain: Domain name, optionally with a trailing dot

    Returns:
        Organizational domain without a trailing dot

    Raises:
        OrgDomainError: If the domain has no ICANN public suffix
    """
    domain = (domain or "").rstrip(".")
    if not domain:
        raise OrgDomainError("bad organizational domain: empty name")

    suffix = _suffix_list().publicsuffix(domain.lower())
    if not suffix:
        raise OrgDomainError(f"bad organizational domain: {domain}")

    labels = domain.split(".")
    suffix_labels = suffix.split(".")
    if len(labels) - len(suffix_labels) <= 1:
        return domain
    return ".".join(labels[-(len(suffix_labels) + 1):])
