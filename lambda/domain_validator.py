"""
Email domain checks for student verification.

The authoritative decision for a specific university is the domain-set match
in `is_email_domain_allowed`. `is_academic_email` is a lower-trust hint for
signup forms and never grants verification on its own.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from errors import NoDomainsConfigured


# Generic academic suffixes accepted by the signup pre-check
ACADEMIC_SUFFIXES = ('edu', 'edu.ng', 'ac.ng', 'sch.ng')

MISMATCH = 'domain_mismatch'
MALFORMED = 'malformed_email'


@dataclass
class DomainCheck:
    allowed: bool
    matched_domain: Optional[str] = None
    accepted_domains: List[str] = field(default_factory=list)
    reason: Optional[str] = None


def extract_domain(email: str) -> Optional[str]:
    """Return the lower-cased part after the last '@', or None if there is none."""
    if not email or not isinstance(email, str) or '@' not in email:
        return None
    domain = email.rsplit('@', 1)[1].strip().lower()
    return domain or None


def normalize_domain(domain: str) -> str:
    """Lower-case a configured domain and drop a leading '@' or '.'."""
    return domain.strip().lower().lstrip('@').lstrip('.')


def accepted_domains(primary: Optional[str], extra: Optional[Iterable[str]] = None) -> List[str]:
    """
    Build the de-duplicated accepted set, primary domain first.

    Args:
        primary: University's primary domain (may be None)
        extra: Additional accepted email domains

    Returns:
        Ordered list of distinct, normalized domains
    """
    domains = []
    for candidate in [primary, *(extra or [])]:
        if not candidate:
            continue
        normalized = normalize_domain(candidate)
        if normalized and normalized not in domains:
            domains.append(normalized)
    return domains


def domain_matches(candidate: str, configured: str) -> bool:
    """
    Label-aligned suffix match.

    `csc.unilag.edu.ng` matches `unilag.edu.ng`; `fakeunilag.edu.ng` does not.
    """
    return candidate == configured or candidate.endswith('.' + configured)


def is_email_domain_allowed(email: str, university) -> DomainCheck:
    """
    Check an email against a university's configured domains.

    Args:
        email: Address supplied by the student
        university: University with `domain` and `email_domains` attributes

    Returns:
        DomainCheck with the matched domain when allowed

    Raises:
        NoDomainsConfigured: The university has no domains at all
    """
    domains = accepted_domains(university.domain, university.email_domains)
    if not domains:
        raise NoDomainsConfigured(
            f"No email domains configured for {university.name}",
            {'university_id': university.university_id}
        )

    email_domain = extract_domain(email)
    if email_domain is None:
        return DomainCheck(allowed=False, accepted_domains=domains, reason=MALFORMED)

    # Most specific configured domain wins when several match
    for domain in sorted(domains, key=len, reverse=True):
        if domain_matches(email_domain, domain):
            return DomainCheck(allowed=True, matched_domain=domain, accepted_domains=domains)

    return DomainCheck(allowed=False, accepted_domains=domains, reason=MISMATCH)


def is_academic_email(email: str) -> bool:
    """
    Generic pre-check: does the address end with a known academic suffix.

    Args:
        email: The email address to check

    Returns:
        True if the domain ends with one of ACADEMIC_SUFFIXES on a label boundary
    """
    email_domain = extract_domain(email)
    if email_domain is None:
        return False
    return any(
        email_domain != suffix and domain_matches(email_domain, suffix)
        for suffix in ACADEMIC_SUFFIXES
    )
