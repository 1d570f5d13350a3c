"""
Unit tests for domain_validator module.

Tests the per-university domain match and the generic academic pre-check.
"""
import pytest
import sys
from pathlib import Path

# Add lambda directory to path
lambda_dir = Path(__file__).parent.parent.parent / 'lambda'
sys.path.insert(0, str(lambda_dir))

from domain_validator import (
    accepted_domains,
    domain_matches,
    extract_domain,
    is_academic_email,
    is_email_domain_allowed,
    MALFORMED,
    MISMATCH
)
from errors import NoDomainsConfigured
from university_config import University


def make_university(domain='unilag.edu.ng', email_domains=None):
    return University(
        university_id='unilag',
        name='University of Lagos',
        domain=domain,
        email_domains=email_domains or []
    )


@pytest.mark.unit
class TestExtractDomain:

    def test_lowercases(self):
        assert extract_domain('Student@UNILAG.edu.NG') == 'unilag.edu.ng'

    def test_uses_last_at(self):
        assert extract_domain('"odd@name"@unilag.edu.ng') == 'unilag.edu.ng'

    @pytest.mark.parametrize('value', ['', 'no-at-sign', 'trailing@', None])
    def test_missing_domain(self, value):
        assert extract_domain(value) is None


@pytest.mark.unit
class TestAcceptedDomains:

    def test_primary_first_and_deduplicated(self):
        result = accepted_domains('unilag.edu.ng', ['live.unilag.edu.ng', 'UNILAG.edu.ng', '@stu.unilag.edu.ng'])
        assert result == ['unilag.edu.ng', 'live.unilag.edu.ng', 'stu.unilag.edu.ng']

    def test_no_primary(self):
        assert accepted_domains(None, ['oauife.edu.ng']) == ['oauife.edu.ng']

    def test_empty(self):
        assert accepted_domains(None, None) == []


@pytest.mark.unit
class TestDomainMatches:

    def test_exact(self):
        assert domain_matches('unilag.edu.ng', 'unilag.edu.ng')

    def test_subdomain(self):
        assert domain_matches('csc.unilag.edu.ng', 'unilag.edu.ng')

    def test_not_label_aligned(self):
        assert not domain_matches('fakeunilag.edu.ng', 'unilag.edu.ng')

    def test_parent_does_not_match_child(self):
        assert not domain_matches('edu.ng', 'unilag.edu.ng')


@pytest.mark.unit
class TestIsEmailDomainAllowed:

    def test_subdomain_email_allowed(self):
        check = is_email_domain_allowed('student@csc.unilag.edu.ng', make_university())
        assert check.allowed is True
        assert check.matched_domain == 'unilag.edu.ng'

    def test_lookalike_domain_rejected(self):
        check = is_email_domain_allowed('student@fakeunilag.edu.ng', make_university())
        assert check.allowed is False
        assert check.reason == MISMATCH
        assert check.accepted_domains == ['unilag.edu.ng']

    def test_extra_domain_allowed(self):
        university = make_university(email_domains=['live.unilag.edu.ng', 'unilag.ng'])
        assert is_email_domain_allowed('a@unilag.ng', university).allowed is True

    def test_most_specific_match_reported(self):
        university = make_university(email_domains=['live.unilag.edu.ng'])
        check = is_email_domain_allowed('a@live.unilag.edu.ng', university)
        assert check.matched_domain == 'live.unilag.edu.ng'

    def test_case_insensitive(self):
        assert is_email_domain_allowed('A@CSC.UniLag.Edu.Ng', make_university()).allowed is True

    def test_malformed_email(self):
        check = is_email_domain_allowed('not-an-email', make_university())
        assert check.allowed is False
        assert check.reason == MALFORMED

    def test_no_domains_configured_raises(self):
        with pytest.raises(NoDomainsConfigured) as exc_info:
            is_email_domain_allowed('a@unilag.edu.ng', make_university(domain=None))
        assert exc_info.value.details['university_id'] == 'unilag'

    def test_generic_academic_email_not_enough(self):
        """Any .edu.ng address is academic, but only the university's own domains count."""
        email = 'student@covenantuniversity.edu.ng'
        assert is_academic_email(email) is True
        assert is_email_domain_allowed(email, make_university()).allowed is False


@pytest.mark.unit
class TestIsAcademicEmail:

    @pytest.mark.parametrize('email', [
        'a@mit.edu',
        'a@unilag.edu.ng',
        'a@futa.ac.ng',
        'a@kings.sch.ng',
    ])
    def test_academic(self, email):
        assert is_academic_email(email) is True

    @pytest.mark.parametrize('email', [
        'a@gmail.com',
        'a@edu.ng',
        'a@notedu',
        'a@fakeedu.ng',
        'garbage',
    ])
    def test_not_academic(self, email):
        assert is_academic_email(email) is False
