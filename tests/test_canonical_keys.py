"""
Tests for canonical identity keys and name similarity.
"""
import pytest

from relgraph.services.canonical_keys import (
    calculate_similarity,
    extract_domain,
    generate_org_key,
    generate_person_key,
    is_same_organization,
    is_same_person,
    normalize_name,
)
from relgraph.services.errors import ValidationError

pytestmark = pytest.mark.unit


class TestGeneratePersonKey:
    """Tests for person keys."""

    def test_email_key(self):
        """Email wins over name."""
        assert generate_person_key("Ada@Example.com", "Ada", "Lovelace") == "email:ada@example.com"

    def test_email_is_trimmed_and_lowercased(self):
        """Case and surrounding whitespace don't change the key."""
        assert generate_person_key("  ADA@example.COM ", "Ada", "Lovelace") == \
            generate_person_key("ada@example.com", "X", "Y")

    def test_name_key_without_email(self):
        """Falls back to normalized first and last name."""
        assert generate_person_key(None, "Ada", "Lovelace") == "name:ada_lovelace"

    def test_blank_email_uses_name(self):
        """Whitespace-only email counts as absent."""
        assert generate_person_key("   ", "Ada", "Lovelace") == "name:ada_lovelace"

    def test_name_key_is_case_and_whitespace_invariant(self):
        """Same identity with different formatting yields one key."""
        keys = {
            generate_person_key(None, "Ada", "Lovelace"),
            generate_person_key(None, "  ADA ", " lovelace  "),
            generate_person_key("", "ada", "LOVELACE"),
        }
        assert keys == {"name:ada_lovelace"}

    def test_name_key_strips_diacritics_and_punctuation(self):
        """Accents and apostrophes are dropped."""
        assert generate_person_key(None, "José", "O'Brien") == "name:jose_obrien"

    def test_multi_word_names_use_single_separator(self):
        """Internal whitespace collapses to one separator."""
        assert generate_person_key(None, "Mary  Ann", "van   Dyke") == "name:mary_ann_van_dyke"

    def test_empty_identity_raises(self):
        """No email and no name can't produce a key."""
        with pytest.raises(ValidationError):
            generate_person_key(None, "  ", "")


class TestGenerateOrgKey:
    """Tests for organization keys."""

    def test_domain_key(self):
        """Domain wins over name."""
        assert generate_org_key("Acme.com", "Acme Inc") == "domain:acme.com"

    def test_name_key_strips_legal_suffix(self):
        """Legal suffixes don't split one company into two keys."""
        assert generate_org_key(None, "Acme, Inc.") == "name:acme"
        assert generate_org_key(None, "ACME") == "name:acme"
        assert generate_org_key(None, "Acme Corp") == "name:acme"

    def test_multiple_trailing_suffixes(self):
        """Stacked suffixes are all removed."""
        assert generate_org_key(None, "Widget Co. Ltd") == "name:widget"

    def test_suffix_only_name_is_kept(self):
        """A name made only of a suffix still produces a key."""
        assert generate_org_key(None, "Company") == "name:company"

    def test_multi_word_slug(self):
        """Words are joined with underscores."""
        assert generate_org_key(None, "Red Beard Ventures LLC") == "name:red_beard_ventures"

    def test_empty_name_raises(self):
        """No domain and no name can't produce a key."""
        with pytest.raises(ValidationError):
            generate_org_key(None, "  ")


class TestExtractDomain:
    """Tests for domain extraction."""

    @pytest.mark.parametrize("value,expected", [
        ("https://www.acme.com/about", "acme.com"),
        ("http://Acme.com:8080/path?q=1", "acme.com"),
        ("acme.com", "acme.com"),
        ("www.acme.io", "acme.io"),
        ("ada@Example.org", "example.org"),
        ("https://app.acme.co.uk", "app.acme.co.uk"),
    ])
    def test_extracts_host(self, value, expected):
        """Scheme, port, path and www are removed."""
        assert extract_domain(value) == expected

    @pytest.mark.parametrize("value", [None, "", "   ", "localhost", "not a url", "https://"])
    def test_unparsable_returns_none(self, value):
        """Blank or dotless input has no domain."""
        assert extract_domain(value) is None


class TestSimilarity:
    """Tests for name similarity."""

    def test_identical_after_normalization(self):
        """Formatting differences score 1.0."""
        assert calculate_similarity("Ada Lovelace", "  ada   LOVELACE ") == 1.0

    def test_empty_scores_zero(self):
        """Empty input never matches."""
        assert calculate_similarity("", "Ada") == 0.0
        assert calculate_similarity(None, None) == 0.0

    def test_edit_distance_based(self):
        """One substitution in ten characters scores 0.9."""
        assert calculate_similarity("jon smiths", "jon smithz") == pytest.approx(0.9)

    def test_unrelated_names_score_low(self):
        """Different names are far apart."""
        assert calculate_similarity("Ada Lovelace", "Grace Hopper") < 0.5

    def test_is_same_person(self):
        """Near-identical names are the same person."""
        assert is_same_person("Jonathan Smith", "Jonathon Smith")
        assert not is_same_person("Jonathan Smith", "Jane Doe")

    def test_is_same_organization(self):
        """Organization threshold is looser than the person threshold."""
        assert is_same_organization("Acme Holdings", "Acme Holding")
        assert not is_same_organization("Acme", "Globex")


class TestNormalizeName:
    """Tests for name normalization."""

    def test_normalize(self):
        assert normalize_name("  José  O'Brien-Smith ") == "jose obriensmith"

    def test_none(self):
        assert normalize_name(None) == ""
