"""
Canonical identity keys and name similarity.

Canonical keys are the sole deduplication key for people and organizations:
two inputs describing the same identity must always produce the same key,
regardless of casing or whitespace. Similarity scores are only used for
fuzzy duplicate search and never decide key equality.

Key formats:
- person:       "email:<email>" or "name:<first>_<last>"
- organization: "domain:<domain>" or "name:<slug>"
"""
import re
import unicodedata
from typing import Optional
from urllib.parse import urlsplit

from rapidfuzz.distance import Levenshtein

from relgraph.services.errors import ValidationError

# Trailing tokens dropped from organization names before slugging
LEGAL_SUFFIXES = {"inc", "llc", "ltd", "corp", "corporation", "limited", "company", "co"}

PERSON_SIMILARITY_THRESHOLD = 0.85
ORGANIZATION_SIMILARITY_THRESHOLD = 0.80

_PUNCTUATION_RE = re.compile(r"[^\w\s]", re.UNICODE)
_WHITESPACE_RE = re.compile(r"\s+")


def _strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def normalize_name(name: Optional[str]) -> str:
    """
    Normalize a name for comparison.

    Lowercases, strips diacritics and punctuation, collapses whitespace.
    "  José  O'Brien " -> "jose obrien"
    """
    if not name:
        return ""
    text = _strip_diacritics(name).lower()
    text = _PUNCTUATION_RE.sub("", text)
    text = text.replace("_", " ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lowercase and trim an email; blank input yields None."""
    if not email or not email.strip():
        return None
    return email.strip().lower()


def generate_person_key(email: Optional[str], first_name: str, last_name: str) -> str:
    """
    Generate the canonical key for a person.

    Email wins when present; otherwise the key is built from the
    normalized first and last name.

    Raises:
        ValidationError: No email and the normalized name is empty
    """
    normalized_email = normalize_email(email)
    if normalized_email:
        return f"email:{normalized_email}"

    full = normalize_name(f"{first_name or ''} {last_name or ''}")
    if not full:
        raise ValidationError("Person key requires an email or a name", field="first_name")
    return f"name:{full.replace(' ', '_')}"


def _slugify_org_name(name: str) -> str:
    tokens = normalize_name(name).split(" ")
    stripped = list(tokens)
    while stripped and stripped[-1] in LEGAL_SUFFIXES:
        stripped.pop()
    # A name made only of suffixes ("Company") keeps its tokens
    return "_".join(stripped or tokens)


def generate_org_key(domain: Optional[str], name: str) -> str:
    """
    Generate the canonical key for an organization.

    "Acme, Inc." and "ACME" both map to "name:acme" when no domain is known.

    Raises:
        ValidationError: No domain and the name normalizes to nothing
    """
    if domain and domain.strip():
        return f"domain:{domain.strip().lower()}"

    slug = _slugify_org_name(name or "")
    if not slug:
        raise ValidationError("Organization key requires a domain or a name", field="name")
    return f"name:{slug}"


def extract_domain(url_or_email: Optional[str]) -> Optional[str]:
    """
    Extract the host domain from a URL or email address.

    Returns:
        Lowercase domain without scheme, port, path or leading "www.",
        or None when the input can't be parsed into a dotted host
    """
    if not url_or_email or not url_or_email.strip():
        return None

    value = url_or_email.strip()

    if "@" in value and "://" not in value:
        host = value.rsplit("@", 1)[1]
    else:
        if "://" not in value:
            value = f"//{value}"
        try:
            host = urlsplit(value).hostname or ""
        except ValueError:
            return None

    host = host.strip().strip(".").lower()
    if host.startswith("www."):
        host = host[4:]

    if "." not in host or " " in host:
        return None
    return host


def calculate_similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Normalized edit-distance similarity between two names.

    Returns:
        1.0 for names equal after normalization, 0.0 when either is empty,
        otherwise 1 - levenshtein / max(len)
    """
    left = normalize_name(a)
    right = normalize_name(b)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    return Levenshtein.normalized_similarity(left, right)


def is_same_person(name_a: str, name_b: str) -> bool:
    """Check whether two person names are likely the same person."""
    return calculate_similarity(name_a, name_b) > PERSON_SIMILARITY_THRESHOLD


def is_same_organization(name_a: str, name_b: str) -> bool:
    """Check whether two organization names are likely the same organization."""
    return calculate_similarity(name_a, name_b) > ORGANIZATION_SIMILARITY_THRESHOLD
