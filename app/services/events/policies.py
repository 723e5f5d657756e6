"""Swappable merge policies: description selection and company-name matching."""

from __future__ import annotations

import re
import string
import unicodedata
from collections.abc import Callable

from app.services.events.errors import IngestionConfigError

DescriptionPolicy = Callable[[str, str], str]
CompanyKeyFn = Callable[[str], str]

CORPORATE_SUFFIXES = frozenset(
    {
        "inc",
        "incorporated",
        "corp",
        "corporation",
        "co",
        "company",
        "llc",
        "ltd",
        "limited",
        "plc",
        "gmbh",
        "ag",
        "sa",
        "holdings",
    }
)
_PUNCTUATION = re.compile(f"[{re.escape(string.punctuation)}’]")


def prefer_longer_description(existing: str, incoming: str) -> str:
    """Keep whichever description is longer; ties keep the stored text."""
    return incoming if len(incoming) > len(existing) else existing


def exact_company_key(name: str) -> str:
    return name


def normalized_company_key(name: str) -> str:
    """Casefold, strip punctuation and drop trailing corporate suffixes."""
    text = unicodedata.normalize("NFKC", name or "")
    text = _PUNCTUATION.sub(" ", text.casefold())
    tokens = text.split()
    while len(tokens) > 1 and tokens[-1] in CORPORATE_SUFFIXES:
        tokens.pop()
    return " ".join(tokens)


COMPANY_KEY_POLICIES: dict[str, CompanyKeyFn] = {
    "exact": exact_company_key,
    "normalized": normalized_company_key,
}


def resolve_company_key(policy: str | None) -> CompanyKeyFn:
    """Return the matching function for ``COMPANY_NAME_MATCHING``."""
    normalized = (policy or "exact").strip().lower()
    try:
        return COMPANY_KEY_POLICIES[normalized]
    except KeyError as exc:
        raise IngestionConfigError(
            f"Unsupported COMPANY_NAME_MATCHING value: {policy}",
            code="E_MATCHING_UNSUPPORTED",
        ) from exc
