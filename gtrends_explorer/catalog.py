from __future__ import annotations

from .types import Filter, Geo, Term

# Entities are catalog ids. Ids that look like Trends topic ids ("/m/...", "/g/...")
# are sent to Trends as-is; anything else is queried by display name.
TERMS: tuple[Term, ...] = (
    Term(entity="/m/0cycc", name="Influenza", alias="Flu"),
    Term(entity="allergy", name="Allergy"),
    Term(entity="amnesia", name="Amnesia"),
    Term(entity="bronchitis", name="Bronchitis"),
    Term(entity="candidiasis", name="Candidiasis", alias="Yeast infection"),
    Term(entity="chickenpox", name="Chickenpox", alias="Varicella"),
    Term(entity="common-cold", name="Cold", alias="Common cold"),
    Term(entity="conjunctivitis", name="Conjunctivitis", alias="Pink eye"),
    Term(entity="dengue", name="Dengue fever"),
    Term(entity="diarrhea", name="Diarrhea"),
    Term(entity="hay-fever", name="Hay fever", alias="Allergic rhinitis"),
    Term(entity="lyme-disease", name="Lyme disease"),
    Term(entity="measles", name="Measles"),
    Term(entity="raynaud-syndrome", name="Raynaud syndrome"),
    Term(entity="skin-rash", name="Skin rash"),
    Term(entity="sunburn", name="Sunburn"),
)

COUNTRIES: tuple[Geo, ...] = (
    Geo(iso="US", name="United States"),
    Geo(iso="AU", name="Australia"),
    Geo(iso="BR", name="Brazil"),
    Geo(iso="CA", name="Canada"),
    Geo(iso="GB", name="United Kingdom"),
    Geo(iso="IN", name="India"),
    Geo(iso="", name="Worldwide"),
)

DEFAULT_GEO = COUNTRIES[0]


def term_by_entity(entity: str) -> Term:
    for t in TERMS:
        if t.entity == entity:
            return t
    raise KeyError(f"Unknown term entity: {entity!r}")


def term_by_name(name: str) -> Term:
    key = (name or "").strip().lower()
    for t in TERMS:
        if t.name.lower() == key or (t.alias or "").lower() == key:
            return t
    raise KeyError(f"Unknown term: {name!r}")


def resolve_term(value: str) -> Term:
    """Look a CLI/UI value up by entity first, then by name or alias."""
    try:
        return term_by_entity(value)
    except KeyError:
        return term_by_name(value)


def geo_by_iso(iso: str) -> Geo:
    key = (iso or "").strip().upper()
    for g in COUNTRIES:
        if g.iso == key:
            return g
    raise KeyError(f"Unknown geo: {iso!r}")


def _curated(names: list[str], iso: str) -> Filter:
    return Filter(terms=tuple(term_by_name(n) for n in names), geo=geo_by_iso(iso))


CURATED: dict[str, Filter] = {
    "spring": _curated(["Chickenpox", "Conjunctivitis", "Allergy"], "US"),
    "summer": _curated(["Candidiasis", "Skin rash", "Diarrhea"], "US"),
    "winter": _curated(["Bronchitis", "Raynaud syndrome", "Cold"], "US"),
    "southern-winter": _curated(["Bronchitis", "Influenza", "Cold"], "AU"),
}
