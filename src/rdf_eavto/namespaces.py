"""
Namespace prefixes and IRI compression.

Storage holds every IRI in ``prefix:local`` form; callers speak full IRIs.
The prefix table is fixed and ordered: for compression the first namespace
that matches wins, for expansion the exact ``prefix:`` match wins. Anything
that matches no entry (including blank node labels such as ``_:b1``) passes
through unchanged.
"""

from __future__ import annotations

from typing import Optional


# Ordered (prefix, namespace) pairs.
PREFIXES: tuple[tuple[str, str], ...] = (
    ("rdf", "http://www.w3.org/1999/02/22-rdf-syntax-ns#"),
    ("rdfs", "http://www.w3.org/2000/01/rdf-schema#"),
    ("owl", "http://www.w3.org/2002/07/owl#"),
    ("xsd", "http://www.w3.org/2001/XMLSchema#"),
    ("skos", "http://www.w3.org/2004/02/skos/core#"),
    ("dtype", "http://www.linkedmodel.org/schema/dtype#"),
    ("foundation", "http://foundation.local/ontology/"),
)

NAMESPACES: dict[str, str] = dict(PREFIXES)


def expand(iri: str) -> str:
    """
    Expand a prefixed IRI to its full form.

    ``rdfs:label`` -> ``http://www.w3.org/2000/01/rdf-schema#label``.
    Unknown prefixes and already expanded IRIs are returned verbatim.
    """
    prefix, sep, local = iri.partition(":")
    if sep and prefix in NAMESPACES:
        return NAMESPACES[prefix] + local
    return iri


def compress(iri: str) -> str:
    """
    Compress a full IRI to ``prefix:local`` form.

    ``http://foundation.local/ontology/Computer`` -> ``foundation:Computer``.
    IRIs outside every known namespace are returned verbatim.
    """
    for prefix, namespace in PREFIXES:
        if iri.startswith(namespace):
            return f"{prefix}:{iri[len(namespace):]}"
    return iri


def expand_optional(iri: Optional[str]) -> Optional[str]:
    return expand(iri) if iri is not None else None


def compress_optional(iri: Optional[str]) -> Optional[str]:
    return compress(iri) if iri is not None else None


def is_blank(label: str) -> bool:
    """Blank node labels carry the ``_:`` prefix by convention."""
    return label.startswith("_:")
