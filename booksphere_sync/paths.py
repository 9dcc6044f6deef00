"""Remote document path helpers.

Centralizes the path layout so callers never need to construct or
parse document paths directly.

Catalog collection: artifacts/{deployment_id}/public/data/books
Cart document:      artifacts/{deployment_id}/users/{identity}/cart/myCart

Paths alternate collection and document segments: a collection path has
an odd number of segments, a document path an even number.
"""

from __future__ import annotations

CART_DOCUMENT_ID = "myCart"


def _segment(value: str, name: str) -> str:
    if not value or "/" in value:
        raise ValueError(f"Invalid {name} path segment: {value!r}")
    return value


def catalog_collection_path(deployment_id: str) -> str:
    """Collection holding the catalog books, keyed by book id."""
    return f"artifacts/{_segment(deployment_id, 'deployment_id')}/public/data/books"


def cart_document_path(deployment_id: str, identity: str) -> str:
    """The single cart document owned by ``identity``."""
    return (
        f"artifacts/{_segment(deployment_id, 'deployment_id')}"
        f"/users/{_segment(identity, 'identity')}/cart/{CART_DOCUMENT_ID}"
    )


def document_path(collection_path: str, doc_id: str) -> str:
    """Path of the document ``doc_id`` inside ``collection_path``."""
    return f"{collection_path.strip('/')}/{_segment(doc_id, 'document id')}"


def split_document_path(path: str) -> tuple[str, str]:
    """Split a document path into ``(collection_path, doc_id)``.

    Raises ValueError on malformed input.
    """
    parts = [p for p in path.strip("/").split("/") if p]
    if len(parts) < 2 or len(parts) % 2 != 0:
        raise ValueError(f"Malformed document path: {path}")
    return "/".join(parts[:-1]), parts[-1]


def normalize_collection_path(path: str) -> str:
    """Strip slashes from a collection path and check its shape.

    Raises ValueError on malformed input.
    """
    parts = [p for p in path.strip("/").split("/") if p]
    if not parts or len(parts) % 2 != 1:
        raise ValueError(f"Malformed collection path: {path}")
    return "/".join(parts)
