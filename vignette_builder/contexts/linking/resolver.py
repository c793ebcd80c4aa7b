"""
Cross-links between vignettes.

Builds the canonical URL of a vignette, or of a section inside it, within a
documentation collection. Section titles become fragment identifiers the same
way the HTML renderer derives heading anchors: runs of spaces collapse to one
hyphen and the result is lower-cased.

Examples:
    >>> resolve("reads", "Quality control", "QC")
    Link(url='reads.html#quality-control', label='QC')

    >>> bioc = DocumentCollection("simpleSingleCell", BIOCONDUCTOR_WORKFLOW_TEMPLATE)
    >>> LinkResolver(bioc).resolve("intro", None, "intro").markdown()
    '[intro](https://bioconductor.org/packages/release/workflows/vignettes/simpleSingleCell/inst/doc/intro.html)'
"""

import re
from dataclasses import dataclass
from typing import NamedTuple, Optional

BIOCONDUCTOR_WORKFLOW_TEMPLATE = (
    "https://bioconductor.org/packages/release/workflows/vignettes/{collection}/inst/doc/{document}"
)

_SPACE_RUN = re.compile(r" +")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_PATH_SEPARATORS = ("/", "\\")


class InvalidLinkError(ValueError):
    """Raised when a document name or section cannot be embedded in a URL."""

    pass


class Link(NamedTuple):
    """A resolved link. Compares equal to the plain (url, label) pair."""

    url: str
    label: str

    def markdown(self) -> str:
        return f"[{self.label}]({self.url})"


@dataclass(frozen=True)
class DocumentCollection:
    """
    Naming convention for the documents of one collection.

    Attributes:
        name: Collection name, substituted for {collection}
        url_template: Base URL of a document, must contain {document}.
            The default "{document}" yields relative links.
    """

    name: str = ""
    url_template: str = "{document}"

    def __post_init__(self):
        if "{document}" not in self.url_template:
            raise ValueError(f"url_template must contain '{{document}}': {self.url_template!r}")
        # Only {collection} and {document} may be referenced
        try:
            self.url_template.format(collection=self.name, document="x")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"Invalid url_template {self.url_template!r}: {e!r}") from e

    def base_url(self, document_name: str) -> str:
        return self.url_template.format(collection=self.name, document=document_name)


def _check(value: str, what: str) -> None:
    if not value or not value.strip():
        raise InvalidLinkError(f"{what} must be non-empty")
    if any(sep in value for sep in _PATH_SEPARATORS):
        raise InvalidLinkError(f"{what} must not contain a path separator: {value!r}")
    if _CONTROL_CHARS.search(value):
        raise InvalidLinkError(f"{what} must not contain control characters: {value!r}")


def normalize_section(section: str) -> str:
    """'My  Section' -> 'my-section'."""
    _check(section, "section")
    return _SPACE_RUN.sub("-", section).lower()


class LinkResolver:
    """Resolves links into a DocumentCollection (default: relative links)."""

    def __init__(self, collection: Optional[DocumentCollection] = None):
        self.collection = collection if collection is not None else DocumentCollection()

    def resolve(self, document_name: str, section: Optional[str], label: str) -> Link:
        """
        Canonical (url, label) for a document or one of its sections.

        Raises:
            InvalidLinkError: If the document name or section is malformed
        """
        _check(document_name, "document name")
        url = self.collection.base_url(document_name) + ".html"
        if section is not None:
            url += "#" + normalize_section(section)
        return Link(url=url, label=label)


def resolve(
    document_name: str,
    section: Optional[str],
    label: str,
    collection: Optional[DocumentCollection] = None,
) -> Link:
    """Shortcut for LinkResolver(collection).resolve(...)."""
    return LinkResolver(collection).resolve(document_name, section, label)
