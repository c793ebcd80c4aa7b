"""
Linking Context

Responsibilities:
- Builds canonical URLs of vignettes and vignette sections
- Normalizes section titles into fragment identifiers
- Rejects names that cannot be embedded in a URL

Owns: link templating for a documentation collection
Never: Touches the filesystem or the renderer
"""

from vignette_builder.contexts.linking.resolver import (
    BIOCONDUCTOR_WORKFLOW_TEMPLATE,
    DocumentCollection,
    InvalidLinkError,
    Link,
    LinkResolver,
    normalize_section,
    resolve,
)

__all__ = [
    "BIOCONDUCTOR_WORKFLOW_TEMPLATE",
    "DocumentCollection",
    "InvalidLinkError",
    "Link",
    "LinkResolver",
    "normalize_section",
    "resolve",
]
