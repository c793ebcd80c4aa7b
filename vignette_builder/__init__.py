"""
vignette-builder - memoizing compilation of literate-analysis vignettes

Renders each R Markdown vignette to HTML with an external renderer, skipping
vignettes whose HTML already exists, and builds canonical cross-links between
vignette sections.

Architecture:
- Compiling Context: freshness checks, renderer subprocesses, build orchestration
- Linking Context: section links into a documentation collection
"""

__version__ = "0.1.0"
