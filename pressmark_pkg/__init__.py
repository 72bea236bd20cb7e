"""
Pressmark - build pipeline for a small static marketing site.

Pressmark renders the site's pages from a YAML content file with Jinja2,
optimizes images, minifies CSS and JavaScript, and adds Subresource
Integrity hashes to external scripts and stylesheets before publishing.
"""

__version__ = "1.0.0"

from .sri import (
    ExternalResources,
    ProcessingResult,
    ResourceFetcher,
    ResourceFetchError,
    add_sri_attributes,
    extract_external_resources,
    generate_sri_hash,
    process_html_for_sri,
)
from .core import Pressmark

__all__ = [
    'Pressmark',
    'ExternalResources',
    'ProcessingResult',
    'ResourceFetcher',
    'ResourceFetchError',
    'add_sri_attributes',
    'extract_external_resources',
    'generate_sri_hash',
    'process_html_for_sri',
]
