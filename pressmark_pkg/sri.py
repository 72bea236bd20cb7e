"""
Subresource Integrity (SRI) for external scripts and stylesheets.

The pipeline is: locate absolute-URL ``<script src>`` and stylesheet
``<link href>`` references in an HTML document, fetch each one, hash the
body, then add ``integrity``/``crossorigin`` attributes to the matching tags.

Tag detection is pattern based over the raw text. It is good enough for the
well-formed pages this project renders; it does not understand comments,
markup inside scripts, or attributes split in unusual ways.
"""

import base64
import hashlib
import logging
import re
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional

import requests

from .url_validator import URLValidator, SafeRequestor

SUPPORTED_ALGORITHMS = ('sha256', 'sha384', 'sha512')
DEFAULT_ALGORITHM = 'sha384'
CROSSORIGIN_POLICY = 'anonymous'

# Opening tags only; attributes are tokenized inside the match.
TAG_PATTERN = re.compile(r'<(script|link)\b[^>]*>', re.IGNORECASE)
EXTERNAL_URL_PATTERN = re.compile(r'^https?://', re.IGNORECASE)
ATTRIBUTE_PATTERN = re.compile(r"""([^\s"'<>/=]+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+)))?""")
REFERENCE_ATTRS = {'script': 'src', 'link': 'href'}
STYLESHEET_MARKER = 'stylesheet'

logger = logging.getLogger('Pressmark.SRI')


class ResourceFetchError(Exception):
    """Raised when an external resource cannot be retrieved."""

    def __init__(self, url, reason):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class ExternalResources:
    """Absolute-URL scripts and stylesheets found in one document."""

    def __init__(self, scripts=None, stylesheets=None):
        self.scripts = list(scripts or [])
        self.stylesheets = list(stylesheets or [])

    @property
    def all_urls(self) -> List[str]:
        return self.scripts + self.stylesheets

    def __len__(self):
        return len(self.scripts) + len(self.stylesheets)

    def __eq__(self, other):
        if not isinstance(other, ExternalResources):
            return NotImplemented
        return self.scripts == other.scripts and self.stylesheets == other.stylesheets

    def __repr__(self):
        return f"ExternalResources(scripts={self.scripts!r}, stylesheets={self.stylesheets!r})"


class ProcessingResult:
    """Outcome of processing one HTML document for SRI."""

    def __init__(self, html: str, resources: ExternalResources, hashes: Dict[str, Optional[str]], modified: bool):
        self.html = html
        self.resources = resources
        self.hashes = hashes
        self.modified = modified

    @property
    def succeeded(self) -> List[str]:
        return [url for url, value in self.hashes.items() if value]

    @property
    def failed(self) -> List[str]:
        return [url for url, value in self.hashes.items() if not value]

    def __repr__(self):
        return (f"ProcessingResult(resources={len(self.resources)}, "
                f"hashes={len(self.succeeded)}/{len(self.hashes)}, modified={self.modified})")


def validate_algorithm(algorithm: str) -> str:
    """Return the algorithm name, or raise ValueError if it is not supported."""
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(
            f"Unsupported SRI algorithm: {algorithm!r} "
            f"(expected one of {', '.join(SUPPORTED_ALGORITHMS)})"
        )
    return algorithm


def generate_sri_hash(content, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """
    Compute an SRI hash string for the given content.

    Args:
        content: bytes, or str which is encoded as UTF-8
        algorithm: One of sha256, sha384, sha512

    Returns:
        Hash in the form ``<algorithm>-<base64 digest>``
    """
    validate_algorithm(algorithm)
    if isinstance(content, str):
        content = content.encode('utf-8')
    digest = hashlib.new(algorithm, content).digest()
    return f"{algorithm}-{base64.b64encode(digest).decode('ascii')}"


def _parse_attributes(tag: str, tag_name: str) -> Dict[str, Optional[str]]:
    """
    Map lowercased attribute names of an opening tag to their raw values.

    Attributes without a value map to None. When a name repeats, the first
    occurrence wins, as in a browser.
    """
    attributes = {}
    for match in ATTRIBUTE_PATTERN.finditer(tag, len(tag_name) + 1):
        name = match.group(1).lower()
        value = next((group for group in match.groups()[1:] if group is not None), None)
        attributes.setdefault(name, value)
    return attributes


def _iter_reference_tags(html: str):
    """Yield (match, attributes, reference value) for script and link tags."""
    for match in TAG_PATTERN.finditer(html):
        tag_name = match.group(1).lower()
        attributes = _parse_attributes(match.group(0), tag_name)
        value = attributes.get(REFERENCE_ATTRS[tag_name])
        if value is not None:
            yield match, attributes, value


def _closing_offset(tag: str) -> int:
    """
    Offset in an opening tag where new attributes go: before ``>``, or before
    the ``/`` of a self-closing tag and the whitespace leading up to it.

    A ``/`` that ends an unquoted value belongs to the value.
    """
    insert_at = len(tag) - 1
    tokens = list(ATTRIBUTE_PATTERN.finditer(tag, 1))
    owned_by_value = tokens[-1].group(4) is not None and tokens[-1].end() == insert_at
    if tag[insert_at - 1] == '/' and not owned_by_value:
        insert_at -= 1
        while tag[insert_at - 1].isspace():
            insert_at -= 1
    return insert_at


def extract_external_resources(html: str) -> ExternalResources:
    """
    Find absolute-URL scripts and stylesheets in an HTML document.

    Only ``http://`` and ``https://`` references are returned; local assets
    are never fetched or hashed. A ``<link>`` is a stylesheet only when its
    tag text contains the ``stylesheet`` marker.
    """
    scripts = []
    stylesheets = []

    for match, _attributes, url in _iter_reference_tags(html):
        if not EXTERNAL_URL_PATTERN.match(url):
            continue
        if match.group(1).lower() == 'script':
            if url not in scripts:
                scripts.append(url)
        elif STYLESHEET_MARKER in match.group(0) and url not in stylesheets:
            stylesheets.append(url)

    return ExternalResources(scripts, stylesheets)


def add_sri_attributes(html: str, hashes: Dict[str, Optional[str]]) -> str:
    """
    Add integrity and crossorigin attributes to tags that reference a hashed URL.

    A tag is rewritten when its ``src`` (script) or ``href`` (link) equals a
    key of ``hashes`` exactly and the hash is not empty. Tags that already
    have an ``integrity`` attribute are left as they are, so running this
    twice yields the same text.
    """
    usable = {url: value for url, value in hashes.items() if value}
    if not usable:
        return html

    parts = []
    last_end = 0
    for match, attributes, url in _iter_reference_tags(html):
        sri_hash = usable.get(url)
        if sri_hash is None or 'integrity' in attributes:
            continue

        tag = match.group(0)
        insert_at = _closing_offset(tag)
        sri_attributes = f' integrity="{sri_hash}" crossorigin="{CROSSORIGIN_POLICY}"'

        parts.append(html[last_end:match.start()])
        parts.append(tag[:insert_at] + sri_attributes + tag[insert_at:])
        last_end = match.end()

    parts.append(html[last_end:])
    return ''.join(parts)


class ResourceFetcher:
    """
    Download external resources and hash them.

    Requests go through SafeRequestor, so URLs that resolve to private or
    reserved addresses are rejected like any other failed fetch.
    """

    def __init__(self, session: requests.Session = None, requestor: SafeRequestor = None,
                 timeout: float = 10, workers: int = 1):
        self.session = session or requests.Session()
        self.requestor = requestor or SafeRequestor(URLValidator(), self.session, timeout=timeout)
        self.workers = max(1, int(workers or 1))

    def generate_sri_hash_from_url(self, url: str, algorithm: str = DEFAULT_ALGORITHM) -> str:
        """Fetch a URL and return its SRI hash. Raises ResourceFetchError on failure."""
        success, result = self.requestor.safe_get(url)
        if not success:
            raise ResourceFetchError(url, result)

        response = result
        if response.status_code != 200:
            raise ResourceFetchError(url, f"HTTP {response.status_code}")

        try:
            content = response.content
        except requests.exceptions.RequestException as e:
            raise ResourceFetchError(url, e)

        return generate_sri_hash(content, algorithm)

    def _hash_or_none(self, url: str, algorithm: str) -> Optional[str]:
        try:
            sri_hash = self.generate_sri_hash_from_url(url, algorithm)
        except ResourceFetchError as e:
            logger.warning(f"Failed to generate SRI hash for {url}: {e.reason}")
            return None
        logger.info(f"Generated SRI hash for {url}")
        return sri_hash

    def fetch_hashes(self, urls: Iterable[str], algorithm: str = DEFAULT_ALGORITHM) -> Dict[str, Optional[str]]:
        """
        Hash every URL. Failed URLs map to None; the batch never raises for them.
        """
        validate_algorithm(algorithm)
        urls = list(OrderedDict.fromkeys(urls))

        if self.workers == 1 or len(urls) < 2:
            return OrderedDict((url, self._hash_or_none(url, algorithm)) for url in urls)

        with ThreadPoolExecutor(max_workers=min(self.workers, len(urls))) as executor:
            values = list(executor.map(lambda url: self._hash_or_none(url, algorithm), urls))
        return OrderedDict(zip(urls, values))

    def close(self):
        self.session.close()


def process_html_for_sri(html: str, algorithm: str = DEFAULT_ALGORITHM, skip_fetch: bool = False,
                         fetcher: ResourceFetcher = None) -> ProcessingResult:
    """
    Locate, hash and annotate the external resources of one HTML document.

    An unsupported algorithm raises ValueError before anything is fetched.
    Fetch failures leave the affected tags untouched; a partially hashed
    document is a normal result.
    """
    validate_algorithm(algorithm)

    resources = extract_external_resources(html)
    if not resources:
        return ProcessingResult(html, resources, {}, False)

    logger.info(f"Found {len(resources)} external resource(s)")
    for url in resources.all_urls:
        logger.debug(f"External resource: {url}")

    if skip_fetch:
        logger.info("Skipping SRI hash generation (skip_fetch=True)")
        return ProcessingResult(html, resources, {}, False)

    owns_fetcher = fetcher is None
    fetcher = fetcher or ResourceFetcher()
    try:
        hashes = fetcher.fetch_hashes(resources.all_urls, algorithm)
    finally:
        if owns_fetcher:
            fetcher.close()

    updated_html = add_sri_attributes(html, hashes)
    return ProcessingResult(updated_html, resources, hashes, updated_html != html)
