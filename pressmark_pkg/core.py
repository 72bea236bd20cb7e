import os
import logging
from datetime import datetime

import requests

from .assets import AssetMinifier
from .images import ImageProcessor
from .renderer import PageRenderer, load_content
from .sri import ResourceFetcher, process_html_for_sri, validate_algorithm, DEFAULT_ALGORITHM
from .url_validator import URLValidator, SafeRequestor


class InfoFilter(logging.Filter):
    """Filter to allow only selected INFO messages to be shown in the console."""
    def filter(self, record):
        if record.levelno >= logging.WARNING:
            return True
        allowed_messages = [
            "Starting site build",
            "Site build completed in",
            "Rendered page:",
            "Total pages written:",
            "Total SRI hashes added:",
            "Total SRI hashes failed:",
            "Total images processed:",
            "Total assets minified:",
            "Adding SRI hashes",
            "Processing CSS files",
            "Processing JS files",
            "Processing images",
        ]
        return any(msg in record.getMessage() for msg in allowed_messages)


def setup_logging(name='Pressmark', log_dir=None):
    """
    Configure the build logger: filtered progress messages on the console and
    every record in a timestamped file under logs/. Component loggers are
    children of this one (``Pressmark.SRI`` etc.) and share its handlers.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    if not logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.addFilter(InfoFilter())
        console_handler.setFormatter(logging.Formatter('%(message)s'))
        logger.addHandler(console_handler)

        logs_dir = log_dir or os.path.join(os.getcwd(), 'logs')
        os.makedirs(logs_dir, exist_ok=True)
        log_filename = datetime.now().strftime('pressmark_%Y-%m-%d_%H-%M-%S.log')

        file_handler = logging.FileHandler(os.path.join(logs_dir, log_filename), encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        logger.addHandler(file_handler)

    return logger


class Pressmark:
    """
    Build the site into the output directory: render pages, add SRI hashes,
    copy and minify CSS/JS, optimize images.
    """

    PAGES = ('index.html', '404.html')

    def __init__(self, source_dir='.', output_dir='dist', content_file='content.yml', templates_dir=None,
                 images_source=None, images_output='images', css_files=None, js_files=None, minify=False,
                 generate_webp=True, optimize_images=True, sri=True, sri_algorithm=DEFAULT_ALGORITHM,
                 sri_workers=1, request_timeout=10, log_dir=None):
        # An unsupported algorithm is a configuration error; fail before any work
        self.sri_algorithm = validate_algorithm(sri_algorithm)

        self.source_dir = source_dir
        self.output_dir = output_dir
        self.content_file = content_file if os.path.isabs(content_file) else os.path.join(source_dir, content_file)
        self.templates_dir = templates_dir
        self.images_source = images_source
        self.images_dir = os.path.join(output_dir, images_output)
        self.css_files = list(css_files if css_files is not None else ['normalize.css', 'main.css'])
        self.js_files = list(js_files if js_files is not None else ['main.js'])
        self.minify = minify
        self.generate_webp = generate_webp
        self.optimize_images = optimize_images
        self.sri = sri

        self.pages_written = 0
        self.sri_hashes_added = 0
        self.sri_hashes_failed = 0
        self.images_processed = 0
        self.images_failed = 0
        self.assets_minified = 0

        self.logger = setup_logging('Pressmark', log_dir)

        self.session = requests.Session()
        self.fetcher = ResourceFetcher(
            session=self.session,
            requestor=SafeRequestor(URLValidator(), self.session, timeout=request_timeout),
            workers=sri_workers,
        )
        self.renderer = PageRenderer(templates_dir, use_webp=generate_webp)

    @classmethod
    def from_settings(cls, settings, **overrides):
        """Create a builder from a merged PressmarkSettings dictionary."""
        options = dict(
            source_dir=settings['source'],
            output_dir=os.path.expanduser(settings['output']),
            content_file=settings['content'],
            templates_dir=settings.get('templates'),
            images_source=settings.get('images_source'),
            images_output=settings.get('images_output', 'images'),
            css_files=settings.get('css_files'),
            js_files=settings.get('js_files'),
            minify=settings.get('minify', False),
            generate_webp=settings.get('generate_webp', True),
            optimize_images=settings.get('optimize_images', True),
            sri=settings.get('sri', True),
            sri_algorithm=settings.get('sri_algorithm', DEFAULT_ALGORITHM),
            sri_workers=settings.get('sri_workers', 1),
            request_timeout=settings.get('request_timeout', 10),
        )
        options.update(overrides)
        return cls(**options)

    def create_output_dir(self):
        os.makedirs(self.output_dir, exist_ok=True)

    def render_pages(self):
        """Render every page from the content file."""
        content = load_content(self.content_file)
        pages = self.renderer.render_pages(content, self.PAGES)
        for page in pages:
            self.logger.info(f"Rendered page: {page}")
        return pages

    def add_sri_to_html(self, html):
        """
        Run the SRI step on one rendered page.

        Fetch problems never fail the build; tags whose resource could not be
        hashed are written without integrity attributes.
        """
        result = process_html_for_sri(html, self.sri_algorithm, fetcher=self.fetcher)
        if result.failed:
            self.logger.warning(f"Continuing without SRI hashes for: {', '.join(result.failed)}")

        self.sri_hashes_added += len(result.succeeded)
        self.sri_hashes_failed += len(result.failed)
        for url in result.succeeded:
            self.logger.debug(f"{url} -> {result.hashes[url]}")
        return result.html

    def write_page(self, name, html):
        output_path = os.path.join(self.output_dir, name)
        try:
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(html)
        except (IOError, OSError) as e:
            self.logger.error(f"Failed to write {output_path}: {e}")
            return False
        self.pages_written += 1
        self.logger.debug(f"Wrote {output_path}")
        return True

    def process_assets(self):
        minifier = AssetMinifier(self.source_dir, self.output_dir, minify=self.minify)
        self.logger.info("Processing CSS files")
        css = minifier.process_css_files(self.css_files)
        self.logger.info("Processing JS files")
        js = minifier.process_js_files(self.js_files)
        self.assets_minified += sum(1 for asset in css + js if asset.minified_path)
        return css + js

    def process_images(self):
        if not self.optimize_images or not self.images_source:
            self.logger.debug("Image optimization disabled or no image source configured")
            return None

        self.logger.info("Processing images")
        processor = ImageProcessor(generate_webp=self.generate_webp)
        result = processor.process_images(self.images_source, self.images_dir)
        self.images_processed += len(result.processed)
        self.images_failed += len(result.failed)
        return result

    def build(self):
        """Main build process."""
        self.logger.info("Starting site build...")
        self.create_output_dir()

        pages = self.render_pages()
        if self.sri:
            self.logger.info("Adding SRI hashes to external resources")
        for name, html in pages.items():
            if self.sri:
                html = self.add_sri_to_html(html)
            self.write_page(name, html)

        self.process_assets()
        self.process_images()

    def log_statistics(self, elapsed):
        self.logger.info(f"Site build completed in {elapsed:.3f} seconds.")
        self.logger.info(f"Total pages written: {self.pages_written}")
        self.logger.info(f"Total SRI hashes added: {self.sri_hashes_added}")
        if self.sri_hashes_failed:
            self.logger.info(f"Total SRI hashes failed: {self.sri_hashes_failed}")
        self.logger.info(f"Total assets minified: {self.assets_minified}")
        self.logger.info(f"Total images processed: {self.images_processed} ({self.images_failed} failed)")

    def cleanup(self):
        """Close the HTTP session."""
        if self.session is not None:
            self.session.close()
            self.session = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cleanup()
