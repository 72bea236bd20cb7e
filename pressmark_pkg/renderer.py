"""
Render the site's HTML pages from a YAML content file with Jinja2.
"""

import logging
import os
from datetime import datetime

import mistune
import yaml
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, TemplateSyntaxError, select_autoescape
from markupsafe import Markup

from .images import webp_variant

PACKAGE_TEMPLATES = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')

DEFAULT_METADATA = {
    'title': 'Sebana Servizi',
    'description': 'Servizi professionali per la gestione condominiale',
    'keywords': [],
    'lang': 'it',
}

# Team members after this index are below the fold and lazy-loaded
ABOVE_FOLD_COUNT = 3


def default_content():
    return {
        'metadata': dict(DEFAULT_METADATA),
        'contact_info': {},
        'hero': {},
        'services': {},
        'values': [],
        'statistics': [],
        'team': [],
        'footer': {},
        'navigation': [],
        'stylesheets': [],
        'scripts': [],
    }


def load_content(content_path):
    """
    Load site content from YAML, filling in defaults for missing keys.

    A missing file is not an error: the page renders with default metadata
    and empty sections.
    """
    content = default_content()
    if not content_path or not os.path.exists(content_path):
        logging.getLogger('Pressmark.PageRenderer').warning(
            f"Content file not found: {content_path}, using default content"
        )
        return content

    with open(content_path, 'r', encoding='utf-8') as f:
        try:
            loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in content file {content_path}: {e}")

    if not isinstance(loaded, dict):
        raise ValueError(f"Content file {content_path} must contain a mapping")

    for key, value in loaded.items():
        if key == 'metadata' and isinstance(value, dict):
            content['metadata'].update(value)
        elif value is not None:
            content[key] = value
    return content


def create_markdown_parser():
    return mistune.create_markdown(escape=True, plugins=['strikethrough', 'table'])


def phone_href(phone):
    return 'tel:' + ''.join(str(phone).split())


class PageRenderer:
    """Jinja2 environment plus the helpers the page templates use."""

    def __init__(self, templates_dir=None, use_webp=True, lazy_loading=True):
        self.templates_dir = templates_dir or PACKAGE_TEMPLATES
        self.use_webp = use_webp
        self.lazy_loading = lazy_loading
        self.logger = logging.getLogger('Pressmark.PageRenderer')

        if not os.path.isdir(self.templates_dir):
            raise FileNotFoundError(f"Templates directory not found: {self.templates_dir}")

        self.env = Environment(
            loader=FileSystemLoader(self.templates_dir),
            autoescape=select_autoescape(['html', 'xml']),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.markdown_parser = create_markdown_parser()
        self.env.filters['markdown'] = self.markdown_filter
        self.env.filters['phone_href'] = phone_href
        self.env.globals['image_tag'] = self.image_tag

    def markdown_filter(self, text):
        """Convert markdown text to HTML."""
        if not text:
            return ''
        return Markup(self.markdown_parser(str(text)))

    def image_tag(self, src, alt='', width=None, height=None, class_name='', lazy=False):
        """
        Build an <img>, wrapped in <picture> with a WebP source for JPEG/PNG
        when WebP output is enabled.
        """
        attrs = Markup(' alt="{}"').format(alt or '')
        if class_name:
            attrs += Markup(' class="{}"').format(class_name)
        if width and height:
            attrs += Markup(' width="{}" height="{}"').format(width, height)
        if lazy and self.lazy_loading:
            attrs += Markup(' loading="lazy"')

        img = Markup('<img src="{}"').format(src) + attrs + Markup('>')
        webp = webp_variant(src) if self.use_webp else None
        if not webp:
            return img
        return (Markup('<picture>\n  <source srcset="{}" type="image/webp">\n  ').format(webp)
                + img + Markup('\n</picture>'))

    def render(self, template_name, content, **extra):
        """Render a template with the site content. Template errors propagate."""
        template = self.env.get_template(template_name)
        context = dict(content)
        context.setdefault('year', datetime.now().year)
        context['above_fold_count'] = ABOVE_FOLD_COUNT
        context.update(extra)
        return template.render(**context)

    def render_pages(self, content, pages=('index.html', '404.html')):
        """Render several pages; returns {page name: html}, skipping broken templates."""
        rendered = {}
        for page in pages:
            try:
                rendered[page] = self.render(page, content)
            except (TemplateNotFound, TemplateSyntaxError) as e:
                self.logger.error(f"Template error for {page}: {e}")
                continue
            self.logger.debug(f"Rendered {page} ({len(rendered[page])} bytes)")
        return rendered
