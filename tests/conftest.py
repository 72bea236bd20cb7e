"""Test configuration and fixtures for Pressmark tests."""

import io
import logging
import shutil
import tempfile
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import yaml
from PIL import Image

from pressmark_pkg.sri import ResourceFetcher
from pressmark_pkg.url_validator import URLValidator, SafeRequestor


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers added by setup_logging so each test starts clean."""
    yield
    logger = logging.getLogger('Pressmark')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def public_dns():
    """Resolve every hostname to a public address so no real DNS lookup happens."""
    with patch.object(URLValidator, '_resolve_hostname', return_value=['93.184.216.34']) as mock_resolve:
        yield mock_resolve


def make_response(status_code=200, content=b''):
    response = Mock()
    response.status_code = status_code
    response.content = content
    return response


@pytest.fixture
def mock_session():
    """A requests session stand-in whose responses are keyed by URL."""
    responses = {}
    session = Mock()

    def get(url, **kwargs):
        result = responses[url]
        if isinstance(result, Exception):
            raise result
        return result

    session.get.side_effect = get
    session.responses = responses
    return session


@pytest.fixture
def fetcher(mock_session, public_dns):
    """ResourceFetcher backed by mock_session."""
    requestor = SafeRequestor(URLValidator(), mock_session)
    return ResourceFetcher(session=mock_session, requestor=requestor)


@pytest.fixture
def sample_html():
    return """<!DOCTYPE html>
<html>
<head>
  <link rel="stylesheet" href="https://cdn.example.com/style.css">
  <link rel="stylesheet" href="css/local.css">
  <link rel="icon" href="https://cdn.example.com/favicon.ico">
  <script src="https://cdn.example.com/script.js"></script>
  <script src="js/local.js"></script>
</head>
<body>
  <h1>Test</h1>
</body>
</html>
"""


@pytest.fixture
def sample_site(temp_dir):
    """A source tree with content, CSS and JS files."""
    source = Path(temp_dir) / 'site'
    (source / 'css').mkdir(parents=True)
    (source / 'js').mkdir()

    (source / 'css' / 'main.css').write_text("""
/* Main styles */
body {
    margin: 0;
    padding: 0;
    color: #333333;
}

.hero-section {
    padding: 40px 20px;
}
""", encoding='utf-8')
    (source / 'css' / 'normalize.css').write_text("html { line-height: 1.15; }\n", encoding='utf-8')
    (source / 'js' / 'main.js').write_text("""
// Navigation toggle
function toggleMenu(button) {
    var menu = document.querySelector('.main-nav');
    menu.classList.toggle('open');
}
""", encoding='utf-8')

    content = {
        'metadata': {
            'title': 'Sebana Servizi',
            'description': 'Servizi professionali per la gestione condominiale',
            'keywords': ['antincendio', 'privacy'],
            'og': {'url': 'https://www.example.it/'},
        },
        'contact_info': {'phone': '+39 02 1234 5678', 'email': 'info@example.it'},
        'navigation': [{'href': '#services', 'label': 'Servizi'}],
        'hero': {
            'title': 'Sebana Servizi',
            'subtitle': 'Gestione condominiale',
            'main_services': [{'title': 'Antincendio', 'description': 'Sicurezza', 'icon': 'fire'}],
        },
        'services': {
            'title': 'Di cosa ci occupiamo',
            'body': 'Servizi **completi** per i condomini.',
            'detailed_services': [{'title': 'Controllo Idrico', 'description': 'D.LGS. 18/2023',
                                   'features': ['Analisi', 'Report']}],
        },
        'values': [{'title': 'Qualità', 'description': 'Standard elevati'}],
        'statistics': [{'value': '150+', 'label': 'Condomini'}],
        'team': [
            {'name': f'Member {i}', 'role': 'Tecnico', 'description': 'Esperto',
             'image': f'/images/team/member{i}.jpg'}
            for i in range(1, 6)
        ],
        'footer': {
            'company_info': {'name': 'Sebana Servizi', 'vat_number': '01234567890'},
            'links': [{'href': 'https://example.org', 'label': 'Partner', 'external': True}],
        },
        'stylesheets': ['https://cdn.example.com/fonts.css'],
        'scripts': ['https://cdn.example.com/lib.js'],
    }
    (source / 'content.yml').write_text(yaml.safe_dump(content, allow_unicode=True), encoding='utf-8')
    return str(source)


def create_image_bytes(format='PNG', size=(20, 20), color='red'):
    """Create an image in memory."""
    img = Image.new('RGB', size, color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=format)
    return buffer.getvalue()


@pytest.fixture
def image_source(temp_dir):
    """A directory of source images, including one corrupt file and an excluded subdirectory."""
    source = Path(temp_dir) / 'images-src'
    source.mkdir()
    (source / 'team-mario.jpg').write_bytes(create_image_bytes('JPEG'))
    (source / 'service-fire.png').write_bytes(create_image_bytes('PNG'))
    (source / 'logo.png').write_bytes(create_image_bytes('PNG', color='blue'))
    (source / 'broken.jpg').write_bytes(b'not really a jpeg')
    (source / 'notes.txt').write_text('ignore me')
    excluded = source / 'firmati'
    excluded.mkdir()
    (excluded / 'signed.jpg').write_bytes(create_image_bytes('JPEG'))
    nested = source / 'nested'
    nested.mkdir()
    (nested / 'deep.png').write_bytes(create_image_bytes('PNG'))
    return str(source)


@pytest.fixture
def response_factory():
    """Build mock HTTP responses."""
    return make_response
