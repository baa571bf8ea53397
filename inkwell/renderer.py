import re
import logging

import markdown

CARD_PATTERN = re.compile(r'^\+---\+[ \t]*(\r\n|\r|\n)(.*?)(\r\n|\r|\n)\+---\+[ \t]*$', re.S | re.M)

LINK_PATTERN = re.compile(r'<a\s+([^>]*?\s*href=["\'])([^"\'>]+)(["\'][^>]*?)>', re.I)
TARGET_PATTERN = re.compile(r'\s+target=["\'][^"\'>]*["\']', re.I)

# Presentation classes added to the converter output (Bootstrap 5 markup)
CLASS_REPLACEMENTS = [
    ('<h2>', '<h2 class="h2 mt-4">'),
    ('<h3>', '<h3 class="h3 mt-4">'),
    ('<h4>', '<h4 class="h4 mt-4">'),
    ('<h5>', '<h5 class="h5 mt-4">'),
    ('<pre>', '<pre class="line-numbers">'),
    ('<code>', '<code class="language-shell">'),
    ('<table>', '<table class="table table-striped">'),
    ('<img ', '<img class="img-fluid" '),
]

ASSETS_PLACEHOLDER = '*ASSETS*'
BASEURL_PLACEHOLDER = '*BASEURL*'


def markdown_to_html(text):
    """Convert post markdown to HTML. Raw HTML passes through; markdown="1" blocks are parsed."""
    return markdown.markdown(text, extensions=['extra', 'sane_lists'], output_format='html')


def expand_cards(text):
    """Wrap every +---+ delimited block in a card container."""
    if '+---+' not in text:
        return text

    def replace(match):
        # Blank lines keep the container a block element for the markdown converter
        return (
            f'\n<div class="card" markdown="1"><div class="card-body" markdown="1">'
            f'{match.group(1)}{match.group(2)}{match.group(3)}</div></div>\n'
        )

    return CARD_PATTERN.sub(replace, text)


def add_classes(html):
    for old, new in CLASS_REPLACEMENTS:
        html = html.replace(old, new)
    return html


def harden_external_links(html, base_url):
    """Open links that leave the site in a new tab. Internal and root-relative links stay as they are."""

    def replace(match):
        full, pre_href, url, post_href = match.group(0), match.group(1), match.group(2), match.group(3)
        if url.startswith('/') or (base_url and url.startswith(base_url)):
            return full
        if TARGET_PATTERN.search(full):
            return TARGET_PATTERN.sub(' target="_blank"', full, count=1)
        return f'<a {pre_href}{url}{post_href} target="_blank">'

    return LINK_PATTERN.sub(replace, html)


class RenderPipeline:
    """Turns a post's markdown body into the HTML shown on the post page."""

    def __init__(self, base_url, assets_url=None, converter=None):
        self.base_url = (base_url or '').rstrip('/')
        self.assets_url = (assets_url or f"{self.base_url}/data/blog/assets").rstrip('/')
        self.converter = converter or markdown_to_html
        self.logger = logging.getLogger('RenderPipeline')

    def render(self, raw):
        text = expand_cards(raw)
        html = self.converter(text)
        html = add_classes(html)
        html = html.replace(ASSETS_PLACEHOLDER, self.assets_url)
        html = html.replace(BASEURL_PLACEHOLDER, self.base_url)
        return harden_external_links(html, self.base_url)
