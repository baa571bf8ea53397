"""RSS 2.0 feed generation from the post store."""

import os
import logging
from datetime import datetime
from email.utils import format_datetime

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .loader import parse_post_date

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')
TRACKING_SUFFIX = '?utm_src=rss'

_env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(['xml']),
    keep_trailing_newline=True,
)


LOCALIZED_FIELDS = ('title', 'category', 'excerpt')


def localized(post, field, suffix='', fallback=True):
    """Value of field for a language suffix like '_de'. Without fallback a missing variant gives None."""
    if suffix and f"{field}{suffix}" in post:
        return post[f"{field}{suffix}"]
    if suffix and not fallback:
        return None
    return post.get(field)


def has_variant(post, suffix):
    """True if the post carries at least one field translated for suffix."""
    return any(f"{field}{suffix}" in post for field in LOCALIZED_FIELDS)


def rfc2822(value, fallback):
    """RFC 2822 date for a front-matter date; unparseable dates use fallback."""
    parsed = parse_post_date(value) or fallback
    return format_datetime(parsed)


def render_feed(entries, title, description, blog_url, feed_url, language='en',
                generator='inkwell', copyright_text='', image_url=None, last_build_date=None):
    """
    Render a complete RSS document.

    Each entry needs title, link, published_at, category and description; an
    entry with is_published set to False is left out.
    """
    last_build_date = last_build_date or datetime.now()
    items = []
    for entry in entries:
        if not entry.get('is_published', True):
            continue
        items.append({
            'title': entry.get('title') or '',
            'link': entry.get('link') or '',
            'pub_date': rfc2822(entry.get('published_at'), last_build_date),
            'category': entry.get('category') or '',
            'description': entry.get('description') or '',
        })
    return _env.get_template('feed.xml').render(
        entries=items,
        title=title or '',
        description=description or '',
        blog_url=blog_url or '',
        feed_url=feed_url or '',
        language=language,
        generator=generator or '',
        copyright=copyright_text or '',
        image_url=image_url,
        last_build_date=format_datetime(last_build_date),
    )


class FeedGenerator:
    """Writes one feed file per language, plus an 'all' feed with every language variant."""

    def __init__(self, settings, posts_provider, output_dir, clock=None):
        self.settings = settings
        self.posts_provider = posts_provider
        self.output_dir = output_dir
        self.clock = clock or datetime.now
        self.logger = logging.getLogger('FeedGenerator')

    @property
    def versions(self):
        return list(self.settings.get('rss.versions', []))

    @property
    def blog_base_url(self):
        return (self.settings.get('rss.blog_base_url') or f"{self.settings.base_url}/blog").rstrip('/')

    def feed_path(self, lang):
        return os.path.join(self.output_dir, f"feed_{lang}.xml")

    def format_entry(self, post, suffix='', fallback=True):
        return {
            'title': localized(post, 'title', suffix, fallback),
            # Slugs fall back to the plain field in every feed
            'link': f"{self.blog_base_url}/{localized(post, 'slug', suffix)}{TRACKING_SUFFIX}",
            'published_at': localized(post, 'published_at', suffix) or post.get('date'),
            'category': localized(post, 'category', suffix, fallback),
            'description': localized(post, 'excerpt', suffix, fallback),
        }

    def collect_entries(self, lang):
        """
        Feed entries for lang, newest posts first, capped at rss.amount posts.

        A single-language feed takes only the '_<lang>' fields of translated
        posts; posts written in lang use their plain fields where no variant
        exists, and all other posts are left out. The 'all' feed has one entry
        per available language for every post.
        """
        amount = int(self.settings.get('rss.amount', 50))
        store = self.posts_provider()
        posts = [p for p in store.sorted_posts('date', 'desc') if p.get('published')][:amount]

        entries = []
        if lang == 'all':
            for post in posts:
                for language in self.settings.available_languages:
                    entries.append(self.format_entry(post, f"_{language}"))
            return entries

        suffix = f"_{lang}"
        for post in posts:
            native = post.get('language') == lang
            if not native and not has_variant(post, suffix):
                continue
            entries.append(self.format_entry(post, suffix, fallback=native))
        return entries

    def build(self, lang):
        """The XML document for lang, or None if lang has no configured feed."""
        if lang not in self.versions:
            return None
        base_url = self.settings.base_url
        image_relpath = self.settings.get('rss.image_relpath')
        return render_feed(
            self.collect_entries(lang),
            title=self.settings.get(f'rss.title_{lang}', base_url),
            description=self.settings.get(f'rss.description_{lang}', base_url),
            blog_url=self.settings.get(f'rss.link_{lang}', base_url),
            feed_url=f"{self.blog_base_url}/feed/{lang}",
            language=lang,
            generator=self.settings.get('rss.generator', 'inkwell'),
            copyright_text=self.settings.get('rss.copyright', ''),
            image_url=f"{base_url}/{image_relpath}" if image_relpath else None,
            last_build_date=self.clock(),
        )

    def generate(self, lang):
        """Build the feed for lang and replace its file. Returns the XML, or None for an unknown language."""
        content = self.build(lang)
        if content is None:
            self.logger.warning(f"No feed configured for language {lang!r}")
            return None

        feed_path = self.feed_path(lang)
        try:
            os.makedirs(self.output_dir, exist_ok=True)
            if os.path.exists(feed_path):
                os.remove(feed_path)
            with open(feed_path, 'w', encoding='utf-8') as f:
                f.write(content)
        except (IOError, OSError, PermissionError) as e:
            self.logger.error(f"Failed to write RSS feed file {feed_path}: {e}")
            return None
        self.logger.info(f"Generating RSS feed {feed_path}")
        return content

    def generate_all(self):
        """Regenerate every configured feed. Returns the paths written."""
        written = []
        for lang in self.versions:
            if self.generate(lang) is not None:
                written.append(self.feed_path(lang))
        return written

    def get_feed_path(self, lang):
        """Path of the feed file for lang, generating it on first use. None for unknown languages."""
        if lang not in self.versions:
            return None
        feed_path = self.feed_path(lang)
        if not os.path.exists(feed_path) and self.generate(lang) is None:
            return None
        return feed_path
