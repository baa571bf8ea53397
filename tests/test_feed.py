"""Tests for RSS feed generation."""

import pytest
import os
import xml.etree.ElementTree as ET
from datetime import datetime

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from inkwell.cache import aggregate
from inkwell.feed import FeedGenerator, localized, render_feed, rfc2822
from inkwell.posts import PostStore
from conftest import FIXED_NOW

POSTS = [
    {'slug': 'hello', 'slug_de': 'hallo', 'title': 'Hello', 'title_de': 'Hallo',
     'excerpt': 'Greetings', 'excerpt_de': 'Grüße', 'category': 'news', 'category_de': 'Neuigkeiten',
     'date': '2024-03-01', 'published': True, 'language': 'en'},
    {'slug': 'tools', 'title': 'Tools & <Tricks>', 'excerpt': 'Handy things',
     'category': 'tech', 'date': '2024-02-01 09:30:00', 'published': True, 'language': 'en'},
    {'slug': 'old', 'title': 'Old', 'excerpt': 'Ancient', 'date': '2023-01-01', 'published': True, 'language': 'en'},
]


def items(xml):
    return ET.fromstring(xml).find('channel').findall('item')


@pytest.fixture
def generator(settings, temp_dir):
    store = PostStore(aggregate({p['slug']: dict(p) for p in POSTS}))
    return FeedGenerator(settings, lambda: store, os.path.join(temp_dir, 'feeds'), clock=lambda: FIXED_NOW)


class TestHelpers:
    """Test cases for feed helper functions."""

    def test_localized(self):
        """Test suffix lookup with fallback to the plain field."""
        post = POSTS[0]
        assert localized(post, 'title', '_de') == 'Hallo'
        assert localized(post, 'title', '_fr') == 'Hello'
        assert localized(post, 'title', '_fr', fallback=False) is None
        assert localized(post, 'title') == 'Hello'
        assert localized(post, 'missing', '_de') is None

    def test_rfc2822(self):
        """Test RFC 2822 formatting and the fallback for bad dates."""
        assert rfc2822('2024-01-01', FIXED_NOW) == 'Mon, 01 Jan 2024 00:00:00 -0000'
        assert rfc2822('garbage', FIXED_NOW) == 'Sat, 01 Jun 2024 12:00:00 -0000'

    def test_render_feed_skips_unpublished_entries(self):
        """Test that entries flagged unpublished are left out."""
        xml = render_feed(
            [{'title': 'Shown', 'link': 'https://x/1', 'published_at': '2024-01-01'},
             {'title': 'Hidden', 'link': 'https://x/2', 'published_at': '2024-01-01', 'is_published': False}],
            'T', 'D', 'https://x', 'https://x/feed', last_build_date=FIXED_NOW,
        )

        titles = [item.find('title').text for item in items(xml)]
        assert titles == ['Shown']

    def test_render_feed_without_image(self):
        """Test that the image block is optional."""
        xml = render_feed([], 'T', 'D', 'https://x', 'https://x/feed', last_build_date=FIXED_NOW)
        channel = ET.fromstring(xml).find('channel')

        assert channel.find('image') is None
        assert channel.find('lastBuildDate').text == 'Sat, 01 Jun 2024 12:00:00 -0000'


class TestFeedGenerator:
    """Test cases for FeedGenerator."""

    def test_english_feed(self, generator):
        """Test channel metadata and entries of a single-language feed."""
        xml = generator.build('en')
        channel = ET.fromstring(xml).find('channel')

        assert channel.find('title').text == 'Example Blog'
        assert channel.find('description').text == 'Posts in English'
        assert channel.find('language').text == 'en'
        assert channel.find('copyright').text == 'Example Inc.'
        assert channel.find('image/url').text == 'https://blog.example.com/img/logo.png'

        entries = items(xml)
        assert [e.find('title').text for e in entries] == ['Hello', 'Tools & <Tricks>', 'Old']
        assert entries[0].find('link').text == 'https://blog.example.com/blog/hello?utm_src=rss'
        assert entries[0].find('guid').text == entries[0].find('link').text
        assert entries[0].find('pubDate').text == 'Fri, 01 Mar 2024 00:00:00 -0000'
        assert entries[1].find('pubDate').text == 'Thu, 01 Feb 2024 09:30:00 -0000'

    def test_localized_feed(self, generator):
        """Test that the German feed uses _de fields where present."""
        entries = items(generator.build('de'))
        first = entries[0]

        assert first.find('title').text == 'Hallo'
        assert first.find('description').text == 'Grüße'
        assert first.find('category').text == 'Neuigkeiten'
        assert first.find('link').text == 'https://blog.example.com/blog/hallo?utm_src=rss'
        assert len(entries) == 1

    def test_single_language_feed_skips_untranslated_posts(self, settings, temp_dir):
        """Test that posts in another language without a variant stay out of the feed."""
        store = PostStore(aggregate({
            'english': {'slug': 'english', 'title': 'English only', 'language': 'en',
                        'date': '2024-01-01', 'published': True},
            'deutsch': {'slug': 'deutsch', 'title': 'Nur Deutsch', 'excerpt': 'Kurz',
                        'language': 'de', 'date': '2024-01-02', 'published': True},
        }))
        generator = FeedGenerator(settings, lambda: store, temp_dir, clock=lambda: FIXED_NOW)

        de_titles = [e.find('title').text for e in items(generator.build('de'))]
        en_titles = [e.find('title').text for e in items(generator.build('en'))]

        assert de_titles == ['Nur Deutsch']
        assert en_titles == ['English only']

    def test_partial_translation_uses_no_plain_fields(self, settings, temp_dir):
        """Test that a translated post never borrows untranslated fields."""
        store = PostStore(aggregate({
            'half': {'slug': 'half', 'title': 'Half', 'title_de': 'Halb', 'excerpt': 'English excerpt',
                     'category': 'misc', 'language': 'en', 'date': '2024-01-01', 'published': True},
        }))
        generator = FeedGenerator(settings, lambda: store, temp_dir, clock=lambda: FIXED_NOW)

        entry = items(generator.build('de'))[0]
        assert entry.find('title').text == 'Halb'
        assert entry.find('description').text is None
        assert entry.find('category') is None
        assert entry.find('link').text == 'https://blog.example.com/blog/half?utm_src=rss'

    def test_all_feed_has_one_entry_per_language(self, generator):
        """Test that the combined feed repeats each post for every language."""
        entries = items(generator.build('all'))
        titles = [e.find('title').text for e in entries]

        assert len(entries) == len(POSTS) * 2
        assert titles[:2] == ['Hello', 'Hallo']

    def test_missing_category_omitted(self, generator):
        """Test that entries without category have no category element."""
        old = items(generator.build('en'))[2]
        assert old.find('category') is None

    def test_escaping(self, generator):
        """Test that markup in titles is escaped in the raw XML."""
        xml = generator.build('en')
        assert 'Tools &amp; &lt;Tricks&gt;' in xml

    def test_amount_cap(self, settings, temp_dir):
        """Test that rss.amount limits the number of posts."""
        settings.settings['rss']['amount'] = 2
        store = PostStore(aggregate({p['slug']: dict(p) for p in POSTS}))
        generator = FeedGenerator(settings, lambda: store, temp_dir, clock=lambda: FIXED_NOW)

        assert len(items(generator.build('en'))) == 2
        assert len(items(generator.build('all'))) == 4

    def test_unpublished_posts_left_out(self, settings, temp_dir):
        """Test that posts without the published flag are not in feeds."""
        posts = {p['slug']: dict(p) for p in POSTS}
        posts['old']['published'] = False
        generator = FeedGenerator(settings, lambda: PostStore(aggregate(posts)), temp_dir)

        assert 'Old' not in [e.find('title').text for e in items(generator.build('en'))]

    def test_unknown_language(self, generator):
        """Test that languages without a configured feed give None."""
        assert generator.build('fr') is None
        assert generator.generate('fr') is None
        assert generator.get_feed_path('fr') is None

    def test_generate_replaces_file(self, generator):
        """Test that generate writes a fresh file every time."""
        path = generator.feed_path('en')
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w') as f:
            f.write('stale')

        generator.generate('en')

        with open(path, encoding='utf-8') as f:
            content = f.read()
        assert content.startswith('<?xml')
        assert path.endswith('feed_en.xml')

    def test_get_feed_path_generates_once(self, generator):
        """Test lazy generation on first request."""
        path = generator.get_feed_path('de')

        assert os.path.exists(path)
        mtime = os.path.getmtime(path)
        assert generator.get_feed_path('de') == path
        assert os.path.getmtime(path) == mtime

    def test_generate_all(self, generator):
        """Test that every configured version is written."""
        written = generator.generate_all()
        assert [os.path.basename(p) for p in written] == ['feed_en.xml', 'feed_de.xml', 'feed_all.xml']

    def test_blog_base_url_fallback(self, temp_dir):
        """Test the default blog base URL."""
        from inkwell.settings import InkwellSettings

        settings = InkwellSettings.from_dict({'base_url': 'https://site.example/'})
        generator = FeedGenerator(settings, lambda: PostStore({}), temp_dir)
        assert generator.blog_base_url == 'https://site.example/blog'
