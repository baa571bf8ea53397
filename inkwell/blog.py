import logging
import secrets
from datetime import datetime

from .cache import ContentCache
from .comments import AttemptGuard, CommentStore, SESSION_TOKEN_KEY
from .feed import FeedGenerator
from .loader import FileMetadataLoader, is_future_date
from .posts import PostStore
from .renderer import RenderPipeline
from .settings import InkwellSettings
from .stores import FileStore


class Blog:
    """
    Entry point that wires loader, cache, renderer, comments and feeds together.

    Pass a volatile store (e.g. MemoryStore) to cache snapshots and keep
    comments in it; without one, everything goes to a FileStore below cache_dir.
    """

    def __init__(self, settings=None, store=None, clock=None, notifier=None, spam_policies=None):
        if settings is None:
            settings = InkwellSettings()
        elif isinstance(settings, dict):
            settings = InkwellSettings.from_dict(settings)
        self.settings = settings
        self.clock = clock or datetime.now
        self.logger = logging.getLogger('Blog')

        self.store = store if store is not None else FileStore(settings.get('cache_dir', 'cache'))
        self.loader = FileMetadataLoader(
            settings.posts_dir,
            settings.thumbnails_dir,
            settings.thumbnails_url,
            debug=settings.debug,
            clock=self.clock,
        )
        self.cache = ContentCache(self.loader, self.store, debug=settings.debug)
        self.renderer = RenderPipeline(settings.base_url, settings.assets_url)
        self.comments = CommentStore(
            self.store,
            settings.comments_dir,
            guard=AttemptGuard(self.store, limit=int(settings.get('comments.max_attempts', 20))),
            spam_policies=spam_policies,
            notifier=notifier or self.notify_admin,
            clock=self.clock,
            min_length=int(settings.get('comments.min_length', 6)),
            max_length=int(settings.get('comments.max_length', 5000)),
            honeypot_field=settings.get('comments.honeypot_field', 'website_url'),
        )
        self.feeds = FeedGenerator(settings, self.posts, settings.feeds_dir, clock=self.clock)

    def notify_admin(self, slug, comment_id, comment):
        """Default notifier: log the new comment for the configured admin address."""
        recipient = self.settings.get('comments.admin_email')
        if not recipient:
            return
        self.logger.info(f"Notify {recipient}: new comment {comment_id} by {comment.get('name')} on {slug}")

    def posts(self, language=None):
        """A PostStore over the current snapshot, limited to language when it is a known one."""
        store = PostStore(self.cache.get_snapshot(), loader=self.loader, renderer=self.renderer)
        return self._for_language(store, language)

    def _for_language(self, store, language):
        if language and language in self.settings.available_languages:
            return store.filter('language', 'equals', language)
        return store

    def footer_categories(self, store):
        return store.top_categories(10)

    def footer_tags(self, store):
        return store.top_tags(30)

    def get_filtered_post_list(self, kind, name, page=1, language=None):
        """
        Posts of one tag or category for a listing page.

        Returns None when nothing matches or the page number is below 1. A page
        past the last one comes back with an empty post list.
        """
        per_page = int(self.settings.get('blog.per_page', 12))
        all_posts = self.posts(language)

        if kind == 'tag':
            selected = all_posts.filter('tags', 'contains', name)
        elif kind == 'category':
            selected = all_posts.filter('category', 'equals', name)
        else:
            return None

        posts = selected.page_of(page, per_page)
        if posts is None or not selected.count():
            return None

        return {
            'tag': name,
            'category': name,
            'posts': posts,
            'pagination': {
                'page': int(page),
                'total': selected.total_pages(per_page),
            },
            'categories': self.footer_categories(all_posts),
            'tags': self.footer_tags(all_posts),
        }

    def get_post(self, slug, session, language=None):
        """Everything a post page needs, or None if the post cannot be shown."""
        store = self.posts()
        post = store.get(slug)
        if post is None:
            return None
        if not self.settings.debug and is_future_date(post.get('date'), self.clock()):
            return None

        content = store.get_formatted_content(slug)
        if content is None:
            return None

        token = session.get(SESSION_TOKEN_KEY)
        if not token:
            token = secrets.token_hex(16)
            session[SESSION_TOKEN_KEY] = token

        keywords = self.settings.get('blog.base_keywords', '')
        if isinstance(post.get('tags'), list) and post['tags']:
            keywords = ' '.join([keywords] + [str(t) for t in post['tags']]).strip()

        footer = self._for_language(store, language)
        return {
            'keywords': keywords,
            'post': post,
            'content': content,
            'comments': self.comments.list_approved(slug),
            'categories': self.footer_categories(footer),
            'tags': self.footer_tags(footer),
            'form_token': token,
            'recommended': store.recommendations_for(slug, 3),
        }

    def submit_comment(self, slug, fields, session, ip=None):
        if not self.posts().has(slug):
            session.pop(SESSION_TOKEN_KEY, None)
            return False, 'not_found'
        return self.comments.submit(slug, fields, session, ip)

    def moderate_comment(self, slug, comment_id, action):
        return self.comments.moderate(slug, comment_id, action)

    def get_rss_feed_path(self, lang):
        return self.feeds.get_feed_path(lang)

    def rebuild(self):
        """Drop the cached snapshot and regenerate every feed from the fresh one."""
        self.cache.invalidate()
        return self.feeds.generate_all()
