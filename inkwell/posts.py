import math
import logging
from datetime import datetime

from .cache import aggregate
from .loader import parse_post_date

OPERATORS = {
    'equals': 'equals',
    '=': 'equals',
    'contains': 'contains',
    'in': 'contains',
}

_MISSING = object()


def _sort_value(value):
    """Comparable key for mixed front-matter values. Missing values sort after everything else."""
    if value is None or value is _MISSING:
        return (3, 0)
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float)):
        return (0, value)
    parsed = parse_post_date(value) if isinstance(value, str) else None
    if parsed is not None:
        return (1, parsed)
    return (2, str(value).lower())


def _date_key(post):
    return parse_post_date(post.get('date')) or datetime.min


class PostStore:
    """
    Filterable, sortable view over one content snapshot.

    Filtering never touches the snapshot it was built from; it returns a new
    store whose tag and category counts are recomputed from the remaining posts.
    """

    def __init__(self, snapshot, loader=None, renderer=None):
        posts = snapshot.get('posts') or {}
        self.snapshot = {
            'posts': posts,
            'tags': snapshot.get('tags', {}),
            'categories': snapshot.get('categories', {}),
        }
        self.loader = loader
        self.renderer = renderer
        self.logger = logging.getLogger('PostStore')

    def _derive(self, posts):
        return PostStore(aggregate(posts), loader=self.loader, renderer=self.renderer)

    def get_all(self):
        return self.snapshot['posts']

    def count(self):
        return len(self.snapshot['posts'])

    def has(self, slug):
        return slug in self.snapshot['posts']

    def get(self, slug):
        """Post dict for slug, or None."""
        return self.snapshot['posts'].get(slug)

    def get_tags(self):
        """Tag -> number of posts carrying it."""
        return self.snapshot['tags']

    def get_categories(self):
        """Category -> number of posts in it."""
        return self.snapshot['categories']

    def filter(self, field, operator, value):
        """
        Keep only posts matching the condition and return them as a new store.

        'equals' keeps posts whose field equals value exactly; 'contains' keeps
        posts whose field is a list containing value. Posts without the field
        never match.
        """
        op = OPERATORS.get(operator)
        if op is None:
            raise ValueError(f"Unsupported filter operator: {operator}")

        kept = {}
        for slug, post in self.snapshot['posts'].items():
            current = post.get(field, _MISSING)
            if op == 'equals':
                if current is not _MISSING and current == value:
                    kept[slug] = post
            elif isinstance(current, list) and value in current:
                kept[slug] = post
        return self._derive(kept)

    def sorted_posts(self, order_by='date', order_dir='desc'):
        """All posts sorted by order_by, ties broken by title ascending."""
        posts = sorted(self.snapshot['posts'].values(), key=lambda p: str(p.get('title', '')).lower())
        descending = str(order_dir).lower() == 'desc'
        if descending:
            # Missing values still go last when the order is reversed
            present = [p for p in posts if p.get(order_by) is not None]
            missing = [p for p in posts if p.get(order_by) is None]
            present.sort(key=lambda p: _sort_value(p.get(order_by)), reverse=True)
            return present + missing
        posts.sort(key=lambda p: _sort_value(p.get(order_by, _MISSING)))
        return posts

    def page_of(self, page, per_page=10, order_by='date', order_dir='desc'):
        """
        Posts on the given 1-based page, or None for a page number below 1.

        Pages past the end come back empty.
        """
        try:
            page = int(page)
        except (TypeError, ValueError):
            return None
        if page < 1 or per_page < 1:
            return None
        skip = (page - 1) * per_page
        return self.sorted_posts(order_by, order_dir)[skip:skip + per_page]

    def total_pages(self, per_page=10):
        if per_page < 1:
            return 1
        return max(1, math.ceil(self.count() / per_page))

    def top_tags(self, limit=30):
        """Most used tags, ties ordered by tag name."""
        ordered = sorted(self.snapshot['tags'].items(), key=lambda item: str(item[0]))
        ordered.sort(key=lambda item: item[1], reverse=True)
        return dict(ordered[:limit])

    def top_categories(self, limit=10):
        """Most used categories."""
        ordered = sorted(self.snapshot['categories'].items(), key=lambda item: item[1], reverse=True)
        return dict(ordered[:limit])

    def recommendations_for(self, slug, amount=3):
        """
        Posts to suggest next to slug.

        Newest posts of the same category come first, then the newest posts
        overall fill the remaining slots.
        """
        target = self.get(slug)
        if target is None or amount < 1:
            return []

        newest = sorted(self.snapshot['posts'].values(), key=_date_key, reverse=True)
        category = target.get('category')
        same_category = [p for p in newest if category is not None and p.get('category') == category]

        picked = []
        seen = {slug}
        for post in same_category + newest:
            if len(picked) >= amount:
                break
            if post['slug'] in seen:
                continue
            seen.add(post['slug'])
            picked.append(post)
        return picked

    def get_content(self, slug):
        """Raw markdown body of a post, or None if the post or its file is missing."""
        post = self.get(slug)
        if post is None or self.loader is None:
            return None
        return self.loader.read_body(post['filename'])

    def get_formatted_content(self, slug):
        """Rendered HTML of a post, or None if it cannot be found."""
        content = self.get_content(slug)
        if content is None:
            self.logger.info(f"No content found for post {slug}")
            return None
        return self.renderer.render(content)
