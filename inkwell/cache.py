"""Cache-or-rebuild wrapper around the post loader."""

import json
import logging
import threading

from .stores import StoreError

SNAPSHOT_KEY = 'blog_posts'


def aggregate(posts):
    """
    Build a snapshot dict from a {slug: post} mapping.

    Tags are counted once per post; categories once per post that has one.
    """
    tags = {}
    categories = {}
    for post in posts.values():
        post_tags = post.get('tags')
        if isinstance(post_tags, list):
            for tag in dict.fromkeys(post_tags):
                tags[tag] = tags.get(tag, 0) + 1
        category = post.get('category')
        if category is not None:
            categories[category] = categories.get(category, 0) + 1
    return {'posts': posts, 'tags': tags, 'categories': categories}


class ContentCache:
    """
    Serves the post snapshot from a key-value store, rebuilding it on a miss.

    Misses are serialized per key so concurrent callers trigger a single
    directory scan; hits never take the lock.
    """

    # Locks are shared between instances so short-lived caches on the same key still single-flight
    _locks = {}
    _locks_guard = threading.Lock()

    def __init__(self, loader, store, key=SNAPSHOT_KEY, debug=False):
        self.loader = loader
        self.store = store
        self.key = key
        self.debug = debug
        self.builds = 0
        self.logger = logging.getLogger('ContentCache')

    def _lock_for(self, key):
        lock_id = (id(self.store), key)
        with self._locks_guard:
            lock = self._locks.get(lock_id)
            if lock is None:
                lock = self._locks[lock_id] = threading.Lock()
            return lock

    def build_snapshot(self):
        """Scan the posts directory and aggregate a fresh snapshot."""
        self.builds += 1
        posts = {}
        for post in self.loader.load():
            posts[post['slug']] = post
        return aggregate(posts)

    def _read(self):
        try:
            raw = self.store.get(self.key)
        except StoreError as e:
            self.logger.warning(f"Cache read failed for {self.key}: {e}")
            return None
        if raw is None:
            return None
        try:
            snapshot = json.loads(raw)
        except (TypeError, ValueError):
            self.logger.warning(f"Discarding corrupted snapshot under {self.key}")
            return None
        if not isinstance(snapshot, dict) or 'posts' not in snapshot:
            return None
        return snapshot

    def get_snapshot(self):
        """Return the current snapshot, building and storing it if the cache is empty."""
        if self.debug:
            return self.build_snapshot()

        snapshot = self._read()
        if snapshot is not None:
            return snapshot

        with self._lock_for(self.key):
            # Another caller may have filled the cache while we waited
            snapshot = self._read()
            if snapshot is not None:
                return snapshot

            self.logger.info(f"Snapshot cache miss for {self.key}, rebuilding")
            snapshot = self.build_snapshot()
            serialized = json.dumps(snapshot)
            try:
                self.store.set(self.key, serialized)
            except StoreError as e:
                self.logger.error(f"Cache write failed for {self.key}: {e}")
            # Hand out a decoded copy so callers never share the object that was cached
            return json.loads(serialized)

    def invalidate(self):
        """Drop the cached snapshot; the next get_snapshot() rebuilds."""
        try:
            self.store.delete(self.key)
            self.logger.info(f"Invalidated snapshot cache {self.key}")
            return True
        except StoreError as e:
            self.logger.error(f"Cache invalidation failed for {self.key}: {e}")
            return False
