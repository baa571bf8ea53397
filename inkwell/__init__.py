"""
Inkwell - a file-backed blog engine.

Inkwell reads Markdown posts with YAML front matter, caches their metadata in
a key-value store, filters and paginates them by tag, category and language,
renders post bodies to HTML, manages moderated reader comments and writes
RSS feeds per language.
"""

__version__ = "1.0.0"

from .blog import Blog
from .cache import ContentCache
from .comments import CommentStore
from .feed import FeedGenerator
from .loader import FileMetadataLoader
from .posts import PostStore
from .renderer import RenderPipeline
from .settings import InkwellSettings
from .stores import FileStore, MemoryStore, StoreError

__all__ = [
    'Blog',
    'CommentStore',
    'ContentCache',
    'FeedGenerator',
    'FileMetadataLoader',
    'FileStore',
    'InkwellSettings',
    'MemoryStore',
    'PostStore',
    'RenderPipeline',
    'StoreError',
]
