import os
import logging
from datetime import datetime, date

import yaml

# Date formats accepted besides ISO-8601
DATE_FORMATS = ['%Y-%m-%d %H:%M:%S', '%Y-%m-%d %H:%M', '%b %d, %Y', '%d.%m.%Y']


def split_front_matter(content):
    """Split raw file content into (yaml_text, body). yaml_text is None without front matter."""
    parts = content.split('---', 2)
    if len(parts) >= 3 and not parts[0].strip():
        return parts[1], parts[2]
    return None, content


def parse_post_date(value):
    """
    Parse a front-matter date value into a naive local datetime.

    Values with a UTC offset are converted to local time before the offset is
    dropped, so they compare correctly with the local clock.

    Returns None when the value cannot be understood. Callers decide what an
    unparseable date means; see is_future_date().
    """
    if isinstance(value, datetime):
        return value.astimezone().replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
            return parsed.astimezone().replace(tzinfo=None) if parsed.tzinfo else parsed
        except ValueError:
            pass
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
    return None


def is_future_date(value, now):
    """True if value is a parseable date after now. Unparseable dates are never in the future."""
    parsed = parse_post_date(value)
    if parsed is None:
        return False
    return parsed > now


def _normalize(value):
    """Turn YAML date objects into ISO strings so posts survive a JSON round trip."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


class FileMetadataLoader:
    """Reads post metadata from a directory of markdown files with YAML front matter."""

    def __init__(self, posts_dir, thumbnails_dir, thumbnails_url='', debug=False, clock=None):
        self.posts_dir = posts_dir
        self.thumbnails_dir = thumbnails_dir
        self.thumbnails_url = (thumbnails_url or '').rstrip('/')
        self.debug = debug
        self.clock = clock or datetime.now
        self.logger = logging.getLogger('FileMetadataLoader')

    def get_post_files(self):
        """Markdown file names in the posts directory, newest name first."""
        if not os.path.isdir(self.posts_dir):
            return []
        return sorted((f for f in os.listdir(self.posts_dir) if f.endswith('.md')), reverse=True)

    def read_file(self, filename):
        """Raw file content, or None if the file is missing or unreadable."""
        path = os.path.join(self.posts_dir, os.path.basename(filename))
        if not os.path.isfile(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except (IOError, OSError, UnicodeDecodeError) as e:
            self.logger.error(f"Failed to read post file {path}: {e}")
            return None

    def parse_metadata(self, filename):
        """Parse the front matter of one post file. Returns {} if missing or invalid."""
        content = self.read_file(filename)
        if content is None:
            return {}
        yaml_text, _ = split_front_matter(content)
        if yaml_text is None:
            return {}
        try:
            metadata = yaml.safe_load(yaml_text)
        except yaml.YAMLError as e:
            self.logger.warning(f"Invalid YAML front matter in {filename}: {e}")
            return {}
        if not isinstance(metadata, dict):
            return {}
        return _normalize(metadata)

    def read_body(self, filename):
        """Markdown body of a post file without its front matter, or None if the file is missing."""
        content = self.read_file(filename)
        if content is None:
            return None
        _, body = split_front_matter(content)
        return body

    def resolve_image(self, filename):
        """Public URL of a file in the thumbnails directory, or None if it does not exist."""
        if not filename:
            return None
        name = os.path.basename(str(filename))
        if os.path.isfile(os.path.join(self.thumbnails_dir, name)):
            return f"{self.thumbnails_url}/{name}"
        return None

    def build_post(self, filename):
        """
        Build the post dict for one file, or None if it must not be published.

        Skips files without front matter, unpublished posts and, outside debug
        mode, posts dated in the future.
        """
        metadata = self.parse_metadata(filename)
        if not metadata:
            return None
        if not metadata.get('published'):
            return None
        if not self.debug and is_future_date(metadata.get('date'), self.clock()):
            self.logger.debug(f"Hiding future post {filename}")
            return None

        post = dict(metadata)
        post['filename'] = filename
        post['slug'] = str(metadata.get('slug') or os.path.splitext(filename)[0])

        thumbnail_name = metadata.get('thumbnail_filename') or os.path.splitext(filename)[0] + '.jpg'
        post['thumbnail_url'] = self.resolve_image(thumbnail_name)

        hero_name = metadata.get('hero_filename') or str(thumbnail_name).replace('.jpg', '-hero.jpg')
        post['hero_url'] = self.resolve_image(hero_name)
        return post

    def load(self):
        """Load all publishable posts, in reverse filename order."""
        posts = []
        for filename in self.get_post_files():
            try:
                post = self.build_post(filename)
            except Exception as e:
                self.logger.error(f"Error processing {filename}: {e}")
                continue
            if post is not None:
                posts.append(post)
        self.logger.info(f"Loaded {len(posts)} posts from {self.posts_dir}")
        return posts
