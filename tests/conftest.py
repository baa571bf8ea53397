"""Test configuration and fixtures for Inkwell tests."""

import pytest
import tempfile
import shutil
import os
import sys
from pathlib import Path
from datetime import datetime

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from inkwell.settings import InkwellSettings
from inkwell.stores import MemoryStore

FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0)


def write_post(posts_dir, filename, front_matter, body="Some body text."):
    """Write a markdown post file with the given front matter lines."""
    path = Path(posts_dir) / filename
    path.write_text(f"---\n{front_matter.strip()}\n---\n{body}\n", encoding='utf-8')
    return path


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def clock():
    """A clock frozen at FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def mock_data_dir(temp_dir):
    """Create a data directory with a few posts and thumbnails."""
    data_dir = Path(temp_dir) / 'data'
    posts_dir = data_dir / 'blog' / 'posts'
    thumbnails_dir = data_dir / 'blog' / 'thumbnails'
    posts_dir.mkdir(parents=True)
    thumbnails_dir.mkdir(parents=True)

    write_post(posts_dir, '2024-01-01-first.md', """
title: First Post
slug: first
date: 2024-01-01
published: true
language: en
category: tech
tags: [python, web]
excerpt: The first one.
""", body="\n## Intro\n\nHello [external](https://other.org) and [internal](/about).\n")

    write_post(posts_dir, '2024-02-01-second.md', """
title: Second Post
slug: second
date: 2024-02-01 10:00:00
published: true
language: de
category: tech
tags: [python]
excerpt: Der zweite.
""")

    write_post(posts_dir, '2024-03-01-third.md', """
title: Third Post
slug: third
date: 2024-03-01
published: true
language: en
category: life
tags: [travel]
excerpt: The third one.
""")

    write_post(posts_dir, '2024-04-01-draft.md', """
title: Draft
slug: draft
date: 2024-04-01
published: false
language: en
category: life
""")

    write_post(posts_dir, '2030-01-01-future.md', """
title: Future Post
slug: future
date: 2030-01-01
published: true
language: en
category: life
""")

    (thumbnails_dir / '2024-01-01-first.jpg').write_bytes(b'jpg')
    (thumbnails_dir / '2024-01-01-first-hero.jpg').write_bytes(b'jpg')
    (thumbnails_dir / '2024-02-01-second.jpg').write_bytes(b'jpg')

    return str(data_dir)


@pytest.fixture
def settings(temp_dir, mock_data_dir):
    """Settings pointing at the mock data directory."""
    return InkwellSettings.from_dict({
        'data_dir': mock_data_dir,
        'cache_dir': str(Path(temp_dir) / 'cache'),
        'base_url': 'https://blog.example.com',
        'available_languages': ['en', 'de'],
        'rss': {
            'versions': ['en', 'de', 'all'],
            'amount': 50,
            'blog_base_url': 'https://blog.example.com/blog',
            'title_en': 'Example Blog',
            'title_de': 'Beispiel Blog',
            'description_en': 'Posts in English',
            'description_de': 'Beiträge auf Deutsch',
            'image_relpath': 'img/logo.png',
            'copyright': 'Example Inc.',
        },
        'comments': {
            'admin_email': 'admin@example.com',
        },
    })
