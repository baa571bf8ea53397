#!/usr/bin/env python3
"""
Command-line interface for Inkwell.
"""

import os
import sys
import logging
import argparse
from datetime import datetime
from typing import List, Optional

from . import __version__
from .blog import Blog
from .settings import InkwellSettings


def setup_logging(verbose: bool = False, log_dir: Optional[str] = None) -> logging.Logger:
    """Console output for humans, full debug log in a timestamped file."""
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    if not any(getattr(h, '_inkwell', False) for h in logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        console_handler.setFormatter(logging.Formatter('%(message)s'))
        console_handler._inkwell = True
        logger.addHandler(console_handler)

        logs_dir = log_dir or os.path.join(os.getcwd(), 'logs')
        try:
            os.makedirs(logs_dir, exist_ok=True)
            log_filename = datetime.now().strftime('inkwell_%Y-%m-%d_%H-%M-%S.log')
            file_handler = logging.FileHandler(os.path.join(logs_dir, log_filename))
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
            file_handler._inkwell = True
            logger.addHandler(file_handler)
        except (IOError, OSError) as e:
            print(f"Warning: file logging disabled: {e}", file=sys.stderr)

    return logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Inkwell - file-backed blog engine')
    parser.add_argument('--config-dir', type=str,
                        help='Directory containing inkwell.yml / inkwell.json')
    parser.add_argument('--data-dir', type=str,
                        help='Data directory containing blog/posts and blog/thumbnails')
    parser.add_argument('--base-url', type=str, help='Site base URL')
    parser.add_argument('--debug', action='store_true', default=None,
                        help='Preview mode: no caching, show unpublished dates from the future')
    parser.add_argument('--verbose', action='store_true', help='Log debug output to the console')
    parser.add_argument('--log-dir', type=str, help='Directory for log files')
    parser.add_argument('--init', type=str, choices=['yml', 'yaml', 'json'],
                        help='Create a sample configuration file')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command')

    feeds = subparsers.add_parser('feeds', help='Regenerate RSS feeds')
    feeds.add_argument('languages', nargs='*', help='Feed languages (default: all configured)')

    subparsers.add_parser('clear-cache', help='Drop the cached post snapshot')
    subparsers.add_parser('stats', help='Show post, tag and category counts')

    backup = subparsers.add_parser('backup', help='Write the comment backup file of a post')
    backup.add_argument('slug')

    restore = subparsers.add_parser('restore', help='Replace live comments of a post with its backup')
    restore.add_argument('slug')

    return parser


def run(args, blog: Blog) -> int:
    logger = logging.getLogger('Inkwell')

    if args.command == 'feeds':
        languages = args.languages or blog.feeds.versions
        failed = False
        for lang in languages:
            if blog.feeds.generate(lang) is None:
                logger.error(f"Could not generate feed for {lang!r}")
                failed = True
            else:
                logger.info(f"Wrote {blog.feeds.feed_path(lang)}")
        return 1 if failed else 0

    if args.command == 'clear-cache':
        return 0 if blog.cache.invalidate() else 1

    if args.command == 'stats':
        store = blog.posts()
        logger.info(f"Total posts: {store.count()}")
        for tag, count in store.top_tags(10).items():
            logger.info(f"  tag {tag}: {count}")
        for category, count in store.top_categories(10).items():
            logger.info(f"  category {category}: {count}")
        return 0

    if args.command == 'backup':
        if blog.comments.backup(args.slug):
            logger.info(f"Backed up comments of {args.slug}")
            return 0
        logger.error(f"No comments backed up for {args.slug}")
        return 1

    if args.command == 'restore':
        restored = blog.comments.restore(args.slug)
        if restored is None:
            logger.error(f"No usable comment backup for {args.slug}")
            return 1
        logger.info(f"Restored {restored} comments of {args.slug}")
        return 0

    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Handle init command
    if args.init:
        settings_loader = InkwellSettings(args.config_dir)
        try:
            config_path = settings_loader.create_sample_config(args.init)
        except (IOError, OSError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"Created sample configuration file: {config_path}")
        return

    if not args.command:
        parser.print_help()
        return

    setup_logging(args.verbose, args.log_dir)

    try:
        settings_loader = InkwellSettings(args.config_dir)
        settings_loader.load_settings()

        # Command line arguments take precedence
        settings_loader.merge_with_args({
            'data_dir': args.data_dir,
            'base_url': args.base_url,
            'debug': args.debug,
        })

        blog = Blog(settings_loader)
        status = run(args, blog)
    except (IOError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if status:
        sys.exit(status)


if __name__ == '__main__':
    main()
