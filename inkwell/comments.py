"""
Moderated reader comments.

Comments live in one hash per post in the key-value store and are mirrored
into a YAML backup file after every moderation action.
"""

import os
import re
import hmac
import json
import logging
import secrets
import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import mistune
import yaml
from email_validator import EmailNotValidError, validate_email

from .stores import StoreError

COMMENTS_KEY_PREFIX = 'blog_post_comments_'
BLOCKLIST_KEY = 'blog_comment_blocklist'
ATTEMPTS_KEY_PREFIX = 'login_attempts_'
SESSION_TOKEN_KEY = 'form_token'
ACTIONS = ('approve', 'remove', 'removeblock')

_SAFE_SLUG_RE = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]*$')
_TAG_RE = re.compile(r'<[^>]+>')
_SCHEME_RE = re.compile(r'^[a-z][a-z0-9+.-]*://', re.I)


def validate_slug(slug: str) -> str:
    """Reject slugs that could escape the backup directory."""
    if not slug or '..' in slug or not _SAFE_SLUG_RE.match(slug):
        raise ValueError(f"Invalid post slug: {slug!r}")
    return slug


def strip_tags(text) -> str:
    return _TAG_RE.sub('', str(text or '')).strip()


def normalize_website(website: str) -> str:
    website = (website or '').strip()
    if website and not _SCHEME_RE.match(website):
        return 'http://' + website
    return website


class SpamPolicy:
    """A check that flags a comment message as spam."""

    def is_spam(self, text: str) -> bool:
        raise NotImplementedError


class ScriptRangePolicy(SpamPolicy):
    """Flags messages containing characters from blocked Unicode ranges."""

    DEFAULT_RANGES = [
        (0x0400, 0x04FF),  # Cyrillic
        (0x4E00, 0x9FFF),  # CJK Unified Ideographs
    ]

    def __init__(self, ranges=None):
        self.ranges = list(ranges or self.DEFAULT_RANGES)

    def is_spam(self, text):
        for char in text:
            code = ord(char)
            for start, end in self.ranges:
                if start <= code <= end:
                    return True
        return False


class AttemptGuard:
    """
    Counts failed attempts per IP address.

    The counter keys are the ones the login throttle uses, so failed comment
    submissions and failed logins share one budget.
    """

    def __init__(self, store, limit: int = 20, window: int = 3600):
        self.store = store
        self.limit = limit
        self.window = window

    def _key(self, ip):
        return f"{ATTEMPTS_KEY_PREFIX}{ip}"

    def count(self, ip) -> int:
        value = self.store.get(self._key(ip))
        try:
            return int(value) if value is not None else 0
        except ValueError:
            return 0

    def record_failure(self, ip) -> int:
        return self.store.incr(self._key(ip), ttl=self.window)

    def is_locked(self, ip) -> bool:
        return self.count(ip) >= self.limit

    def reset(self, ip) -> None:
        self.store.delete(self._key(ip))


class CommentRenderer(mistune.HTMLRenderer):
    """Restricted markdown for reader comments: escaped HTML, small headings, links open elsewhere."""

    def __init__(self):
        super().__init__(escape=True)

    def heading(self, text, level, **attrs):
        return '<h5>' + text + '</h5>\n'

    def link(self, text, url, title=None):
        html = '<a href="' + self.safe_url(url) + '"'
        if title:
            html += ' title="' + mistune.escape(title) + '"'
        return html + ' target="_blank" rel="nofollow noopener">' + text + '</a>'


def create_comment_parser():
    """Create a Mistune parser with the comment renderer; newlines become line breaks."""
    return mistune.create_markdown(
        renderer=CommentRenderer(),
        hard_wrap=True,
        plugins=['strikethrough']
    )


class CommentStore:
    def __init__(self, store, backup_dir, guard=None, spam_policies=None, notifier=None,
                 clock=None, min_length=6, max_length=5000, honeypot_field='website_url'):
        self.store = store
        self.backup_dir = backup_dir
        self.guard = guard or AttemptGuard(store)
        self.spam_policies = list(spam_policies) if spam_policies is not None else [ScriptRangePolicy()]
        self.notifier = notifier
        self.clock = clock or datetime.now
        self.min_length = min_length
        self.max_length = max_length
        self.honeypot_field = honeypot_field
        self.logger = logging.getLogger('CommentStore')
        self.markdown_parser = create_comment_parser()
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _key(self, slug):
        return f"{COMMENTS_KEY_PREFIX}{slug}"

    def _lock_for(self, slug):
        with self._locks_guard:
            lock = self._locks.get(slug)
            if lock is None:
                lock = self._locks[slug] = threading.Lock()
            return lock

    def backup_path(self, slug) -> str:
        return os.path.join(self.backup_dir, f"{validate_slug(slug)}.yml")

    def _load_all(self, slug) -> Dict[str, dict]:
        comments = {}
        for comment_id, raw in self.store.hgetall(self._key(slug)).items():
            try:
                comment = json.loads(raw)
            except (TypeError, ValueError):
                self.logger.warning(f"Skipping unreadable comment {comment_id} on {slug}")
                continue
            if isinstance(comment, dict):
                comments[comment_id] = comment
        return comments

    # Submission

    def blocked_ips(self) -> List[str]:
        value = self.store.get(BLOCKLIST_KEY) or ''
        return [ip for ip in value.split(';') if ip]

    def _check(self, fields, session, ip) -> Tuple[Optional[str], dict]:
        """Run the submission gates. Returns (reason, cleaned) where reason is None when all pass."""
        if str(fields.get(self.honeypot_field) or '').strip():
            return 'honeypot', {}

        name = strip_tags(fields.get('name'))[:200]
        msg = strip_tags(fields.get('msg'))
        if not name or not msg:
            return 'missing_fields', {}
        if len(msg) <= self.min_length:
            return 'too_short', {}
        msg = msg[:self.max_length]

        email = str(fields.get('email') or '').strip()
        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError:
            return 'invalid_email', {}

        expected = session.get(SESSION_TOKEN_KEY)
        submitted = fields.get(SESSION_TOKEN_KEY)
        if not expected or not submitted or not hmac.compare_digest(
                str(expected).encode('utf-8'), str(submitted).encode('utf-8')):
            return 'invalid_token', {}

        for policy in self.spam_policies:
            if policy.is_spam(msg):
                return 'spam', {}

        if ip and ip in self.blocked_ips():
            return 'blocked', {}

        return None, {
            'name': name,
            'email': email,
            'website': strip_tags(fields.get('website'))[:500],
            'msg': msg,
        }

    def submit(self, slug, fields, session, ip=None) -> Tuple[bool, Optional[str]]:
        """
        Validate and store a new, unapproved comment.

        Returns (True, comment_id) or (False, reason). The reason is for logs
        only; submitters should always see the same rejection. The session's
        form token is consumed whatever the outcome.
        """
        try:
            validate_slug(slug)
            if ip and self.guard.is_locked(ip):
                self.logger.debug(f"Ignoring comment from {ip}: too many failed attempts")
                return False, 'too_many_attempts'

            reason, cleaned = self._check(fields, session, ip)
            if reason:
                self.logger.warning(f"Rejected comment on {slug} from {ip}: {reason}")
                if ip:
                    self.guard.record_failure(ip)
                return False, reason

            comment = dict(cleaned)
            comment['created_at'] = self.clock().isoformat()
            comment['ip'] = ip
            comment['approved'] = False
            comment_id = secrets.token_hex(16)
            self.store.hset(self._key(slug), comment_id, json.dumps(comment))
        except StoreError as e:
            self.logger.error(f"Comment store unavailable while submitting on {slug}: {e}")
            return False, 'store'
        except ValueError as e:
            self.logger.warning(f"Rejected comment: {e}")
            return False, 'invalid_slug'
        finally:
            session.pop(SESSION_TOKEN_KEY, None)

        self.logger.info(f"New comment {comment_id} on {slug} awaiting moderation")
        self._notify(slug, comment_id, comment)
        return True, comment_id

    def _notify(self, slug, comment_id, comment):
        if self.notifier is None:
            return
        try:
            self.notifier(slug, comment_id, comment)
        except Exception as e:
            self.logger.error(f"Comment notification failed for {slug}/{comment_id}: {e}")

    # Reading

    def render_message(self, msg) -> str:
        return self.markdown_parser(msg or '')

    def get_all(self, slug) -> List[dict]:
        """Every comment of a post including unapproved ones, newest first."""
        try:
            comments = self._load_all(slug)
        except StoreError as e:
            self.logger.error(f"Comment store unavailable while reading {slug}: {e}")
            return []
        result = [dict(comment, id=comment_id) for comment_id, comment in comments.items()]
        return self._sort(result)

    @staticmethod
    def _sort(comments):
        comments.sort(key=lambda c: str(c.get('name', '')).lower())
        comments.sort(key=lambda c: str(c.get('created_at', '')), reverse=True)
        return comments

    def list_approved(self, slug) -> List[dict]:
        """Approved comments ready for display, newest first."""
        approved = []
        for comment in self.get_all(slug):
            if comment.get('approved') is not True:
                continue
            comment['msg'] = self.render_message(comment.get('msg'))
            comment['website'] = normalize_website(comment.get('website'))
            approved.append(comment)
        return approved

    # Moderation

    def moderate(self, slug, comment_id, action) -> bool:
        """Apply approve, remove or removeblock to one comment, then rewrite the backup."""
        if action not in ACTIONS:
            self.logger.warning(f"Unknown moderation action {action!r}")
            return False
        try:
            validate_slug(slug)
        except ValueError as e:
            self.logger.warning(str(e))
            return False

        key = self._key(slug)
        with self._lock_for(slug):
            try:
                raw = self.store.hget(key, comment_id)
                if raw is None:
                    self.logger.info(f"Comment {comment_id} not found on {slug}")
                    return False
                comment = json.loads(raw)

                if action == 'approve':
                    comment['approved'] = True
                    self.store.hset(key, comment_id, json.dumps(comment))
                else:
                    # The blocklist write has to succeed before the comment is deleted
                    if action == 'removeblock' and comment.get('ip'):
                        self._block_ip(comment['ip'])
                    self.store.hdel(key, comment_id)
                comments = self._load_all(slug)
            except StoreError as e:
                self.logger.error(f"Comment store unavailable while moderating {slug}/{comment_id}: {e}")
                return False
            except (TypeError, ValueError):
                self.logger.error(f"Comment {comment_id} on {slug} is not valid JSON")
                return False

            self.logger.info(f"Comment {comment_id} on {slug}: {action}")
            if not comments:
                return True
            return self._write_backup(slug, comments)

    def _block_ip(self, ip):
        blocked = self.blocked_ips()
        if ip not in blocked:
            blocked.append(ip)
            self.store.set(BLOCKLIST_KEY, ';'.join(blocked))
            self.logger.info(f"Blocked IP {ip} for comments")

    # Backup and restore

    def _write_backup(self, slug, comments) -> bool:
        path = self.backup_path(slug)
        try:
            os.makedirs(self.backup_dir, exist_ok=True)
            if os.path.exists(path):
                os.remove(path)
            with open(path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(comments, f, allow_unicode=True, sort_keys=True)
        except (IOError, OSError) as e:
            self.logger.error(f"Failed to write comment backup {path}: {e}")
            return False
        self.logger.debug(f"Backed up {len(comments)} comments of {slug}")
        return True

    def backup(self, slug) -> bool:
        """
        Write all comments of a post to its YAML backup file.

        Nothing is written for a post without comments, so an older backup
        file stays in place.
        """
        try:
            comments = self._load_all(slug)
        except StoreError as e:
            self.logger.error(f"Comment store unavailable while backing up {slug}: {e}")
            return False
        if not comments:
            return False
        return self._write_backup(slug, comments)

    def restore(self, slug) -> Optional[int]:
        """
        Replace the live comments of a post with the backup file.

        Live comments missing from the backup are lost. Returns the number of
        restored comments, or None if there is no usable backup.
        """
        path = self.backup_path(slug)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                comments = yaml.safe_load(f) or {}
        except (IOError, OSError) as e:
            self.logger.error(f"Failed to read comment backup {path}: {e}")
            return None
        except yaml.YAMLError as e:
            self.logger.error(f"Invalid YAML in comment backup {path}: {e}")
            return None
        if not isinstance(comments, dict):
            self.logger.error(f"Comment backup {path} does not contain a mapping")
            return None

        key = self._key(slug)
        with self._lock_for(slug):
            try:
                self.store.delete(key)
                for comment_id, comment in comments.items():
                    self.store.hset(key, str(comment_id), json.dumps(comment, default=str))
            except StoreError as e:
                self.logger.error(f"Comment store unavailable while restoring {slug}: {e}")
                return None
        self.logger.info(f"Restored {len(comments)} comments of {slug}")
        return len(comments)
