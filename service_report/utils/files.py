"""Filesystem helpers shared by the media extractor and the attachment store."""
from __future__ import annotations
import os
import secrets

SUFFIX_ALPHABET = 'abcdefghijklmnopqrstuvwxyz0123456789'
SUFFIX_LENGTH = 10


def sanitize_filename(name: str | None, default: str = 'attachment') -> str:
    """Strip traversal sequences and path separators from a user supplied name.

    '..' is removed and '/' or '\\' become '_'. Returns default when nothing
    usable is left.
    """
    cleaned = (name or '').strip()
    cleaned = cleaned.replace('..', '')
    cleaned = cleaned.replace('/', '_').replace('\\', '_')
    if cleaned in ('', '.'):
        return default
    return cleaned


def random_suffix(length: int = SUFFIX_LENGTH) -> str:
    return ''.join(secrets.choice(SUFFIX_ALPHABET) for _ in range(length))


def resolve_under(root: str, relative_path: str) -> str:
    """Join relative_path onto root, refusing anything that escapes it."""
    root_abs = os.path.abspath(root)
    target = os.path.abspath(os.path.join(root_abs, relative_path))
    if os.path.commonpath([root_abs, target]) != root_abs:
        raise ValueError(f'path escapes upload root: {relative_path}')
    return target


def remove_quietly(path: str, logger=None) -> bool:
    """Best-effort unlink. Missing files count as removed."""
    try:
        os.remove(path)
    except FileNotFoundError:
        return True
    except OSError:
        if logger is not None:
            logger.exception('failed to remove %s', path)
        return False
    return True

__all__ = ['sanitize_filename', 'random_suffix', 'resolve_under', 'remove_quietly']
