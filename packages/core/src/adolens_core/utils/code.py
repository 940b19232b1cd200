"""Decide which changed files are worth sending to the model.

All predicates here are total: they accept any string and never raise, so
the orchestrator can call them inline while partitioning the change list.
"""

from __future__ import annotations

import fnmatch
import re

from adolens_core.models import ChangeKind

SKIP_FILENAMES = {
    "package-lock.json",
    "pnpm-lock.yaml",
    "yarn.lock",
    "composer.lock",
    "Gemfile.lock",
    "Cargo.lock",
    "poetry.lock",
    ".DS_Store",
    "Thumbs.db",
}

# Compound suffixes (".min.js") are matched with endswith, so they live in
# the same set as single extensions.
SKIP_EXTENSIONS = {
    ".lock",
    ".min.js",
    ".min.css",
    ".bundle.js",
    ".map",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".ico",
    ".bmp",
    ".webp",
    ".woff",
    ".woff2",
    ".ttf",
    ".eot",
    ".otf",
    ".exe",
    ".dll",
    ".so",
    ".dylib",
    ".bin",
    ".dat",
    ".pdf",
    ".doc",
    ".docx",
    ".xls",
    ".xlsx",
    ".zip",
    ".tar",
    ".gz",
    ".rar",
}

SKIP_PATH_PATTERNS = [
    re.compile(r"node_modules/"),
    re.compile(r"vendor/"),
    re.compile(r"\.generated/"),
    re.compile(r"dist/"),
    re.compile(r"build/"),
    re.compile(r"\.next/"),
]


def is_non_code_file(file_path: str) -> bool:
    """Return True for lockfiles, binaries, assets and dependency/build output."""
    file_name = file_path.rsplit("/", 1)[-1]
    if file_name in SKIP_FILENAMES:
        return True
    lowered = file_name.lower()
    if any(lowered.endswith(ext) for ext in SKIP_EXTENSIONS):
        return True
    return any(pattern.search(file_path) for pattern in SKIP_PATH_PATTERNS)


def is_skippable(file_path: str, change_kind: ChangeKind) -> bool:
    """Return True if the file should not be reviewed.

    Deleted files have nothing left to review regardless of their name.
    """
    if change_kind is ChangeKind.DELETE:
        return True
    return is_non_code_file(file_path)


def is_excluded(file_path: str, patterns: list[str]) -> bool:
    """Return True if file_path matches any user-configured exclude pattern.

    Supports:
    - fnmatch globs on the full path: "src/generated/*.py"
    - fnmatch globs on the basename: "*.snap", "*.min.js"
    - Directory names/prefixes: "migrations/", "tests" (matches any file within that tree)
    """
    path = file_path.lstrip("/")
    for pattern in patterns:
        if fnmatch.fnmatch(path, pattern):
            return True
        if fnmatch.fnmatch(path.rsplit("/", 1)[-1], pattern):
            return True
        prefix = pattern.rstrip("/") + "/"
        if path.startswith(prefix) or ("/" + prefix) in path:
            return True
    return False
