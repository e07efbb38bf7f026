# utils/version.py
"""
Version detection utilities for pgcollector.

Implements fallback chain:
1. installed package metadata
2. git describe --tags
3. hardcoded "0.0.0-dev"
"""
import importlib.metadata
import subprocess
from pathlib import Path

PACKAGE_NAME = "pgcollector"

_REPO_ROOT = Path(__file__).parent.parent


def _git(*args):
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=_REPO_ROOT,
            capture_output=True,
            text=True,
            timeout=2
        )
    except (OSError, subprocess.SubprocessError):
        return None
    if result.returncode == 0 and result.stdout.strip():
        return result.stdout.strip()
    return None


def get_version() -> str:
    """
    Get the collector version using the fallback chain.

    Returns:
        Version string (e.g., "1.2.3" or "0.0.0-dev")
    """
    try:
        version = importlib.metadata.version(PACKAGE_NAME)
        if version:
            return version
    except importlib.metadata.PackageNotFoundError:
        pass

    version = _git("describe", "--tags", "--always")
    if version:
        # Remove 'v' prefix if present
        return version[1:] if version.startswith("v") else version

    return "0.0.0-dev"


def get_build() -> str:
    """
    Get build identifier (git tag or short commit SHA), or "unknown".
    """
    return _git("describe", "--tags", "--always") or _git("rev-parse", "--short", "HEAD") or "unknown"
