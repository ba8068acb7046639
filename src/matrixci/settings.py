from __future__ import annotations
import os

DEFAULT_WORKFLOW = os.environ.get("MATRIXCI_WORKFLOW", "matrixci_workflow.py")
CACHE_DIR = os.environ.get("MATRIXCI_CACHE_DIR", ".matrixci/cache")
RELEASE_DIR = os.environ.get("MATRIXCI_RELEASE_DIR", ".matrixci/releases")
GITHUB_TOKEN = os.environ.get("GITHUB_TOKEN", "")
GITHUB_REPOSITORY = os.environ.get("GITHUB_REPOSITORY", "")
GITHUB_API_URL = os.environ.get("GITHUB_API_URL", "https://api.github.com")
