# matrixci_workflow.py
# Build-and-release workflow for a cargo workspace: lint, test and build each
# backend/client feature combination, then stage a draft release.
#
#   matrixci run --env TAG_NAME=v0.1.0 --env ASSET_SRC=dist/*.tar.gz
from __future__ import annotations

from matrixci.presets import act_release


def workflow():
    return act_release()
