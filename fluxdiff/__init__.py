"""
flux-release-diff - render and diff changed Flux HelmReleases between Git revisions.
"""

from .engine import DiffResult, ReleaseDiffEngine, RevisionRange
from .manifest import ReleaseManifest, load_manifest

__all__ = [
    'DiffResult',
    'ReleaseDiffEngine',
    'RevisionRange',
    'ReleaseManifest',
    'load_manifest',
]
