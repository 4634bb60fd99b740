"""Cluster object loading with validation.

File operations enforce a size limit and input is validated at the boundary,
so resources only ever see well-formed cluster objects.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .config import MAX_CLUSTER_FILE_SIZE_BYTES
from .models import AWSConfig

logger = logging.getLogger(__name__)

CLUSTER_FILE_SUFFIXES = (".yaml", ".yml")


class ClusterLoadError(Exception):
    """Raised when a cluster object cannot be loaded or fails validation."""

    pass


def load_cluster(path: Path) -> AWSConfig:
    """Load and validate a cluster object from YAML.

    Args:
        path: Path of the YAML file.

    Returns:
        Validated cluster object.

    Raises:
        ClusterLoadError: If the file cannot be read or fails validation.
    """
    if not path.exists():
        raise ClusterLoadError(f"Cluster file not found: {path}")

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise ClusterLoadError(f"Failed to stat cluster file {path}: {e}") from e

    if file_size > MAX_CLUSTER_FILE_SIZE_BYTES:
        raise ClusterLoadError(
            f"Cluster file exceeds maximum size of {MAX_CLUSTER_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ClusterLoadError(f"Failed to read cluster file {path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ClusterLoadError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise ClusterLoadError(f"Cluster file must contain a YAML mapping: {path}")

    try:
        return AWSConfig.model_validate(raw_data)
    except ValidationError as e:
        raise ClusterLoadError(f"Validation failed for {path}:\n{e}") from e


def load_clusters(clusters_dir: Path) -> list[AWSConfig]:
    """Load every cluster object in a directory.

    Invalid files are logged and skipped so one broken object does not block
    reconciliation of the others. Duplicate cluster IDs keep the first file.

    Raises:
        ClusterLoadError: If the directory itself does not exist.
    """
    if not clusters_dir.is_dir():
        raise ClusterLoadError(f"Clusters directory does not exist: {clusters_dir}")

    clusters: list[AWSConfig] = []
    seen: dict[str, Path] = {}

    for path in sorted(clusters_dir.iterdir()):
        if path.suffix not in CLUSTER_FILE_SUFFIXES or not path.is_file():
            continue

        try:
            cluster = load_cluster(path)
        except ClusterLoadError as e:
            logger.error("Skipping invalid cluster object", extra={"path": str(path), "error": str(e)})
            continue

        cluster_id = cluster.spec.cluster.id
        if cluster_id in seen:
            logger.warning(
                "Duplicate cluster ID, ignoring file",
                extra={"cluster_id": cluster_id, "path": str(path), "first": str(seen[cluster_id])},
            )
            continue

        seen[cluster_id] = path
        clusters.append(cluster)

    return clusters
