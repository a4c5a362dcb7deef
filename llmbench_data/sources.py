"""Row sources for local, in-memory and Hugging Face-hosted benchmark tables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import pandas as pd
from huggingface_hub import hf_hub_download
from huggingface_hub.errors import (
    EntryNotFoundError,
    GatedRepoError,
    RepositoryNotFoundError,
)

logger = logging.getLogger(__name__)

CONFIGURATIONS_FILE = "runs/configurations.parquet"
QUALITY_SCORES_FILE = "scores/quality.parquet"


class RowSourceError(RuntimeError):
    """Loading rows failed; no partial result is produced."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Row source error: {message}")


def _handle_hf_access_error(exc: RepositoryNotFoundError, repo_id: str) -> None:
    """Re-raise HF Hub access errors with actionable guidance.

    Args:
        exc: The original exception from `huggingface_hub`.
        repo_id: The HF dataset repository ID that was being accessed.

    Raises:
        GatedRepoError: With instructions to request access on the dataset page.
        RepositoryNotFoundError: With instructions to set `HF_TOKEN`.
    """
    dataset_url = f"https://huggingface.co/datasets/{repo_id}"
    if isinstance(exc, GatedRepoError):
        raise GatedRepoError(
            f"Access denied to gated benchmark dataset '{repo_id}'.\n"
            f"Your token was accepted but has not been granted access.\n"
            f"Request access at {dataset_url}, then retry.",
            response=exc.response,
        ) from None
    if os.environ.get("HF_TOKEN"):
        raise RepositoryNotFoundError(
            f"Could not access benchmark dataset '{repo_id}' "
            f"(HTTP {exc.response.status_code}).\n"
            f"HF_TOKEN is set but the request was rejected; check the token "
            f"and your access at {dataset_url}.",
            response=exc.response,
        ) from None
    raise RepositoryNotFoundError(
        f"Could not access benchmark dataset '{repo_id}' "
        f"(HTTP {exc.response.status_code}).\n"
        f"The repository does not exist or requires authentication.\n"
        f"1. Set HF_TOKEN to a Hugging Face access token "
        f"(https://huggingface.co/settings/tokens).\n"
        f"2. Request access at {dataset_url} if the dataset is gated.",
        response=exc.response,
    ) from None


def download_file(
    repo_id: str,
    filename: str,
    *,
    revision: str | None = None,
) -> Path:
    """Download a single file from a HF dataset repo.

    Respects the ``HF_HOME`` environment variable for cache location.

    Args:
        repo_id: HF dataset repository ID.
        filename: Path of the file within the repo.
        revision: Git revision (branch, tag, or commit hash).

    Returns:
        Local path to the downloaded file.
    """
    try:
        local = hf_hub_download(
            repo_id=repo_id,
            filename=filename,
            repo_type="dataset",
            revision=revision,
        )
    except RepositoryNotFoundError as e:
        _handle_hf_access_error(e, repo_id)
    return Path(local)


class RowSource(Protocol):
    """Supplies the flat configuration table and, optionally, quality scores."""

    def load_configurations(self) -> pd.DataFrame:
        """Return one row per benchmark run joined with its hardware."""
        ...

    def load_quality_scores(self) -> pd.DataFrame | None:
        """Return the long-form quality score table, or None if there is none."""
        ...


@dataclass(frozen=True)
class DirectoryRowSource:
    """Compiled data directory holding ``runs/`` and ``scores/`` parquet tables."""

    root: Path

    def _root(self) -> Path:
        p = Path(self.root)
        if not p.exists():
            raise FileNotFoundError(f"Data root does not exist: {p}")
        return p

    def load_configurations(self) -> pd.DataFrame:
        path = self._root() / CONFIGURATIONS_FILE
        if not path.exists():
            raise FileNotFoundError(f"Missing configurations table: {path}")
        return pd.read_parquet(path)

    def load_quality_scores(self) -> pd.DataFrame | None:
        path = self._root() / QUALITY_SCORES_FILE
        if not path.exists():
            logger.debug("No quality score table at %s", path)
            return None
        return pd.read_parquet(path)


@dataclass(frozen=True)
class HFRowSource:
    """Hugging Face dataset repository laid out like a compiled data directory.

    Only the two parquet tables are downloaded, not a full snapshot.
    """

    repo_id: str
    revision: str | None = None

    def load_configurations(self) -> pd.DataFrame:
        return pd.read_parquet(
            download_file(self.repo_id, CONFIGURATIONS_FILE, revision=self.revision)
        )

    def load_quality_scores(self) -> pd.DataFrame | None:
        try:
            path = download_file(self.repo_id, QUALITY_SCORES_FILE, revision=self.revision)
        except EntryNotFoundError:
            logger.info("%s has no %s; scores will be absent", self.repo_id, QUALITY_SCORES_FILE)
            return None
        return pd.read_parquet(path)


@dataclass(frozen=True)
class DataFrameRowSource:
    """In-memory tables, e.g. rows already fetched from a database."""

    configurations: pd.DataFrame
    quality_scores: pd.DataFrame | None = field(default=None)

    def load_configurations(self) -> pd.DataFrame:
        return self.configurations.copy()

    def load_quality_scores(self) -> pd.DataFrame | None:
        if self.quality_scores is None:
            return None
        return self.quality_scores.copy()


SourceLike = RowSource | pd.DataFrame | str | Path


def resolve_row_source(source: SourceLike) -> RowSource:
    """Resolve a source-like input into a `RowSource`.

    Paths become `DirectoryRowSource`, DataFrames become `DataFrameRowSource`
    and anything else is assumed to implement the protocol already.
    """
    if isinstance(source, (str, Path)):
        resolved: RowSource = DirectoryRowSource(Path(source))
    elif isinstance(source, pd.DataFrame):
        resolved = DataFrameRowSource(source)
    else:
        resolved = source
    logger.debug("Resolved row source: %r", type(resolved).__name__)
    return resolved
