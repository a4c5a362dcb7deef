"""Quality score table keyed by model variant and benchmark."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from llmbench_data.sources import download_file

logger = logging.getLogger(__name__)

BENCHMARKS = ("mmlu", "gsm8k", "humaneval", "hellaswag", "truthfulqa", "none")
DEFAULT_BENCHMARK = "mmlu"

# Benchmarks whose stored value is a 0-1 fraction rather than a 0-100 score.
_SCALE = {"gsm8k": 100.0}
# Benchmarks averaged over all rows (per-category scores) instead of taking the first.
_AVERAGED = frozenset({"mmlu"})
_CATEGORY_BENCHMARK = "mmlu"

_REQUIRED_COLUMNS = ("benchmark", "model_name", "quantization", "value")


class QualityScores:
    """Long-form quality scores with per-benchmark normalization.

    One row per stored score. Required columns are ``benchmark``,
    ``model_name``, ``quantization`` and ``value``; ``lora_adapter`` and
    ``category`` default to the empty string when absent.

    Normalization to a 0-100 score follows the stored form of each benchmark:

    - ``mmlu``: mean of all category scores for the variant.
    - ``gsm8k``: accuracy fraction times 100.
    - ``humaneval``: pass@1 as stored.
    - ``hellaswag``: accuracy as stored.
    - ``truthfulqa``: truthful score as stored.
    - ``none`` or anything else: no score.

    Example:

        scores = QualityScores.from_directory("/path/to/compiled/data")
        scores.score("org/model", "FP16", "mmlu")
        scores.category_scores("org/model", "FP16")  # {"stem": 61.2, ...}
    """

    def __init__(self, df: pd.DataFrame) -> None:
        missing = [c for c in _REQUIRED_COLUMNS if c not in df.columns]
        if missing and len(df.columns) > 0:
            raise ValueError(f"Quality score table is missing column(s): {missing}")
        df = df.copy()
        for c in _REQUIRED_COLUMNS:
            if c not in df.columns:
                df[c] = pd.Series(dtype=float if c == "value" else object)
        for c in ("lora_adapter", "category"):
            if c not in df.columns:
                df[c] = ""
            df[c] = df[c].fillna("").astype(str)
        df["benchmark"] = df["benchmark"].astype(str).str.lower()
        df["value"] = pd.to_numeric(df["value"], errors="coerce")
        self._df = df.reset_index(drop=True)

    @classmethod
    def empty(cls) -> QualityScores:
        return cls(pd.DataFrame(columns=list(_REQUIRED_COLUMNS)))

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> QualityScores:
        return cls(df)

    @classmethod
    def from_parquet(cls, path: str | Path) -> QualityScores:
        return cls(pd.read_parquet(path))

    @classmethod
    def from_csv(cls, path: str | Path) -> QualityScores:
        return cls(pd.read_csv(path))

    @classmethod
    def from_directory(cls, root: str | Path) -> QualityScores:
        """Load ``scores/quality.parquet`` under ``root``, or an empty table if absent."""
        path = Path(root) / "scores" / "quality.parquet"
        if not path.exists():
            logger.info("No quality score table at %s; scores will be absent", path)
            return cls.empty()
        return cls.from_parquet(path)

    @classmethod
    def from_hf(cls, repo_id: str, *, revision: str | None = None) -> QualityScores:
        """Download ``scores/quality.parquet`` from a HF dataset repository."""
        return cls.from_parquet(download_file(repo_id, "scores/quality.parquet", revision=revision))

    def __len__(self) -> int:
        return len(self._df)

    def __repr__(self) -> str:
        return f"QualityScores({len(self._df)} rows)"

    def to_dataframe(self) -> pd.DataFrame:
        return self._df.copy()

    def _rows(self, benchmark: str, model_name: str, quantization: str) -> pd.DataFrame:
        df = self._df
        mask = (
            (df["benchmark"] == benchmark)
            & (df["model_name"] == model_name)
            & (df["quantization"] == quantization)
        )
        return df.loc[mask]

    def score(self, model_name: str, quantization: str, benchmark: str) -> float | None:
        """Normalized 0-100 score of a (model, quantization) pair on one benchmark.

        Scores of every LoRA variant of the pair count. Returns ``None`` for
        ``"none"``, unrecognized benchmarks and pairs with no stored score.
        """
        benchmark = benchmark.lower()
        if benchmark not in BENCHMARKS or benchmark == "none":
            return None
        values = self._rows(benchmark, model_name, quantization)["value"].dropna()
        if values.empty:
            return None
        if benchmark in _AVERAGED:
            raw = float(values.mean())
        else:
            raw = float(values.iloc[0])
        return raw * _SCALE.get(benchmark, 1.0)

    def category_scores(
        self, model_name: str, quantization: str, lora_adapter: str = ""
    ) -> dict[str, float]:
        """Mean score per category for one exact LoRA adapter (``""`` = base model).

        There is no fallback to the base model when the adapter has no scores.
        """
        rows = self._rows(_CATEGORY_BENCHMARK, model_name, quantization)
        rows = rows.loc[(rows["lora_adapter"] == lora_adapter) & (rows["category"] != "")]
        if rows.empty:
            return {}
        means = rows.groupby("category", sort=True)["value"].mean().dropna()
        return {str(k): float(v) for k, v in means.items()}
