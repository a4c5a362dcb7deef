"""Command line reports over a compiled benchmark data directory.

Usage:

    llmbench-data grouped --data-dir /path/to/data --sort-by speed --min-quality 60
    llmbench-data grouped --hf-repo org/benchmarks --preset view.yaml --out grouped.json
    llmbench-data analysis --data-dir /path/to/data --model org/model --gpu "RTX 4090"
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from llmbench_data.params import GroupedPerformanceParams
from llmbench_data.pipeline import AnalysisPipeline
from llmbench_data.sources import HFRowSource, RowSource

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llmbench-data",
        description="Aggregate LLM inference benchmark runs into comparison views",
    )
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument(
        "--data-dir",
        type=str,
        help="Compiled data directory (runs/configurations.parquet, scores/quality.parquet)",
    )
    src.add_argument(
        "--hf-repo",
        type=str,
        help="Hugging Face dataset repository with the same layout",
    )
    parser.add_argument(
        "--revision",
        type=str,
        default=None,
        help="Git revision of the HF dataset repository",
    )
    parser.add_argument(
        "--out",
        type=str,
        default=None,
        help="Write JSON here instead of stdout",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    grouped = sub.add_parser("grouped", help="Ranked model -> platform -> best configuration")
    grouped.add_argument("--preset", type=str, default=None, help="YAML view preset")
    grouped.add_argument("--benchmark", type=str, default=None)
    grouped.add_argument("--min-quality", type=str, default=None)
    grouped.add_argument("--max-memory-gb", type=str, default=None)
    grouped.add_argument("--min-speed", type=str, default=None)
    grouped.add_argument("--sort-by", type=str, default=None)
    grouped.add_argument("--sort-direction", type=str, choices=("asc", "desc"), default=None)
    grouped.add_argument(
        "--hardware-categories",
        type=str,
        default=None,
        help="Comma-separated, e.g. consumer_gpu,datacenter_gpu",
    )

    analysis = sub.add_parser("analysis", help="Detailed view of one model on one GPU")
    analysis.add_argument("--model", type=str, required=True)
    analysis.add_argument("--gpu", type=str, required=True)
    analysis.add_argument("--lora", type=str, default="", help="LoRA adapter (empty = base model)")
    return parser


def _grouped_params(args: argparse.Namespace) -> GroupedPerformanceParams:
    query: dict[str, Any] = {}
    if args.preset:
        base = GroupedPerformanceParams.from_yaml(args.preset)
        query.update(
            benchmark=base.benchmark,
            min_quality=base.min_quality,
            max_memory_gb=base.max_memory_gb,
            min_speed=base.min_speed,
            sort_by=base.sort_by,
            sort_direction=base.sort_direction,
            hardware_categories=",".join(sorted(c.value for c in base.hardware_categories)),
        )
    # Flags given on the command line override the preset.
    for key in (
        "benchmark",
        "min_quality",
        "max_memory_gb",
        "min_speed",
        "sort_by",
        "sort_direction",
        "hardware_categories",
    ):
        value = getattr(args, key)
        if value is not None:
            query[key] = value
    return GroupedPerformanceParams.from_query(query)


def main(argv: Sequence[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    source: RowSource | Path
    if args.hf_repo:
        source = HFRowSource(args.hf_repo, revision=args.revision)
    else:
        source = Path(args.data_dir)
    pipeline = AnalysisPipeline(source)

    if args.command == "grouped":
        payload = pipeline.grouped_performance(_grouped_params(args)).to_dict()
    else:
        payload = pipeline.model_hardware_analysis(args.model, args.gpu, args.lora).to_dict()

    text = json.dumps(payload, indent=2)
    if args.out:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text + "\n")
        logger.info("Wrote %s", out)
    else:
        sys.stdout.write(text + "\n")


if __name__ == "__main__":
    main()
