import argparse
import sys
from pathlib import Path

from .model.bro import build_from_header, build_from_tree_yaml
from .model.bro_config import load_config
from .model.bro_errors import BrogenError


def _csv(value: str) -> set[str]:
    return {item.strip() for item in value.split(",") if item.strip()}


def main() -> None:
    parser = argparse.ArgumentParser(description="Build a binding model from C/Objective-C headers.")
    parser.add_argument("config", help="Path to the binding unit's YAML configuration.")
    parser.add_argument("header", help="Header to parse (or a YAML syntax-tree dump with --tree-yaml).")
    parser.add_argument(
        "--global",
        dest="global_path",
        default=None,
        help="Global configuration merged under the unit configuration.",
    )
    parser.add_argument(
        "--include-dir",
        action="append",
        default=[],
        help="Directory searched for included configurations (repeatable).",
    )
    parser.add_argument(
        "--clang-arg",
        action="append",
        default=[],
        help="Extra argument passed to libclang (repeatable, e.g. -isysroot=...).",
    )
    parser.add_argument(
        "--pass-disable",
        default="",
        help="Comma-separated list of model passes to disable (e.g. values-group).",
    )
    parser.add_argument(
        "--pass-verbose",
        default="",
        help="Comma-separated list of passes and channels to log (or 'all').",
    )
    parser.add_argument(
        "--suggestions",
        action="store_true",
        help="Print configuration entries for bindable declarations that have none.",
    )
    parser.add_argument(
        "--tree-yaml",
        action="store_true",
        help="Read the syntax tree from a YAML dump instead of parsing a header.",
    )
    args = parser.parse_args()

    try:
        config = load_config(args.config, args.global_path, args.include_dir)
        if args.tree_yaml:
            result = build_from_tree_yaml(
                config,
                Path(args.header).read_text(encoding="utf-8"),
                disabled_passes=_csv(args.pass_disable),
                verbose=_csv(args.pass_verbose),
            )
        else:
            result = build_from_header(
                config,
                args.header,
                clang_args=args.clang_arg,
                disabled_passes=_csv(args.pass_disable),
                verbose=_csv(args.pass_verbose),
            )
    except (BrogenError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)

    for label, count in result.counts().items():
        print(f"{label}: {count}")
    print(result.diagnostics.summary())
    if args.suggestions:
        print(result.report.render(result.model), end="")


if __name__ == "__main__":
    main()
