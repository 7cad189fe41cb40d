import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from engraver_fill import (
    FieldKind,
    FillData,
    ImageSource,
    NormalizationWarning,
    ValidationError,
    load_fill_data,
    print_fill_data,
)

logger = logging.getLogger(__name__)

FILL_TYPES = ("linear", "radial", "circular", "spiral")


def _configure_logging(level: str) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s:%(name)s:%(message)s",
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Generate, trace and dash engraving fill lines")
    parser.add_argument("path", help="Path to the fill data file")
    parser.add_argument(
        "--new",
        action="store_true",
        help="Start from empty fill data with one default group instead of reading PATH",
    )
    parser.add_argument(
        "--fill",
        action="store_true",
        help="Regenerate the lines of the first group",
    )
    parser.add_argument(
        "--type",
        choices=FILL_TYPES,
        help="Direction field used by --fill (default: keep the group's)",
    )
    parser.add_argument(
        "--spacing",
        type=float,
        help="Line spacing used by --fill, in object units",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed for dash breaks and line profiles",
    )
    parser.add_argument(
        "--grow",
        action="store_true",
        help="Grow streamlines along the field instead of using the fixed generator",
    )
    parser.add_argument(
        "--trace-image",
        help="Trace line weights from this image",
    )
    parser.add_argument(
        "--output",
        help="Write the fill data here (default: print it)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )
    args = parser.parse_args(argv)

    _configure_logging(args.log_level)

    warnings: List[NormalizationWarning] = []
    if args.new:
        data = FillData()
        data.make_default_group()
        logger.info("Created new fill data")
    else:
        with open(args.path) as fin:
            text = fin.read()
        logger.info("Loading fill data from %s", args.path)
        try:
            data, warnings = load_fill_data(text)
        except (SyntaxError, ValidationError) as exc:
            logger.error("%s: %s", args.path, exc)
            raise SystemExit(1)
    if warnings:
        logger.info("Repaired %d setting(s) while loading", len(warnings))

    if not data.groups:
        data.make_default_group()
    group = data.groups[0]

    if args.seed is not None:
        group.dashes.random_seed = args.seed
        group.direction.seed = args.seed
        group.needtodash = True
    if args.type:
        group.direction.set_kind(FieldKind.from_name(args.type))
    if args.spacing is not None:
        if args.spacing <= 0:
            logger.error("Spacing must be positive, got %s", args.spacing)
            raise SystemExit(1)
        group.spacing.spacing = args.spacing
    if args.grow:
        group.direction.grow = True

    if args.fill or args.new or args.grow:
        group.needtoreline = True

    if args.trace_image:
        group.trace_settings.source = ImageSource(args.trace_image)
        group.needtotrace = True

    incomplete = data.update()

    for group in data.groups:
        logger.info(
            "Group %s %r: %s, %d line(s), %d point(s)%s",
            group.id,
            group.name,
            group.direction.kind.value,
            len(group.lines),
            group.point_count(),
            ", growth incomplete" if group in incomplete else "",
        )

    text = print_fill_data(data)
    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Writing fill data to %s", output_path)
        output_path.write_text(text, encoding="utf-8")
    else:
        print(text, end="")


if __name__ == "__main__":
    main(sys.argv[1:])
