"""Grow spiral streamlines and shade them from a radial gradient."""

from engraver_fill import FieldKind, FillData, RadialGradientSource, TraceType


def main() -> None:
    data = FillData()
    group = data.make_default_group()
    group.spacing.spacing = 0.04
    group.direction.set_kind(FieldKind.SPIRAL)
    group.direction.grow = True
    group.trace_settings.source = RadialGradientSource((0.5, 0.5), 0.5)
    group.trace_settings.trace_type = TraceType.SET
    group.needtoreline = True

    data.update()

    weights = [point.weight for line in group.lines for point in line]
    print("Lines:", len(group.lines))
    print(f"Weights: min={min(weights):.4f} max={max(weights):.4f}")
    for line in group.lines[:5]:
        first, last = line.first, line.last
        print(f"  ({first.s:.3f}, {first.t:.3f}) -> ({last.s:.3f}, {last.t:.3f}), {len(line)} points")


if __name__ == "__main__":
    main()
