"""Linear hatch on a skewed patch, dashed where the weights drop off."""

from engraver_fill import BilinearSurface, FillData, print_fill_data


def main() -> None:
    data = FillData(BilinearSurface([(0.0, 0.0), (4.0, 0.5), (4.0, 3.5), (0.0, 3.0)]))
    group = data.fill_regular_lines(spacing=0.2)

    group.dashes.zero_threshold = 0.005
    group.dashes.broken_threshold = 0.02
    group.dashes.random_seed = 3
    for line in group.lines:
        for point in line:
            point.weight = 0.03 * point.s
    units = group.update_dash_cache()

    print("Lines:", len(group.lines))
    print("Points:", group.point_count())
    print("Dash units:", units)
    print()
    print(print_fill_data(data), end="")


if __name__ == "__main__":
    main()
