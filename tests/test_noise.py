import numpy as np

from engraver_fill.noise import CoherentNoise


def test_noise_is_bounded_and_seeded():
    rng = np.random.default_rng(0)
    points = rng.uniform(-20, 20, size=(200, 2))
    a = CoherentNoise(3)
    b = CoherentNoise(3)

    values = [a.evaluate(x, y) for x, y in points]

    assert all(0.0 <= v <= 1.0 for v in values)
    assert values == [b.evaluate(x, y) for x, y in points]
    assert max(values) - min(values) > 0.1


def test_seeds_give_different_fields():
    points = [(0.37 * i, 1.3 - 0.21 * i) for i in range(20)]
    a = CoherentNoise(1)
    b = CoherentNoise(2)

    assert [a.evaluate(x, y) for x, y in points] != [b.evaluate(x, y) for x, y in points]


def test_unseeded_noise_records_its_seed():
    noise = CoherentNoise(None)

    assert isinstance(noise.seed, int)
    assert CoherentNoise(noise.seed).evaluate(0.3, 0.9) == noise.evaluate(0.3, 0.9)


def test_noise_is_continuous():
    noise = CoherentNoise(5)

    for x, y in [(0.3, 0.7), (4.99, -2.5), (10.0001, 3.3)]:
        assert abs(noise.evaluate(x, y) - noise.evaluate(x + 1e-5, y + 1e-5)) < 1e-3
