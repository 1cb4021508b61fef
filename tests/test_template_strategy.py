import numpy as np
import pytest

from marker_tracking.config import Parameters
from marker_tracking.mt_types import Mark, MarkType
from marker_tracking.strategies.base import align_mask, extend_region, fits_image
from marker_tracking.strategies.template import TemplateStrategy

from conftest import textured_image


def test_scenario_a_template_patch_is_twice_the_radius():
    """A circle r=10 at the centre of a 100x100 image yields a 20x20 template."""
    image = textured_image(100, 100)
    state = TemplateStrategy().init_tracker_data(image, Mark.circle((50, 50), 10))

    assert state is not None
    assert state.search_template.shape[:2] == (20, 20)
    assert state.mark_type == MarkType.CIRCLE


def test_scenario_b_mark_too_close_to_border_fails():
    """A circle r=10 at (5, 5) does not fit the image."""
    image = textured_image(100, 100)
    assert TemplateStrategy().init_tracker_data(image, Mark.circle((5, 5), 10)) is None


@pytest.mark.parametrize(
    "center,radius,ok",
    [
        ((10, 10), 10, True),
        ((89, 89), 10, True),
        ((89, 50), 10, True),
        ((9, 50), 10, False),
        ((50, 9), 10, False),
        ((90, 50), 10, False),
        ((50, 90), 10, False),
        ((50, 50), 0, False),
        ((0.5, 50), 0.5, True),
        ((50, 0.5), 0.5, True),
        ((99.4, 50), 0.5, True),
    ],
)
def test_initialization_succeeds_iff_mark_fits(center, radius, ok):
    """Initialization succeeds exactly when radius <= distance to every border."""
    image = textured_image(100, 100)
    state = TemplateStrategy().init_tracker_data(image, Mark.circle(center, radius))
    assert (state is not None) is ok
    assert fits_image(image.shape, Mark.circle(center, radius)) is ok


def test_template_is_private_copy():
    """Changing the source frame after initialization does not change the template."""
    image = textured_image(100, 100)
    state = TemplateStrategy().init_tracker_data(image, Mark.circle((50, 50), 10))
    before = state.search_template.copy()
    image[:] = 0
    assert np.array_equal(state.search_template, before)


@pytest.mark.parametrize("method", ["ccoeff_normed", "sqdiff_normed", "ccorr_normed"])
def test_self_match_is_exact(textured, method):
    """Searching the initialization image returns the initial mark."""
    strategy = TemplateStrategy(Parameters(), method=method)
    mark = Mark.circle((40, 30), 8)
    state = strategy.init_tracker_data(textured, mark)

    found = strategy.search(textured, state, threshold=0.0)

    assert found is not None
    assert found.center == (40.0, 30.0)
    assert found.radius == 8.0


def test_rectangle_mark_self_match(textured):
    """Rectangle marks use their own width and height for the template."""
    strategy = TemplateStrategy()
    mark = Mark.rectangle((60, 50), (16, 10))
    state = strategy.init_tracker_data(textured, mark)

    assert state.search_template.shape[:2] == (10, 16)
    found = strategy.search(textured, state)
    assert found.type == MarkType.RECTANGLE
    assert found.center == (60.0, 50.0)
    assert found.size == (16.0, 10.0)


def test_raising_threshold_never_turns_miss_into_hit(textured):
    """Found/not-found is monotone in the threshold."""
    strategy = TemplateStrategy()
    state = strategy.init_tracker_data(textured, Mark.circle((40, 30), 8))
    noisy = np.clip(
        textured.astype(np.int16) + np.random.default_rng(11).integers(-60, 60, textured.shape),
        0,
        255,
    ).astype(np.uint8)

    results = [
        strategy.search(noisy, state, threshold=t) is not None
        for t in (0.0, 0.25, 0.5, 0.75, 1.0, 1.25, 1.5, 1.75, 2.0, 2.5)
    ]

    assert results[0] is True
    assert results[-1] is False
    first_miss = results.index(False)
    assert not any(results[first_miss:])


def test_subregion_search_matches_whole_image(textured):
    """A ROI containing the true location gives the same answer as the whole image."""
    strategy = TemplateStrategy()
    state = strategy.init_tracker_data(textured, Mark.circle((40, 30), 8))

    whole = strategy.search(textured, state)
    for roi in [(35, 25, 10, 10), (40, 30, 1, 1), (0, 0, 45, 35), (38, 20, 50, 60)]:
        assert strategy.search(textured, state, roi=roi) == whole


def test_roi_at_image_edge_is_clipped(textured):
    """A ROI hanging over the image border still finds a mark near that border."""
    strategy = TemplateStrategy()
    mark = Mark.circle((110, 90), 9)
    state = strategy.init_tracker_data(textured, mark)

    found = strategy.search(textured, state, roi=(100, 80, 40, 40))
    assert found.center == (110.0, 90.0)


def test_region_smaller_than_template_is_not_found(textured):
    strategy = TemplateStrategy()
    state = strategy.init_tracker_data(textured, Mark.circle((40, 30), 8))
    small = textured[:10, :10]
    assert strategy.search(small, state) is None


def test_masked_location_is_never_returned(textured):
    """Excluding the true match location forces the best unmasked location."""
    strategy = TemplateStrategy()
    state = strategy.init_tracker_data(textured, Mark.circle((40, 30), 8))
    mask = np.full(textured.shape[:2], 255, dtype=np.uint8)
    mask[28:33, 38:43] = 0

    found = strategy.search(textured, state, mask=mask, threshold=0.0)

    assert found is not None
    cx, cy = found.center
    assert not (38 <= cx < 43 and 28 <= cy < 33)


def test_mask_only_allowing_true_location(textured):
    strategy = TemplateStrategy()
    state = strategy.init_tracker_data(textured, Mark.circle((40, 30), 8))
    mask = np.zeros(textured.shape[:2], dtype=np.uint8)
    mask[29:32, 39:42] = 1

    found = strategy.search(textured, state, mask=mask)
    assert found.center == (40.0, 30.0)


def test_empty_mask_is_not_found(textured):
    strategy = TemplateStrategy()
    state = strategy.init_tracker_data(textured, Mark.circle((40, 30), 8))
    mask = np.zeros(textured.shape[:2], dtype=np.uint8)
    assert strategy.search(textured, state, mask=mask) is None


def test_ambiguous_peak_rejected_when_enabled(textured):
    """With an unreachable peak sigma every match is treated as ambiguous."""
    strategy = TemplateStrategy(Parameters(template_peak_sigma=1000.0))
    state = strategy.init_tracker_data(textured, Mark.circle((40, 30), 8))
    assert strategy.search(textured, state) is None


def test_unknown_method_rejected():
    with pytest.raises(ValueError):
        TemplateStrategy(Parameters(), method="nope")


def test_extend_region_grows_and_clips():
    assert extend_region((100, 120), None, 5, 5) == (0, 0, 120, 100)
    assert extend_region((100, 120), (10, 10, 20, 20), 5, 4) == (5, 6, 30, 28)
    assert extend_region((100, 120), (-10, 90, 20, 20), 5, 5) == (0, 85, 15, 15)


def test_align_mask_rejects_mismatched_mask():
    mask = np.ones((10, 10), dtype=np.uint8)
    with pytest.raises(ValueError):
        align_mask(mask, (0, 0, 30, 30), 2, 2, (27, 27))


def test_half_pixel_mark_at_left_border():
    """The patch corner is truncated, so a mark touching the border starts at column 0."""
    image = textured_image(100, 100)
    state = TemplateStrategy().init_tracker_data(image, Mark.circle((0.5, 50), 0.5))

    assert state is not None
    assert np.array_equal(state.search_template, image[49:51, 0:2])
