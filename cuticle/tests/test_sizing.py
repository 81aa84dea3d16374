"""Tests for shrink planning."""

import pytest

from cuticle.request import Interpolator, ResizeConstraint, SharpenMask
from cuticle.sizing import ShrinkPlan, calculate_shrink, oriented_size

FILL = ResizeConstraint.FILL_AREA
SHRINK_ONLY = ResizeConstraint.ONLY_SHRINK_LARGER


class TestCalculateShrink:
    """Tests for calculate_shrink."""

    def test_small_image_is_identity(self):
        """Test a source inside the box is left alone when only shrinking."""
        plan = calculate_shrink(100, 80, 128, 128)

        assert plan.integer_shrink == 1
        assert plan.residual_scale == 1.0
        assert plan.is_upscale is False
        assert plan.is_identity
        assert (plan.output_width, plan.output_height) == (100, 80)

    def test_fit_scenario(self):
        """Test 4000x3000 to 800 fits to 800x600 with an exact integer shrink."""
        plan = calculate_shrink(4000, 3000, 800, 800, SHRINK_ONLY, crop=False)

        assert plan.integer_shrink == 5
        assert plan.residual_scale == pytest.approx(1.0)
        assert (plan.output_width, plan.output_height) == (800, 600)

    def test_fill_crop_scenario(self):
        """Test 4000x3000 to 800^ fills the box on the short axis."""
        plan = calculate_shrink(4000, 3000, 800, 800, FILL, crop=True)

        assert plan.integer_shrink == 3
        assert plan.residual_scale == pytest.approx(0.80020, abs=1e-5)
        assert plan.is_upscale is False
        assert (plan.output_width, plan.output_height) == (1067, 800)

    def test_fill_without_crop_still_fits(self):
        """Test the constraint alone does not switch to the fill axis."""
        plan = calculate_shrink(4000, 3000, 800, 800, FILL, crop=False)

        assert (plan.output_width, plan.output_height) == (800, 600)

    def test_fill_vs_fit_axis(self):
        """Test crop picks the smaller factor and fit the larger."""
        fit = calculate_shrink(400, 200, 100, 100, FILL, crop=False)
        fill = calculate_shrink(400, 200, 100, 100, FILL, crop=True)

        assert fit.integer_shrink == 4
        assert (fit.output_width, fit.output_height) == (100, 50)
        assert fill.integer_shrink == 2
        assert (fill.output_width, fill.output_height) == (200, 100)

    def test_upscale(self):
        """Test a small source is zoomed when filling the area."""
        plan = calculate_shrink(50, 40, 100, 100, FILL)

        assert plan.is_upscale is True
        assert plan.integer_shrink == 1
        assert plan.residual_scale == pytest.approx(2.0)
        assert (plan.output_width, plan.output_height) == (100, 80)

    def test_factor_exactly_one(self):
        """Test a factor of exactly 1.0 is not an upscale."""
        plan = calculate_shrink(128, 64, 128, 128, FILL)

        assert plan.is_upscale is False
        assert plan.integer_shrink == 1
        assert plan.is_identity

    def test_factor_exactly_two(self):
        """Test a factor of exactly 2.0 is a pure integer shrink."""
        plan = calculate_shrink(256, 128, 128, 128, FILL)

        assert plan.integer_shrink == 2
        assert plan.residual_scale == pytest.approx(1.0)
        assert (plan.output_width, plan.output_height) == (128, 64)

    def test_factor_just_below_two(self):
        """Test a factor just under 2.0 leaves all the work to the residual."""
        plan = calculate_shrink(255, 100, 128, 128, FILL)

        assert plan.integer_shrink == 1
        assert plan.residual_scale == pytest.approx(128 / 255, rel=1e-3)
        assert (plan.output_width, plan.output_height) == (128, 50)

    def test_residual_uses_larger_axis(self):
        """Test the residual takes the larger of the per-axis residuals."""
        plan = calculate_shrink(1000, 333, 128, 128)

        hresidual = 128 / 142
        vresidual = (333 / (1000 / 128)) / 47
        assert plan.integer_shrink == 7
        assert plan.residual_scale == pytest.approx(max(hresidual, vresidual))
        assert (plan.output_width, plan.output_height) == (128, 43)

    @pytest.mark.parametrize('width,height,target_width,target_height', [
        (4000, 3000, 800, 800),
        (3000, 4000, 800, 600),
        (1001, 999, 128, 128),
        (640, 480, 100, 300),
        (7, 5000, 64, 64),
        (5000, 7, 64, 64),
        (333, 777, 200, 100),
    ])
    def test_fit_stays_inside_box(self, width, height, target_width, target_height):
        """Test fit mode never overflows and touches the box on one axis."""
        plan = calculate_shrink(width, height, target_width, target_height, SHRINK_ONLY)

        assert plan.output_width <= target_width
        assert plan.output_height <= target_height
        assert plan.output_width == target_width or plan.output_height == target_height

    @pytest.mark.parametrize('width,height,target_width,target_height', [
        (4000, 3000, 800, 800),
        (3000, 4000, 800, 600),
        (1001, 999, 128, 128),
        (640, 480, 100, 300),
        (50, 40, 100, 100),
        (333, 777, 200, 100),
    ])
    def test_fill_covers_box(self, width, height, target_width, target_height):
        """Test fill mode with crop always covers the box."""
        plan = calculate_shrink(width, height, target_width, target_height, FILL, crop=True)

        assert plan.output_width >= target_width
        assert plan.output_height >= target_height

    def test_very_thin_source(self):
        """Test a shrink bigger than one axis keeps at least one pixel."""
        plan = calculate_shrink(3, 6000, 64, 64)

        assert plan.output_width >= 1
        assert plan.output_height == 64


class TestShrinkPlan:
    """Tests for ShrinkPlan."""

    def test_upscale_forces_nearest(self):
        """Test zooming always uses nearest neighbour."""
        plan = calculate_shrink(50, 40, 100, 100, FILL)

        assert plan.interpolator_for(Interpolator.BICUBIC) == Interpolator.NEAREST

    def test_shrink_keeps_interpolator(self):
        """Test shrinking keeps the configured kernel."""
        plan = calculate_shrink(4000, 3000, 800, 800, FILL, crop=True)

        assert plan.interpolator_for(Interpolator.BICUBIC) == Interpolator.BICUBIC

    def test_sharpen_only_when_shrinking(self):
        """Test sharpening is suppressed on upscale and without a mask."""
        shrink = calculate_shrink(4000, 3000, 800, 800)
        zoom = calculate_shrink(50, 40, 100, 100, FILL)

        assert shrink.should_sharpen(SharpenMask('mild')) is True
        assert shrink.should_sharpen(SharpenMask('none')) is False
        assert zoom.should_sharpen(SharpenMask('mild')) is False

    def test_swapped(self):
        """Test swapping exchanges only the output axes."""
        plan = ShrinkPlan(3, 0.8, False, 1067, 800)

        swapped = plan.swapped()

        assert (swapped.output_width, swapped.output_height) == (800, 1067)
        assert swapped.integer_shrink == 3
        assert swapped.residual_scale == 0.8


class TestOrientedSize:
    """Tests for oriented_size."""

    @pytest.mark.parametrize('angle', [90, 270])
    def test_quarter_turns_swap(self, angle):
        """Test quarter turns swap the axes when rotating."""
        assert oriented_size(300, 200, angle, rotate=True) == (200, 300)

    @pytest.mark.parametrize('angle', [0, 180])
    def test_half_turns_keep(self, angle):
        """Test half turns keep the axes."""
        assert oriented_size(300, 200, angle, rotate=True) == (300, 200)

    def test_no_rotate_keeps(self):
        """Test the angle is ignored when not rotating."""
        assert oriented_size(300, 200, 90, rotate=False) == (300, 200)

    def test_orientation_swaps_before_planning(self):
        """Test an orientation-6 portrait plans on the swapped size."""
        width, height = oriented_size(4000, 3000, 90, rotate=True)
        plan = calculate_shrink(width, height, 800, 800)

        assert (plan.output_width, plan.output_height) == (600, 800)
