"""Unit tests for DurationAdjuster and atempo chaining.

Tests FFmpeg command generation for:
- atempo chains for factors outside [0.5, 2.0]
- force-exact, extend-only and speed-change video retiming
- audio speed-up and trimming
- no-op behaviour inside the tolerance window
- fallback to the original asset when ffmpeg fails

All tests use a fake runner so no actual FFmpeg execution occurs.
"""

import math
import re

import pytest

from scene_pipeline.duration_adjuster import (
    MAX_EXTEND_FACTOR,
    AdjustMode,
    DurationAdjuster,
    build_atempo_chain,
)


def _chain_factors(chain: str) -> list[float]:
    return [float(f) for f in re.findall(r"atempo=([\d.]+)", chain)]


@pytest.fixture
def adjuster(fake_runner):
    return DurationAdjuster(fake_runner, tolerance=0.1)


# ---------------------------------------------------------------------------
# atempo chain
# ---------------------------------------------------------------------------


class TestBuildAtempoChain:
    @pytest.mark.unit
    def test_factor_above_two_is_chained(self):
        assert build_atempo_chain(2.5) == "atempo=2.0,atempo=1.25"

    @pytest.mark.unit
    def test_factor_in_range_is_single_step(self):
        assert build_atempo_chain(1.5) == "atempo=1.5"

    @pytest.mark.unit
    def test_factor_below_half_is_chained(self):
        assert build_atempo_chain(0.25) == "atempo=0.5,atempo=0.5"

    @pytest.mark.unit
    @pytest.mark.parametrize("factor", [0.1, 0.3, 0.5, 0.99, 2.0, 3.7, 5.0, 9.0])
    def test_every_step_in_range_and_product_matches(self, factor):
        steps = _chain_factors(build_atempo_chain(factor))
        assert all(0.5 <= s <= 2.0 for s in steps)
        assert math.isclose(math.prod(steps), factor, rel_tol=1e-5)

    @pytest.mark.unit
    def test_non_positive_factor_rejected(self):
        with pytest.raises(ValueError):
            build_atempo_chain(0)


# ---------------------------------------------------------------------------
# Video
# ---------------------------------------------------------------------------


class TestAdjustVideo:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_within_tolerance_is_noop(self, adjuster, fake_runner, temp_dir):
        clip = fake_runner.register(temp_dir / "clip.mp4", 4.05)

        result = await adjuster.adjust_video(
            clip, 4.0, AdjustMode.FORCE_EXACT, temp_dir / "out.mp4"
        )

        assert result is clip
        assert fake_runner.calls == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_repeated_adjustment_is_idempotent(self, adjuster, fake_runner, temp_dir):
        clip = fake_runner.register(temp_dir / "clip.mp4", 2.0)

        first = await adjuster.adjust_video(clip, 4.0, AdjustMode.FORCE_EXACT, temp_dir / "a.mp4")
        second = await adjuster.adjust_video(first, 4.0, AdjustMode.FORCE_EXACT, temp_dir / "b.mp4")

        assert second is first
        assert len(fake_runner.calls) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_force_exact_slows_pads_and_cuts(self, adjuster, fake_runner, temp_dir):
        clip = fake_runner.register(temp_dir / "clip.mp4", 2.0)
        out = temp_dir / "out.mp4"

        result = await adjuster.adjust_video(clip, 4.0, AdjustMode.FORCE_EXACT, out)

        cmd = fake_runner.calls[0]
        video_filter = cmd[cmd.index("-filter:v") + 1]
        assert video_filter.startswith("setpts=2.000000*PTS")
        assert "tpad=stop_mode=clone" in video_filter
        assert "scale=576:1024" in video_filter
        assert cmd[cmd.index("-t") + 1] == "4.000"
        assert "-an" in cmd
        assert cmd[-1] == str(out)
        assert result.path == out
        assert result.duration == pytest.approx(4.0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_force_exact_speeds_up_long_clip(self, adjuster, fake_runner, temp_dir):
        clip = fake_runner.register(temp_dir / "clip.mp4", 8.0)

        result = await adjuster.adjust_video(clip, 2.0, AdjustMode.FORCE_EXACT, temp_dir / "out.mp4")

        cmd = fake_runner.calls[0]
        assert cmd[cmd.index("-filter:v") + 1].startswith("setpts=0.250000*PTS")
        assert result.duration == pytest.approx(2.0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_extend_only_caps_factor(self, adjuster, fake_runner, temp_dir):
        clip = fake_runner.register(temp_dir / "clip.mp4", 1.0)

        result = await adjuster.adjust_video(clip, 10.0, AdjustMode.EXTEND_ONLY, temp_dir / "out.mp4")

        cmd = fake_runner.calls[0]
        assert cmd[cmd.index("-filter:v") + 1] == f"setpts={MAX_EXTEND_FACTOR:.6f}*PTS"
        assert "-t" not in cmd
        assert result.duration == pytest.approx(5.0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_extend_only_leaves_longer_clip_alone(self, adjuster, fake_runner, temp_dir):
        clip = fake_runner.register(temp_dir / "clip.mp4", 6.0)

        result = await adjuster.adjust_video(clip, 4.0, AdjustMode.EXTEND_ONLY, temp_dir / "out.mp4")

        assert result is clip
        assert fake_runner.calls == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_speed_change_keeps_audio_with_atempo(self, adjuster, fake_runner, temp_dir):
        clip = fake_runner.register(temp_dir / "clip.mp4", 10.0)

        await adjuster.adjust_video(
            clip, 4.0, AdjustMode.SPEED_CHANGE, temp_dir / "out.mp4", keep_audio=True
        )

        cmd = fake_runner.calls[0]
        assert cmd[cmd.index("-filter:a") + 1] == "atempo=2.0,atempo=1.25"
        assert "-an" not in cmd
        assert "-t" not in cmd

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_accepts_mode_string(self, adjuster, fake_runner, temp_dir):
        clip = fake_runner.register(temp_dir / "clip.mp4", 2.0)

        result = await adjuster.adjust_video(clip, 3.0, "force-exact", temp_dir / "out.mp4")

        assert result.duration == pytest.approx(3.0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ffmpeg_failure_returns_original(self, adjuster, fake_runner, temp_dir):
        clip = fake_runner.register(temp_dir / "clip.mp4", 2.0)
        fake_runner.fail_when = lambda args: True

        result = await adjuster.adjust_video(clip, 4.0, AdjustMode.FORCE_EXACT, temp_dir / "out.mp4")

        assert result is clip

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_output_returns_original(self, adjuster, fake_runner, temp_dir):
        clip = fake_runner.register(temp_dir / "clip.mp4", 2.0)
        fake_runner.write_output = False

        result = await adjuster.adjust_video(clip, 4.0, AdjustMode.FORCE_EXACT, temp_dir / "out.mp4")

        assert result is clip
        assert len(fake_runner.calls) == 1


# ---------------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------------


class TestAudioAdjustments:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_speed_up_audio_to_max(self, adjuster, fake_runner, temp_dir):
        track = fake_runner.register(temp_dir / "dialogue.mp3", 6.0)

        result = await adjuster.speed_up_audio(track, 4.0, temp_dir / "fast.mp3")

        cmd = fake_runner.calls[0]
        assert cmd[cmd.index("-filter:a") + 1] == "atempo=1.5"
        assert "libmp3lame" in cmd
        assert result.duration == pytest.approx(4.0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_speed_up_audio_chains_large_factor(self, adjuster, fake_runner, temp_dir):
        track = fake_runner.register(temp_dir / "dialogue.mp3", 10.0)

        result = await adjuster.speed_up_audio(track, 4.0, temp_dir / "fast.mp3")

        cmd = fake_runner.calls[0]
        assert cmd[cmd.index("-filter:a") + 1] == "atempo=2.0,atempo=1.25"
        assert result.duration == pytest.approx(4.0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_speed_up_audio_short_track_untouched(self, adjuster, fake_runner, temp_dir):
        track = fake_runner.register(temp_dir / "dialogue.mp3", 3.0)

        result = await adjuster.speed_up_audio(track, 4.0, temp_dir / "fast.mp3")

        assert result is track
        assert fake_runner.calls == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_trim_audio(self, adjuster, fake_runner, temp_dir):
        track = fake_runner.register(temp_dir / "sfx.mp3", 7.5)

        result = await adjuster.trim_audio(track, 4.0, temp_dir / "trimmed.mp3")

        cmd = fake_runner.calls[0]
        assert cmd[cmd.index("-af") + 1] == "atrim=0:4.000,asetpts=PTS-STARTPTS"
        assert result.duration == pytest.approx(4.0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_trim_audio_failure_returns_original(self, adjuster, fake_runner, temp_dir):
        track = fake_runner.register(temp_dir / "sfx.mp3", 7.5)
        fake_runner.fail_when = lambda args: True

        result = await adjuster.trim_audio(track, 4.0, temp_dir / "trimmed.mp3")

        assert result is track
