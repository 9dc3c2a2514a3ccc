"""Tests for per-scene stock footage search."""

from stock_video_assembler.errors import ProviderError
from stock_video_assembler.models import AssemblySettings, SceneRequest
from stock_video_assembler.services.scene_pipeline import ScenePipeline

from conftest import FakeProvider, build_candidate


class TestScenePipeline:

    def test_selects_first_candidate_and_keeps_three(self, test_settings, job_settings):
        candidates = [build_candidate(i) for i in range(1, 6)]
        provider = FakeProvider({"ocean waves": candidates})
        pipeline = ScenePipeline(provider, test_settings)

        result = pipeline.search_scene(0, SceneRequest(prompt="ocean waves"), job_settings)

        assert result.selected.video_id == 1
        assert [c.video_id for c in result.candidates] == [1, 2, 3]
        assert not result.used_fallback
        assert result.error is None

    def test_constraints_use_scene_duration_and_fixed_resolution_floor(self, test_settings):
        provider = FakeProvider()
        pipeline = ScenePipeline(provider, test_settings)

        pipeline.search_scene(0, SceneRequest(prompt="rain", duration=7.2), AssemblySettings(width=3840, height=2160))

        query, constraints = provider.search_calls[0]
        assert query == "rain"
        assert constraints.per_page == 10
        assert constraints.min_duration == 8
        assert (constraints.min_width, constraints.min_height) == (1920, 1080)

    def test_zero_results_triggers_exactly_one_fallback(self, test_settings, job_settings):
        provider = FakeProvider({"purple elephant": [], "nature landscape": [build_candidate(42)]})
        pipeline = ScenePipeline(provider, test_settings)

        result = pipeline.search_scene(0, SceneRequest(prompt="purple elephant"), job_settings)

        assert [call[0] for call in provider.search_calls] == ["purple elephant", "nature landscape"]
        assert provider.search_calls[1][1].per_page == 5
        assert result.used_fallback
        assert result.selected.video_id == 42

    def test_fallback_also_empty(self, test_settings, job_settings):
        provider = FakeProvider(default=[])
        pipeline = ScenePipeline(provider, test_settings)

        result = pipeline.search_scene(0, SceneRequest(prompt="nothing"), job_settings)

        assert len(provider.search_calls) == 2
        assert not result.has_selection
        assert "No videos found" in result.error

    def test_provider_error_is_recorded_not_raised(self, test_settings, job_settings):
        provider = FakeProvider({"storm": ProviderError("API rate limit exceeded", status_code=429)})
        pipeline = ScenePipeline(provider, test_settings)

        result = pipeline.search_scene(2, SceneRequest(prompt="storm"), job_settings)

        assert result.index == 2
        assert not result.has_selection
        assert "rate limit" in result.error

    def test_results_keep_input_order_and_report_progress(self, test_settings):
        prompts = [f"scene {i}" for i in range(6)]
        provider = FakeProvider({p: [build_candidate(i + 1)] for i, p in enumerate(prompts)})
        pipeline = ScenePipeline(provider, test_settings)
        progress = []

        results = pipeline.search_scenes(
            [SceneRequest(prompt=p) for p in prompts],
            AssemblySettings(),
            on_scene_searched=lambda done, total: progress.append((done, total)),
        )

        assert [r.index for r in results] == list(range(6))
        assert [r.selected.video_id for r in results] == [1, 2, 3, 4, 5, 6]
        assert progress == [(i, 6) for i in range(1, 7)]

    def test_one_failing_scene_does_not_abort_others(self, test_settings, job_settings):
        provider = FakeProvider({"bad": ProviderError("unavailable")})
        pipeline = ScenePipeline(provider, test_settings)

        results = pipeline.search_scenes(
            [SceneRequest(prompt="good"), SceneRequest(prompt="bad"), SceneRequest(prompt="fine")],
            job_settings,
        )

        assert [r.has_selection for r in results] == [True, False, True]

    def test_unexpected_search_error_is_recorded(self, test_settings, job_settings):
        provider = FakeProvider({"glitch": ValueError("could not convert string to float: 'x'")})
        pipeline = ScenePipeline(provider, test_settings)

        results = pipeline.search_scenes([SceneRequest(prompt="glitch"), SceneRequest(prompt="calm lake")], job_settings)

        assert not results[0].has_selection
        assert "could not convert" in results[0].error
        assert results[1].has_selection
