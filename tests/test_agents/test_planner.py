"""Tests for the fast-path planner."""

import pytest

from resight.agents.planner import ExecutionPlan, format_plan_for_prompt, plan_fast_path


def first_url(instruction: str) -> str | None:
    plan = plan_fast_path(instruction)
    assert plan is not None, instruction
    return plan.first_url


class TestPlanFastPath:
    """Test pattern priority and plan shape."""

    def test_bare_address_first_step_is_exact_url(self) -> None:
        plan = plan_fast_path("https://example.com/x")

        assert plan is not None
        assert plan.steps[0].action == "goto_url"
        assert plan.steps[0].argument == "https://example.com/x"
        assert plan.steps[-1].action == "done"

    def test_url_trailing_punctuation_trimmed(self) -> None:
        assert first_url("open https://example.com/page. thanks") == "https://example.com/page"

    def test_url_beats_everything_else(self) -> None:
        assert first_url("youtube videos at https://example.com/v") == "https://example.com/v"

    def test_channel_handle(self) -> None:
        assert first_url("show me @veritasium") == "https://www.youtube.com/@veritasium/videos"

    def test_creator_phrase_with_video_vocabulary(self) -> None:
        assert first_url("show me videos by mkbhd") == "https://www.youtube.com/@mkbhd/videos"

    def test_video_topic_search(self) -> None:
        url = first_url("find youtube videos about sourdough bread")
        assert url == "https://www.youtube.com/results?search_query=about%20sourdough%20bread"

    def test_marketplace(self) -> None:
        url = first_url("find vanilla ice cream on target")
        assert url == "https://www.target.com/s?searchTerm=vanilla%20ice%20cream"

    def test_best_then_composite(self) -> None:
        plan = plan_fast_path("find the best ramen in Oakland and get the hours")
        assert plan is not None
        assert plan.first_url == "https://www.google.com/search?q=best%20ramen%20in%20oakland"
        assert "hours" in plan.reasoning
        assert len(plan.steps) == 7

    def test_generic_search(self) -> None:
        assert first_url("what is the tallest building") == (
            "https://www.google.com/search?q=the%20tallest%20building"
        )

    @pytest.mark.parametrize("instruction", ["hello there", "click the second one", "yes"])
    def test_no_match(self, instruction: str) -> None:
        assert plan_fast_path(instruction) is None

    def test_deterministic(self) -> None:
        instruction = "search for cheap flights to denver"
        assert plan_fast_path(instruction) == plan_fast_path(instruction)


class TestFormatPlan:
    def test_numbered_steps(self) -> None:
        plan = plan_fast_path("https://example.com")
        assert isinstance(plan, ExecutionPlan)
        text = format_plan_for_prompt(plan)
        assert text.startswith("EXECUTION PLAN (4 steps")
        assert '1. goto_url("https://example.com")' in text
