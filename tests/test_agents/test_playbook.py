"""Tests for the playbook matcher."""

from pathlib import Path

import pytest

from resight.agents.playbook import (
    PlaybookError,
    PlaybookFlow,
    find_similar_flow,
    format_flow_for_prompt,
    load_playbook,
    score_flow,
    tokenize,
)
from resight.config.validators import PROJECT_ROOT


def make_flow(flow_id: str, title: str, keywords: list[str], instruction: str) -> PlaybookFlow:
    return PlaybookFlow(
        id=flow_id,
        title=title,
        keywords=tuple(keywords),
        instruction=instruction,
        reference="-> did the thing",
    )


COFFEE = make_flow("coffee", "Coffee Shops", ["coffee", "cafe"], "find coffee nearby")
TRANSIT = make_flow("transit", "Transit", ["bus", "train"], "get directions")


class TestTokenize:
    def test_drops_stop_words_and_short_tokens(self) -> None:
        assert tokenize("Find me the BEST coffee, near a 7-11!") == ["coffee", "near", "7-11"]

    def test_empty(self) -> None:
        assert tokenize("the and of") == []


class TestFindSimilarFlow:
    """Test scoring and threshold behavior."""

    def test_clear_match(self) -> None:
        flow = find_similar_flow("coffee near me", [COFFEE, TRANSIT])
        assert flow is COFFEE

    def test_zero_overlap_is_none(self) -> None:
        assert find_similar_flow("quarterly tax filing", [COFFEE, TRANSIT]) is None

    def test_only_stop_words_is_none(self) -> None:
        assert find_similar_flow("show me the best", [COFFEE]) is None

    def test_score_at_threshold_is_not_a_match(self) -> None:
        flow = make_flow("edge", "coffee", ["coffee"], "nothing")
        assert score_flow(flow, tokenize("coffee zzz")) == pytest.approx(1.5)
        assert find_similar_flow("coffee zzz", [flow]) is None

    def test_tie_goes_to_first_declared(self) -> None:
        twin = make_flow("twin", "Coffee Shops", ["coffee", "cafe"], "find coffee nearby")
        assert find_similar_flow("coffee cafe", [COFFEE, twin]) is COFFEE
        assert find_similar_flow("coffee cafe", [twin, COFFEE]) is twin

    def test_shipped_catalog(self) -> None:
        flows = load_playbook(PROJECT_ROOT / "config" / "playbook.yaml")
        assert len({flow.id for flow in flows}) == len(flows)

        flow = find_similar_flow(
            "find vanilla ice cream on target and read the nutrition facts", flows
        )

        assert flow is not None
        assert flow.id == "grocery-product"


class TestLoadPlaybook:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(PlaybookError):
            load_playbook(tmp_path / "absent.yaml")

    def test_flows_must_be_list(self, tmp_path: Path) -> None:
        path = tmp_path / "playbook.yaml"
        path.write_text("flows:\n  id: x\n")
        with pytest.raises(PlaybookError, match="must be a list"):
            load_playbook(path)

    def test_invalid_flow(self, tmp_path: Path) -> None:
        path = tmp_path / "playbook.yaml"
        path.write_text("flows:\n  - id: x\n    title: missing fields\n")
        with pytest.raises(PlaybookError, match="Invalid playbook flow"):
            load_playbook(path)


def test_format_flow_for_prompt() -> None:
    text = format_flow_for_prompt(COFFEE)
    assert text.splitlines() == [
        "REFERENCE FLOW (Coffee Shops):",
        'Example request: "find coffee nearby"',
        "-> did the thing",
    ]
