"""Unit tests for PlayerPropsParser.

Test Strategy:
1. Market matching is exact: combined markets never answer single props
2. Outcome labels must name the player (no shared-surname matches)
3. Implausible and inconsistent lines are rejected
4. Ranking: preferred bookmakers first, unranked last, payload order for ties
5. Low points lines are swapped for a sane alternative and flagged
6. Payload shape validation
"""
import pytest

from propline.core.errors import InvalidInput
from propline.services.nba import player_props_parser as parser_module
from propline.services.nba.player_props_parser import (
    MARKET_MAP,
    PlayerPropsParser,
    event_teams,
    get_player_props_parser,
    is_plausible,
    market_components,
    market_matches,
)

from conftest import bookmaker, market, outcome, over_under


def event(*bookmakers):
    return {
        "home_team": "Los Angeles Lakers",
        "away_team": "Golden State Warriors",
        "bookmakers": list(bookmakers),
    }


@pytest.fixture
def parser():
    return PlayerPropsParser()


class TestMarketKeys:

    def test_market_components(self):
        assert market_components("player_points") == frozenset({"points"})
        assert market_components("player_points_rebounds_assists") == frozenset(
            {"points", "rebounds", "assists"}
        )
        assert market_components("player_points_alternate") is None
        assert market_components("") is None

    def test_market_matches_is_exact(self):
        """Should never let a combined market answer a single or larger prop."""
        assert market_matches("player_points", "points")
        assert not market_matches("player_points_rebounds", "points")
        assert not market_matches("player_points_rebounds", "pra")
        assert market_matches("player_points_rebounds", "points+rebounds")

    @pytest.mark.parametrize("prop,line,expected", [
        ("points", 25.5, True),
        ("points", 60.0, True),
        ("points", 60.5, False),
        ("points", 0.0, False),
        ("threes", 12.5, False),
        ("points_rebounds_assists", 69.5, True),
    ])
    def test_plausible_ranges(self, prop, line, expected):
        assert is_plausible(prop, line) is expected

    def test_market_key_lookup(self, parser):
        assert parser.get_market_key("pra") == "player_points_rebounds_assists"
        assert parser.get_market_key("steals") is None
        assert parser.get_supported_prop_types() == list(MARKET_MAP)


class TestBestLine:
    """Test suite for best-line selection."""

    # Ranking
    # ─────────────────────────────────────────────────────────────

    def test_preferred_bookmaker_wins(self, parser, odds_payload):
        """Should pick FanDuel over unranked Bovada listed before it."""
        line = parser.best_line(odds_payload, "LeBron James", "points")
        assert line.line == 25.5
        assert line.bookmaker == "fanduel"
        assert line.bookmaker_title == "FanDuel"
        assert line.priority_rank == 1
        assert line.over_odds == -110
        assert line.under_odds == -110
        assert line.substituted is False

    def test_ranked_beats_earlier_unranked(self, parser):
        payload = event(
            bookmaker("bovada", market("player_points", *over_under("LeBron James", 24.5))),
            bookmaker("draftkings", market("player_points", *over_under("LeBron James", 25.5))),
        )
        line = parser.best_line(payload, "LeBron James", "points")
        assert (line.bookmaker, line.line) == ("draftkings", 25.5)

    def test_unranked_ties_keep_payload_order(self, parser):
        payload = event(
            bookmaker("bovada", market("player_points", *over_under("LeBron James", 24.5))),
            bookmaker("mybookie", market("player_points", *over_under("LeBron James", 23.5))),
        )
        lines = parser.candidate_lines(payload, "LeBron James", "points")
        assert [l.bookmaker for l in lines] == ["bovada", "mybookie"]
        assert all(l.priority_rank is None for l in lines)

    def test_custom_priority(self, odds_payload):
        parser = PlayerPropsParser(bookmaker_priority=["Bovada", "fanduel"])
        assert parser.best_line(odds_payload, "LeBron James", "points").bookmaker == "bovada"

    def test_priority_by_key_or_title_substring(self, parser):
        assert parser._get_bookmaker_priority("draftkings") == 0
        assert parser._get_bookmaker_priority("draftkings_az") == 0
        assert parser._get_bookmaker_priority("dk", "DraftKings Sportsbook") == 0
        assert parser._get_bookmaker_priority("bovada", "Bovada") is None

    # Matching
    # ─────────────────────────────────────────────────────────────

    def test_combined_market_never_answers_points(self, parser):
        payload = event(bookmaker("fanduel", market("player_points_rebounds", *over_under("LeBron James", 33.5))))
        assert parser.best_line(payload, "LeBron James", "points") is None
        assert parser.best_line(payload, "LeBron James", "pr").line == 33.5

    def test_shared_surname_not_matched(self, parser):
        """Should not give Bronny's line to LeBron."""
        payload = event(bookmaker("fanduel", market("player_points", *over_under("Bronny James", 4.5))))
        assert parser.best_line(payload, "LeBron James", "points") is None

    def test_accented_and_suffixed_labels(self, parser):
        payload = event(bookmaker("fanduel", market(
            "player_assists",
            outcome("Luka Dončić - Assists", "Over", 8.5),
            outcome("Luka Dončić - Assists", "Under", 8.5, price=-120),
        )))
        line = parser.best_line(payload, "luka doncic", "assists")
        assert line.line == 8.5
        assert line.under_odds == -120

    def test_one_sided_market(self, parser):
        payload = event(bookmaker("fanduel", market("player_threes", outcome("LeBron James", "Over", 2.5))))
        line = parser.best_line(payload, "LeBron James", "threes")
        assert line.over_odds == -110
        assert line.under_odds is None

    # Validation
    # ─────────────────────────────────────────────────────────────

    def test_implausible_lines_dropped(self, parser):
        payload = event(
            bookmaker("draftkings", market("player_points", *over_under("LeBron James", 75.5))),
            bookmaker("fanduel", market("player_points", *over_under("LeBron James", 26.5))),
        )
        assert parser.best_line(payload, "LeBron James", "points").line == 26.5

    def test_single_line_above_combined_rejected(self, parser):
        """Should reject rebounds 12.5 when points+rebounds is 11.5."""
        payload = event(bookmaker(
            "fanduel",
            market("player_rebounds", *over_under("LeBron James", 12.5)),
            market("player_points_rebounds", *over_under("LeBron James", 11.5)),
        ))
        assert parser.best_line(payload, "LeBron James", "rebounds") is None

    def test_cross_check_prefers_same_bookmaker(self, parser):
        """Should compare against the same book's combined line when it has one."""
        payload = event(
            bookmaker(
                "draftkings",
                market("player_rebounds", *over_under("LeBron James", 9.5)),
                market("player_points_rebounds", *over_under("LeBron James", 35.5)),
            ),
            bookmaker("fanduel", market("player_points_rebounds", *over_under("LeBron James", 9.0))),
        )
        assert parser.best_line(payload, "LeBron James", "rebounds").line == 9.5

    def test_cross_check_falls_back_to_pool(self, parser):
        payload = event(
            bookmaker("draftkings", market("player_rebounds", *over_under("LeBron James", 9.5))),
            bookmaker("fanduel", market("player_points_rebounds_assists", *over_under("LeBron James", 9.0))),
        )
        assert parser.best_line(payload, "LeBron James", "rebounds") is None

    def test_duplicates_collapsed(self, parser):
        payload = event(bookmaker(
            "fanduel",
            market("player_points", *over_under("LeBron James", 25.5)),
            market("player_points", *over_under("LeBron James", 25.5)),
        ))
        assert len(parser.candidate_lines(payload, "LeBron James", "points")) == 1

    # Low Line Substitution
    # ─────────────────────────────────────────────────────────────

    def test_low_points_line_substituted(self, parser):
        payload = event(
            bookmaker("draftkings", market("player_points", *over_under("LeBron James", 6.5))),
            bookmaker("bovada", market("player_points", *over_under("LeBron James", 24.5))),
        )
        line = parser.best_line(payload, "LeBron James", "points")
        assert line.line == 24.5
        assert line.bookmaker == "bovada"
        assert line.substituted is True
        assert line.original_line == 6.5

    def test_low_line_kept_without_alternative(self, parser):
        payload = event(bookmaker("draftkings", market("player_points", *over_under("Bench Guy", 4.5))))
        line = parser.best_line(payload, "Bench Guy", "points")
        assert line.line == 4.5
        assert line.substituted is False

    def test_low_line_rule_is_points_only(self, parser):
        payload = event(
            bookmaker("draftkings", market("player_rebounds", *over_under("LeBron James", 6.5))),
            bookmaker("bovada", market("player_rebounds", *over_under("LeBron James", 9.5))),
        )
        assert parser.best_line(payload, "LeBron James", "rebounds").line == 6.5

    # Payload Shapes
    # ─────────────────────────────────────────────────────────────

    def test_wrapped_and_list_payloads(self, parser, odds_payload):
        for payload in ({"data": odds_payload}, [odds_payload], {"data": [odds_payload]}):
            assert parser.best_line(payload, "LeBron James", "points").line == 25.5

    def test_empty_payloads(self, parser):
        assert parser.best_line({}, "LeBron James", "points") is None
        assert parser.best_line([], "LeBron James", "points") is None
        assert parser.best_line({"data": None}, "LeBron James", "points") is None

    @pytest.mark.parametrize("payload", [
        "not json",
        42,
        {"bookmakers": "fanduel"},
        ["event"],
        {"data": "garbage"},
        {"bookmakers": ["draftkings"]},
        {"bookmakers": [{"key": "fanduel", "markets": "player_points"}]},
        {"bookmakers": [{"key": "fanduel", "markets": [7]}]},
        {"bookmakers": [{"key": "fanduel", "markets": [{"key": "player_points", "outcomes": ["LeBron James"]}]}]},
        {"bookmakers": [{"key": "fanduel", "markets": [{"key": "player_points", "outcomes": {"name": "Over"}}]}]},
    ])
    def test_malformed_payload(self, parser, payload):
        """Should reject a wrong shape at any nesting level with InvalidInput."""
        with pytest.raises(InvalidInput):
            parser.best_line(payload, "LeBron James", "points")

    @pytest.mark.parametrize("payload", [
        {"bookmakers": ["draftkings"]},
        {"bookmakers": [{"key": "fanduel", "markets": [{"key": "player_points", "outcomes": ["LeBron James"]}]}]},
    ])
    def test_malformed_payload_bulk(self, parser, payload):
        with pytest.raises(InvalidInput):
            parser.extract_all_player_lines(payload, "points")
        with pytest.raises(InvalidInput):
            event_teams(payload)

    def test_null_levels_are_empty(self, parser):
        """Should treat null bookmakers, markets and outcomes as empty."""
        payload = {"bookmakers": [
            {"key": "fanduel", "markets": None},
            {"key": "draftkings", "markets": [{"key": "player_points", "outcomes": None}]},
        ]}
        assert parser.best_line(payload, "LeBron James", "points") is None
        assert parser.best_line({"bookmakers": None}, "LeBron James", "points") is None

    def test_non_string_fields_tolerated(self, parser):
        """Should read numeric or nested scalar fields as text instead of failing."""
        payload = {"home_team": 12, "bookmakers": [{"key": 7, "title": None, "markets": [
            {"key": "player_points", "outcomes": [
                {"name": "Over", "description": "LeBron James", "point": 25.5, "price": -110},
                {"name": ["Under"], "description": 23, "point": 25.5},
            ]},
            {"key": None, "outcomes": []},
        ]}]}
        line = parser.best_line(payload, "LeBron James", "points")
        assert line.line == 25.5
        assert line.bookmaker == "7"
        assert line.over_odds == -110
        assert event_teams(payload) == []

    def test_empty_player_name(self, parser, odds_payload):
        with pytest.raises(InvalidInput):
            parser.best_line(odds_payload, "  ", "points")


class TestBulkExtraction:

    def test_extract_all_lines(self, parser, odds_payload):
        lines = parser.extract_all_lines(odds_payload, "LeBron James")
        assert set(lines) == {
            "points", "rebounds", "assists", "points_rebounds", "points_rebounds_assists",
        }
        assert lines["assists"].bookmaker == "draftkings"
        assert lines["points_rebounds"].line == 33.5

    def test_extract_all_player_lines(self, parser, odds_payload):
        lines = parser.extract_all_player_lines(odds_payload, "points")
        assert {name: l.line for name, l in lines.items()} == {
            "LeBron James": 25.5,
            "Stephen Curry": 27.5,
        }

    def test_event_teams(self, odds_payload):
        assert event_teams(odds_payload) == ["LAL", "GSW"]


class TestSharedParser:

    @pytest.fixture(autouse=True)
    def _fresh_singleton(self, monkeypatch):
        monkeypatch.setattr(parser_module, "_default_parser", None)

    def test_same_instance(self):
        assert get_player_props_parser() is get_player_props_parser()

    def test_arguments_replace_instance(self):
        default = get_player_props_parser()
        custom = get_player_props_parser(bookmaker_priority=["bovada"], low_line_threshold=5.0)
        assert custom is not default
        assert custom.bookmaker_priority == ["bovada"]
        assert custom.low_line_threshold == 5.0
