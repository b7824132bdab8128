"""
Holdings Bot Tests
Heuristic choices and the bot step driver
"""

import math
import random

import pytest

from holdings.bot import BotPlayer, Difficulty, execute_bot_step, run_bots_until_human
from holdings.engine import (
    current_deciding_player, init_game, is_playing, play_tile, restore_game
)
from holdings.models import (
    GamePhase, HotelChain, MergerStockDecision, Position, Tile, TurnPhaseKind
)


def p(label: str) -> Position:
    return Position(column=int(label[:-1]), row=ord(label[-1]) - ord("A"))


def t(label: str) -> Tile:
    return Tile(position=p(label))


def build_chain(state, chain, *labels):
    for label in labels:
        state.board.place_tile(p(label))
    state.board.assign_chain(chain, {p(l) for l in labels})


def row(letter: str, first: int, last: int):
    return [f"{c}{letter}" for c in range(first, last + 1)]


def give_stock(state, player_index, chain, count):
    state.players[player_index].add_stock(chain, count)
    state.stock_market[chain] -= count


@pytest.fixture
def game():
    """Four computer seats, empty hands and bag"""
    state = init_game(4, human_index=-1, seed=11)
    for player in state.players:
        player.tiles = []
    state.tile_bag = []
    return state


@pytest.fixture
def bot(game):
    return BotPlayer(game.players[0].id, Difficulty.MEDIUM)


class TestTileChoice:
    def test_prefers_founding(self, game, bot):
        game.board.place_tile(p("1A"))
        game.players[0].tiles = [t("5E"), t("2A")]
        assert bot.choose_tile(game) == t("2A")

    def test_none_when_nothing_playable(self, game, bot):
        assert bot.choose_tile(game) is None

    def test_easy_only_picks_playable(self, game):
        build_chain(game, HotelChain.TOWER, *row("A", 1, 11))
        build_chain(game, HotelChain.SACKSON, *row("C", 1, 11))
        game.players[0].tiles = [t("1B"), t("5E")]
        easy = BotPlayer(game.players[0].id, Difficulty.EASY, rng=random.Random(0))
        for _ in range(10):
            assert easy.choose_tile(game) == t("5E")

    def test_ties_keep_hand_order(self, game, bot):
        game.players[0].tiles = [t("9I"), t("5E")]
        assert bot.choose_tile(game) == t("9I")

    def test_hard_plays_like_medium(self, game):
        game.board.place_tile(p("1A"))
        game.players[0].tiles = [t("5E"), t("2A")]
        hard = BotPlayer(game.players[0].id, Difficulty.HARD)
        assert hard.choose_tile(game) == t("2A")


class TestTileScoring:
    def test_independent(self, game, bot):
        assert bot.evaluate_tile_placement(game, t("5E"), game.players[0]) == 1.0

    def test_founding_with_dead_stock(self, game, bot):
        give_stock(game, 0, HotelChain.TOWER, 2)
        game.board.place_tile(p("1A"))
        assert bot.evaluate_tile_placement(game, t("2A"), game.players[0]) == 30.0

    def test_growing_owned_chain(self, game, bot):
        build_chain(game, HotelChain.TOWER, "1A", "2A")
        assert bot.evaluate_tile_placement(game, t("3A"), game.players[0]) == 2.0
        give_stock(game, 0, HotelChain.TOWER, 4)
        assert bot.evaluate_tile_placement(game, t("3A"), game.players[0]) == 7.0

    def test_merger_as_majority_holder(self, game, bot):
        build_chain(game, HotelChain.SACKSON, *row("A", 1, 5))
        build_chain(game, HotelChain.FESTIVAL, *row("A", 7, 12))
        give_stock(game, 0, HotelChain.SACKSON, 3)
        give_stock(game, 1, HotelChain.SACKSON, 3)
        give_stock(game, 0, HotelChain.FESTIVAL, 1)
        assert bot.evaluate_tile_placement(game, t("6A"), game.players[0]) == 15.0 + 10.0 + 3.0

    def test_merger_as_minority_holder(self, game, bot):
        build_chain(game, HotelChain.SACKSON, *row("A", 1, 5))
        build_chain(game, HotelChain.FESTIVAL, *row("A", 7, 12))
        give_stock(game, 0, HotelChain.SACKSON, 2)
        give_stock(game, 1, HotelChain.SACKSON, 4)
        assert bot.evaluate_tile_placement(game, t("6A"), game.players[0]) == 5.0 + 5.0

    def test_illegal(self, game, bot):
        build_chain(game, HotelChain.TOWER, *row("A", 1, 11))
        build_chain(game, HotelChain.SACKSON, *row("C", 1, 11))
        assert bot.evaluate_tile_placement(game, t("1B"), game.players[0]) == -math.inf


class TestChainChoice:
    def test_dead_stock_first(self, game, bot):
        give_stock(game, 0, HotelChain.AMERICAN, 1)
        assert bot.choose_chain_to_found(game, list(HotelChain)) == HotelChain.AMERICAN

    def test_cheap_chain_early(self, game, bot):
        assert bot.choose_chain_to_found(game, list(HotelChain)) == HotelChain.SACKSON

    def test_expensive_chain_late(self, game, bot):
        for position in game.config.all_positions()[:40]:
            game.board.place_tile(position)
        assert bot.choose_chain_to_found(game, list(HotelChain)) == HotelChain.CONTINENTAL

    def test_respects_offered_options(self, game, bot):
        options = [HotelChain.IMPERIAL, HotelChain.FESTIVAL]
        assert bot.choose_chain_to_found(game, options) == HotelChain.IMPERIAL

    def test_empty_options_fall_back_to_inactive(self, game, bot):
        build_chain(game, HotelChain.SACKSON, "1A", "2A")
        assert bot.choose_chain_to_found(game, []) == HotelChain.WORLDWIDE


class TestStockChoice:
    @pytest.fixture
    def buying(self, game):
        build_chain(game, HotelChain.SACKSON, "1A", "2A")
        build_chain(game, HotelChain.TOWER, *row("C", 1, 5))
        return game

    def test_spends_cap_on_best_chain(self, buying, bot):
        assert bot.choose_stock_purchases(buying) == {HotelChain.SACKSON: 3}

    def test_stays_within_budget(self, buying, bot):
        buying.players[0].money = 500
        assert bot.choose_stock_purchases(buying) == {HotelChain.SACKSON: 2}

    def test_spills_over_when_bank_runs_low(self, buying, bot):
        give_stock(buying, 0, HotelChain.SACKSON, 24)
        assert bot.choose_stock_purchases(buying) == {HotelChain.SACKSON: 1, HotelChain.TOWER: 2}

    def test_skips_hopeless_chains(self, buying, bot):
        give_stock(buying, 1, HotelChain.SACKSON, 10)
        give_stock(buying, 2, HotelChain.SACKSON, 8)
        give_stock(buying, 1, HotelChain.TOWER, 10)
        give_stock(buying, 2, HotelChain.TOWER, 8)
        assert bot.choose_stock_purchases(buying) == {HotelChain.SACKSON: 3}

        buying.players[0].money = 100
        assert bot.choose_stock_purchases(buying) == {}

    def test_purchase_score(self, buying, bot):
        score = bot.evaluate_stock_purchase(buying, HotelChain.TOWER, buying.players[0])
        assert score == 10.0 - 700 / 200 + 2.0


class TestMergerChoice:
    @pytest.fixture
    def merging(self, game):
        build_chain(game, HotelChain.SACKSON, *row("A", 1, 5))
        build_chain(game, HotelChain.FESTIVAL, *row("A", 7, 12))
        give_stock(game, 0, HotelChain.SACKSON, 5)
        give_stock(game, 2, HotelChain.SACKSON, 3)
        game.players[0].tiles = [t("6A")]
        play_tile(game, t("6A"))
        return game

    def test_trades_into_large_survivor(self, merging, bot):
        decision = bot.choose_merger_decision(merging)
        assert decision == MergerStockDecision(sell=1, trade=4, keep=0)

    def test_sells_when_bank_cannot_trade(self, merging, bot):
        give_stock(merging, 1, HotelChain.FESTIVAL, 25)
        assert bot.choose_merger_decision(merging) == MergerStockDecision(sell=5, trade=0, keep=0)

    def test_keeps_shares_when_refounding_is_possible(self, merging, bot):
        give_stock(merging, 1, HotelChain.FESTIVAL, 25)
        merging.board.place_tile(p("9I"))
        merging.players[0].tiles = [t("9H")]
        assert bot.choose_merger_decision(merging) == MergerStockDecision(sell=2, trade=0, keep=3)

    def test_decides_for_its_own_holdings(self, merging):
        other = BotPlayer(merging.players[2].id)
        assert other.choose_merger_decision(merging) == MergerStockDecision(sell=1, trade=2, keep=0)

    def test_nothing_outside_merger(self, game, bot):
        assert bot.choose_merger_decision(game) is None


class TestDriver:
    def test_full_turn(self, game):
        game.board.place_tile(p("1A"))
        game.players[0].tiles = [t("2A")]
        game.tile_bag = [t("9I")]
        bot = BotPlayer(game.players[0].id)

        execute_bot_step(game, bot)
        assert game.turn_phase.kind == TurnPhaseKind.FOUND_CHAIN
        execute_bot_step(game, bot)
        assert game.turn_phase.kind == TurnPhaseKind.BUY_STOCKS
        assert game.board.chain_size(HotelChain.SACKSON) == 2
        execute_bot_step(game, bot)
        assert game.turn_phase.kind == TurnPhaseKind.END_TURN
        assert game.players[0].stock_count(HotelChain.SACKSON) == 4
        execute_bot_step(game, bot)
        assert game.current_player_index == 1
        assert game.players[0].tiles == [t("9I")]

    def test_skips_placement_without_tiles(self, game):
        execute_bot_step(game, BotPlayer(game.players[0].id))
        assert game.turn_phase.kind == TurnPhaseKind.BUY_STOCKS

    def test_noop_after_game_over(self, game):
        game.phase = GamePhase.GAME_OVER
        execute_bot_step(game, BotPlayer(game.players[0].id))
        assert game.turn_phase.kind == TurnPhaseKind.PLACE_TILE

    def test_runs_until_human_seat(self):
        state = init_game(3, human_index=0, seed=21)
        # Hand the turn to the computers
        state.current_player_index = 1

        state = run_bots_until_human(state, rng=random.Random(1))

        decider = current_deciding_player(state)
        assert not is_playing(state) or decider.is_human
        restore_game(state)

    def test_all_computer_game_finishes(self):
        state = init_game(4, human_index=-1, seed=5)
        state = run_bots_until_human(state, Difficulty.MEDIUM, max_steps=20_000)

        assert state.phase == GamePhase.GAME_OVER or not state.tile_bag
        restore_game(state)

