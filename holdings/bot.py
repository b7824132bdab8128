"""
Holdings Bot Player
Heuristic AI for computer-controlled seats
"""

import logging
import math
import random
from enum import Enum
from typing import Dict, List, Optional

from holdings import engine
from holdings.models import (
    GameState, HotelChain, MergerStockDecision, PlacementKind, Player, Tile,
    TurnPhaseKind
)

logger = logging.getLogger(__name__)


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"  # same heuristics as MEDIUM for now


class BotPlayer:
    """Stateless decision maker; reads the state, never mutates it"""

    def __init__(self, player_id: str, difficulty: Difficulty = Difficulty.MEDIUM, rng: Optional[random.Random] = None):
        self.player_id = player_id
        self.difficulty = Difficulty(difficulty)
        self.rng = rng or random.Random()

    def _player(self, state: GameState) -> Optional[Player]:
        for player in state.players:
            if player.id == self.player_id:
                return player
        return None

    # --- tiles ---------------------------------------------------------------

    def choose_tile(self, state: GameState) -> Optional[Tile]:
        """Tile to place, or None when nothing is playable"""
        playable = engine.playable_tiles(state)
        if not playable:
            return None

        if self.difficulty == Difficulty.EASY:
            return self.rng.choice(playable)

        player = self._player(state) or state.current_player
        best_tile = None
        best_score = -math.inf
        for tile in playable:
            score = self.evaluate_tile_placement(state, tile, player)
            if best_tile is None or score > best_score:
                best_tile = tile
                best_score = score
        return best_tile or playable[0]

    def evaluate_tile_placement(self, state: GameState, tile: Tile, player: Player) -> float:
        result = engine.analyze_tile_placement(state, tile)
        board = state.board

        if result.kind == PlacementKind.INDEPENDENT:
            return 1.0

        if result.kind == PlacementKind.FOUNDS_CHAIN:
            score = 10.0
            active = board.active_chains()
            for chain in HotelChain:
                # Dead stock comes back to life
                if player.stock_count(chain) > 0 and chain not in active:
                    score += 20.0
            return score

        if result.kind == PlacementKind.GROWS_CHAIN:
            owned = player.stock_count(result.chain)
            if owned > 0:
                return 5.0 + owned * 0.5
            return 2.0

        if result.kind == PlacementKind.MERGER:
            score = 0.0
            for chain in result.acquired:
                owned = player.stock_count(chain)
                size = board.chain_size(chain)
                top = max(p.stock_count(chain) for p in state.players)
                if owned > 0 and owned == top:
                    score += 15.0 + size * 2.0
                elif owned > 0:
                    score += 5.0 + size
            if player.stock_count(result.surviving) > 0:
                score += 3.0
            return score

        return -math.inf

    # --- founding ------------------------------------------------------------

    def choose_chain_to_found(self, state: GameState, options: List[HotelChain]) -> HotelChain:
        player = self._player(state) or state.current_player
        if not options:
            active = state.board.active_chains()
            return next((c for c in HotelChain if c not in active), HotelChain.SACKSON)

        for chain in options:
            if player.stock_count(chain) > 0:
                return chain

        progress = len(state.board.placed_tiles) / state.config.total_tiles
        if progress < 0.3:
            return min(options, key=lambda c: c.tier)
        return max(options, key=lambda c: c.tier)

    # --- stock purchase ------------------------------------------------------

    def choose_stock_purchases(self, state: GameState) -> Dict[HotelChain, int]:
        player = self._player(state) or state.current_player
        budget = player.money
        remaining = state.config.max_stock_purchases_per_turn

        candidates = []
        for chain in state.board.active_chains():
            price = engine.stock_price(state, chain)
            if price > budget or engine.available_stock(state, chain) <= 0:
                continue
            candidates.append((chain, self.evaluate_stock_purchase(state, chain, player), price))

        candidates.sort(key=lambda c: c[1], reverse=True)

        purchases: Dict[HotelChain, int] = {}
        for chain, score, price in candidates:
            if score <= 0:
                continue
            if remaining <= 0:
                break
            count = min(budget // price, engine.available_stock(state, chain), remaining)
            if count > 0:
                purchases[chain] = count
                budget -= price * count
                remaining -= count
        return purchases

    def evaluate_stock_purchase(self, state: GameState, chain: HotelChain, player: Player) -> float:
        owned = player.stock_count(chain)
        size = state.board.chain_size(chain)
        price = engine.stock_price(state, chain)
        cap = state.config.max_stock_purchases_per_turn

        holdings = sorted((p.stock_count(chain) for p in state.players), reverse=True)
        top = holdings[0] if holdings else 0
        second = holdings[1] if len(holdings) > 1 else 0

        score = 0.0
        if owned >= top:
            score += 10.0
        elif owned + cap > top:
            score += 8.0
        elif owned > second or owned + cap > second:
            score += 5.0

        if size >= state.config.safe_chain_size:
            score += 3.0
        elif size >= 6:
            score += 1.0

        score -= price / 200.0

        if owned == 0 and state.board.active_chains():
            score += 2.0
        return score

    # --- mergers -------------------------------------------------------------

    def choose_merger_decision(self, state: GameState) -> Optional[MergerStockDecision]:
        """Split for this bot's shares in the chain being acquired"""
        if state.turn_phase.kind != TurnPhaseKind.HANDLE_MERGER_STOCK:
            return None
        context = state.turn_phase.context
        player = self._player(state)
        if player is None:
            return None

        held = player.stock_count(context.acquired_chain)
        surviving = context.surviving_chain
        surviving_size = state.board.chain_size(surviving)

        sell = trade = keep = 0
        if engine.is_safe(state, surviving) or surviving_size >= state.config.safe_chain_size // 2:
            max_trade = min(held, engine.available_stock(state, surviving) * 2)
            trade = (max_trade // 2) * 2
            sell = held - trade
        else:
            sell = held

        can_refound = any(
            engine.analyze_tile_placement(state, tile).kind == PlacementKind.FOUNDS_CHAIN
            for tile in player.tiles
        )
        if can_refound and sell > 0:
            keep = min(sell, state.config.max_stock_purchases_per_turn)
            sell -= keep

        return MergerStockDecision(sell=sell, trade=trade, keep=keep)


# =============================================================================
# Driver
# =============================================================================

def execute_bot_step(state: GameState, bot: BotPlayer) -> GameState:
    """Apply one engine command chosen by the bot for the current phase"""
    if not engine.is_playing(state):
        return state
    kind = state.turn_phase.kind

    if kind == TurnPhaseKind.PLACE_TILE:
        tile = bot.choose_tile(state)
        if tile is None:
            return engine.skip_tile_placement(state)
        logger.debug(f"[execute_bot_step] {state.current_player.name} plays {tile.display_name}")
        return engine.play_tile(state, tile)

    if kind == TurnPhaseKind.FOUND_CHAIN:
        chain = bot.choose_chain_to_found(state, state.turn_phase.available_chains)
        return engine.found_chain(state, chain)

    if kind == TurnPhaseKind.HANDLE_MERGER_STOCK:
        decision = bot.choose_merger_decision(state)
        if decision is None:
            return state
        return engine.handle_merger_stock_decision(state, decision)

    if kind == TurnPhaseKind.BUY_STOCKS:
        purchases = bot.choose_stock_purchases(state)
        if not purchases:
            return engine.skip_buying_stocks(state)
        return engine.buy_stocks(state, purchases)

    if kind == TurnPhaseKind.END_TURN:
        return engine.end_turn(state)

    return state


def run_bots_until_human(
    state: GameState,
    difficulty: Difficulty = Difficulty.MEDIUM,
    max_steps: int = 10_000,
    rng: Optional[random.Random] = None,
) -> GameState:
    """Let computer seats act until a human must decide or the game ends"""
    rng = rng or random.Random(state.random_seed)
    for _ in range(max_steps):
        player = engine.current_deciding_player(state)
        if player is None or player.is_human:
            break
        before = (state.turn_phase, state.current_player_index, len(state.log))
        state = execute_bot_step(state, BotPlayer(player.id, difficulty, rng))
        if (state.turn_phase, state.current_player_index, len(state.log)) == before:
            logger.warning(f"[run_bots_until_human] {player.name} made no progress in {state.turn_phase.kind}")
            break
    return state
