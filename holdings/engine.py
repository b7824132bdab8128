"""
Holdings Game Engine - Pure Functions
Turn state machine: tile placement, chain founding, mergers, stock trading, end of game
"""

import logging
import random
from typing import Dict, List, Optional, Union

from holdings import pricing
from holdings.models import (
    Board, BuyStocksPhase, EndTurnPhase, FoundChainPhase, GameConfig,
    GamePhase, GameState, HandleMergerStockPhase, HotelChain, MergerContext,
    MergerStockContext, MergerStockDecision, PlaceTilePhase, PlacementKind,
    Player, ResolveMergerPhase, Tile, TilePlacement, TurnPhaseKind,
    create_players, create_tile_bag
)

logger = logging.getLogger(__name__)


# =============================================================================
# Initialization
# =============================================================================

def init_game(
    player_count: int,
    human_index: int = 0,
    config: Optional[GameConfig] = None,
    seed: Optional[int] = None,
) -> GameState:
    """New game: shuffle the bag and deal every player a hand"""
    config = config or GameConfig()
    if not config.min_players <= player_count <= config.max_players:
        raise ValueError(
            f"player_count must be between {config.min_players} and {config.max_players}, got {player_count}"
        )
    if config.tiles_per_player * player_count > config.total_tiles:
        raise ValueError("board too small to deal every player a hand")

    rng = random.Random(seed)
    tiles = create_tile_bag(config)
    rng.shuffle(tiles)

    players = create_players(player_count, human_index, config.starting_money)
    for i, player in enumerate(players):
        start = i * config.tiles_per_player
        player.tiles = tiles[start:start + config.tiles_per_player]

    state = GameState(
        config=config,
        board=Board(columns=config.columns, rows=config.rows),
        players=players,
        current_player_index=0,
        tile_bag=tiles[player_count * config.tiles_per_player:],
        stock_market={chain: config.stocks_per_chain for chain in HotelChain},
        phase=GamePhase.PLAYING,
        turn_phase=PlaceTilePhase(),
        random_seed=seed,
    )
    logger.info(f"[init_game] {player_count} players, human seat {human_index}, seed {seed}")
    return state


def restore_game(source: Union[GameState, dict, str, bytes]) -> GameState:
    """Rebuild a game from a state, a dict or JSON; raises pydantic.ValidationError if corrupt"""
    if isinstance(source, GameState):
        return GameState.model_validate(source.model_dump())
    if isinstance(source, (str, bytes)):
        return GameState.model_validate_json(source)
    return GameState.model_validate(source)


# =============================================================================
# Queries
# =============================================================================

def is_playing(state: GameState) -> bool:
    return state.phase == GamePhase.PLAYING


def in_turn_phase(state: GameState, kind: TurnPhaseKind) -> bool:
    return is_playing(state) and state.turn_phase.kind == kind


def is_safe(state: GameState, chain: HotelChain) -> bool:
    return state.board.is_safe(chain, state.config.safe_chain_size)


def stock_price(state: GameState, chain: HotelChain) -> int:
    """Price at the chain's live size"""
    return pricing.stock_price(chain, state.board.chain_size(chain))


def available_stock(state: GameState, chain: HotelChain) -> int:
    return state.stock_market.get(chain, 0)


def can_buy_stock(state: GameState, chain: HotelChain) -> bool:
    if chain not in state.board.active_chains():
        return False
    if available_stock(state, chain) <= 0:
        return False
    return state.current_player.money >= stock_price(state, chain)


def analyze_tile_placement(state: GameState, tile: Tile) -> TilePlacement:
    """Classify what placing this tile would do, without placing it"""
    board = state.board
    position = tile.position
    adjacent = [p for p in board.adjacent_positions(position) if board.has_tile(p)]

    if not adjacent:
        return TilePlacement.independent()

    adjacent_chains = []
    for p in adjacent:
        chain = board.chain_at(p)
        if chain is not None and chain not in adjacent_chains:
            adjacent_chains.append(chain)

    safe_chains = [c for c in adjacent_chains if is_safe(state, c)]
    if len(safe_chains) >= 2:
        return TilePlacement.illegal("Cannot merge two safe hotel chains")

    if not adjacent_chains:
        if len(board.active_chains()) >= state.config.max_active_chains:
            return TilePlacement.illegal("All hotel chains are already active")
        return TilePlacement.founds_chain()

    if len(adjacent_chains) == 1:
        return TilePlacement.grows_chain(adjacent_chains[0])

    # Largest survives; equal sizes fall back to declaration order
    order = list(HotelChain)
    by_size = sorted(adjacent_chains, key=lambda c: (-board.chain_size(c), order.index(c)))
    surviving = by_size[0]
    acquired = [c for c in by_size[1:] if not is_safe(state, c)]
    return TilePlacement.merger(surviving, acquired)


def can_play_tile(state: GameState, tile: Tile) -> bool:
    if not in_turn_phase(state, TurnPhaseKind.PLACE_TILE):
        return False
    if not state.current_player.has_tile(tile):
        return False
    return not analyze_tile_placement(state, tile).is_illegal


def playable_tiles(state: GameState) -> List[Tile]:
    """Tiles in the current player's hand that may be placed now"""
    return [t for t in state.current_player.tiles if can_play_tile(state, t)]


def current_deciding_player(state: GameState) -> Optional[Player]:
    """Whoever the engine is waiting on: merger holder or current player"""
    if not is_playing(state):
        return None
    if state.turn_phase.kind == TurnPhaseKind.HANDLE_MERGER_STOCK:
        index = state.turn_phase.context.current_deciding_player_index
        return state.players[index] if index is not None else None
    return state.current_player


def can_declare_game_over(state: GameState) -> bool:
    if not is_playing(state):
        return False
    chains = state.board.active_chains()
    if not chains:
        return False
    if all(is_safe(state, c) for c in chains):
        return True
    return any(state.board.chain_size(c) >= state.config.end_game_chain_size for c in chains)


# =============================================================================
# Tile Placement
# =============================================================================

def play_tile(state: GameState, tile: Tile) -> GameState:
    """Place a tile from the current player's hand"""
    if not can_play_tile(state, tile):
        logger.debug(f"[play_tile] Rejected {tile.display_name}")
        return state

    position = tile.position
    result = analyze_tile_placement(state, tile)
    player = state.current_player

    state.board.place_tile(position)
    player.remove_tile(tile)
    state.add_log(f"{player.name} placed tile {tile.display_name}")
    logger.debug(f"[play_tile] {player.name} -> {tile.display_name}: {result.kind.value}")

    if result.kind == PlacementKind.INDEPENDENT:
        state.turn_phase = BuyStocksPhase()

    elif result.kind == PlacementKind.FOUNDS_CHAIN:
        active = state.board.active_chains()
        available = [c for c in HotelChain if c not in active]
        state.turn_phase = FoundChainPhase(available_chains=available)

    elif result.kind == PlacementKind.GROWS_CHAIN:
        chain = result.chain
        state.board.assign_chain(chain, state.board.connected_positions(position))
        state.add_log(f"{chain.display_name} grew to {state.board.chain_size(chain)} tiles")
        state.turn_phase = BuyStocksPhase()

    elif result.kind == PlacementKind.MERGER:
        start_merger(state, result.surviving, result.acquired, position)

    return state


def skip_tile_placement(state: GameState) -> GameState:
    """Pass the placement step when no tile in hand can be placed"""
    if not in_turn_phase(state, TurnPhaseKind.PLACE_TILE):
        return state
    if playable_tiles(state):
        return state
    state.add_log(f"{state.current_player.name} has no playable tile")
    state.turn_phase = BuyStocksPhase()
    return state


def found_chain(state: GameState, chain: HotelChain) -> GameState:
    """Name the chain created by the tile just placed"""
    if not in_turn_phase(state, TurnPhaseKind.FOUND_CHAIN):
        return state
    if chain not in state.turn_phase.available_chains:
        return state

    board = state.board
    independent = board.independent_tiles()
    for position in sorted(independent):
        connected = board.connected_positions(position)
        if len(connected) >= 2 and connected <= independent:
            board.assign_chain(chain, connected)
            break

    player = state.current_player
    if available_stock(state, chain) > 0:
        player.add_stock(chain)
        state.stock_market[chain] -= 1
        state.add_log(f"{player.name} founded {chain.display_name} and received 1 free stock")
    else:
        price = stock_price(state, chain)
        player.money += price
        state.add_log(f"{player.name} founded {chain.display_name} and received ${price} (no stock available)")

    state.turn_phase = BuyStocksPhase()
    return state


# =============================================================================
# Mergers
# =============================================================================

def start_merger(state: GameState, surviving: HotelChain, acquired: List[HotelChain], trigger) -> None:
    """Snapshot acquired sizes, absorb them into the survivor, then resolve chain by chain"""
    names = ", ".join(c.display_name for c in acquired)
    state.add_log(f"Merger! {surviving.display_name} acquires {names}")

    # Sizes must be captured before the board forgets them
    sizes = {chain: state.board.chain_size(chain) for chain in acquired}
    order = list(HotelChain)
    sorted_acquired = sorted(acquired, key=lambda c: (-sizes[c], order.index(c)))

    state.board.assign_chain(surviving, state.board.connected_positions(trigger))
    for chain in acquired:
        state.board.remove_chain(chain)

    context = MergerContext(
        surviving_chain=surviving,
        acquired_chains=sorted_acquired,
        acquired_chain_sizes=sizes,
        current_acquired_index=0,
    )
    state.turn_phase = ResolveMergerPhase(context=context)
    process_next_merger_chain(state)


def process_next_merger_chain(state: GameState) -> None:
    """Pay bonuses for the current acquired chain and queue its holders"""
    while True:
        if state.turn_phase.kind != TurnPhaseKind.RESOLVE_MERGER:
            return
        context = state.turn_phase.context
        acquired = context.current_acquired_chain
        if acquired is None:
            state.turn_phase = BuyStocksPhase()
            return

        size = context.current_acquired_chain_size
        pay_merger_bonuses(state, acquired, size)

        count = len(state.players)
        order = []
        for offset in range(count):
            index = (state.current_player_index + offset) % count
            if state.players[index].stock_count(acquired) > 0:
                order.append(index)

        if order:
            state.turn_phase = HandleMergerStockPhase(
                context=MergerStockContext(
                    acquired_chain=acquired,
                    surviving_chain=context.surviving_chain,
                    chain_size=size,
                    current_player_index=0,
                    player_order=order,
                    merger_context=context,
                )
            )
            return

        # Nobody holds this chain: move straight on
        state.turn_phase = ResolveMergerPhase(context=context.advanced())


def pay_merger_bonuses(state: GameState, chain: HotelChain, size: int) -> Dict[int, int]:
    """Majority/minority bonuses at the given size; returns player index -> amount paid"""
    holders = [
        (index, player.stock_count(chain))
        for index, player in enumerate(state.players)
        if player.stock_count(chain) > 0
    ]
    holders.sort(key=lambda h: h[1], reverse=True)
    paid: Dict[int, int] = {}
    if not holders:
        return paid

    increment = state.config.bonus_rounding_increment
    majority = pricing.majority_bonus(chain, size)
    minority = pricing.minority_bonus(chain, size)

    top_count = holders[0][1]
    top_holders = [h for h in holders if h[1] == top_count]

    if len(top_holders) > 1:
        split = pricing.round_down((majority + minority) // len(top_holders), increment)
        for index, _ in top_holders:
            state.players[index].money += split
            paid[index] = split
            state.add_log(f"{state.players[index].name} receives ${split} (tied majority bonus)")
        return paid

    index = holders[0][0]
    state.players[index].money += majority
    paid[index] = majority
    state.add_log(f"{state.players[index].name} receives ${majority} (majority bonus)")

    remaining = holders[1:]
    if remaining:
        second_count = remaining[0][1]
        second_holders = [h for h in remaining if h[1] == second_count]
        split = pricing.round_down(minority // len(second_holders), increment)
        for index, _ in second_holders:
            state.players[index].money += split
            paid[index] = split
            state.add_log(f"{state.players[index].name} receives ${split} (minority bonus)")
    return paid


def is_valid_merger_decision(decision: MergerStockDecision, held: int) -> bool:
    if min(decision.sell, decision.trade, decision.keep) < 0:
        return False
    if decision.sell + decision.trade + decision.keep != held:
        return False
    return decision.trade % 2 == 0


def trade_shortfall(state: GameState, decision: MergerStockDecision) -> int:
    """Surviving shares a trade asks for that the bank cannot supply"""
    if state.turn_phase.kind != TurnPhaseKind.HANDLE_MERGER_STOCK:
        return 0
    surviving = state.turn_phase.context.surviving_chain
    return max(0, decision.trade // 2 - available_stock(state, surviving))


def handle_merger_stock_decision(state: GameState, decision: MergerStockDecision) -> GameState:
    """Apply the deciding holder's sell/trade/keep split"""
    if not in_turn_phase(state, TurnPhaseKind.HANDLE_MERGER_STOCK):
        return state
    context = state.turn_phase.context
    player_index = context.current_deciding_player_index
    if player_index is None:
        return state

    chain = context.acquired_chain
    surviving = context.surviving_chain
    player = state.players[player_index]
    if not is_valid_merger_decision(decision, player.stock_count(chain)):
        logger.debug(f"[handle_merger_stock_decision] Rejected {decision} for {player.name}")
        return state

    if decision.sell > 0:
        total = pricing.stock_price(chain, context.chain_size) * decision.sell
        player.money += total
        player.remove_stock(chain, decision.sell)
        state.stock_market[chain] = available_stock(state, chain) + decision.sell
        state.add_log(f"{player.name} sold {decision.sell} {chain.display_name} stock for ${total}")

    if decision.trade > 0:
        received = min(decision.trade // 2, available_stock(state, surviving))
        player.remove_stock(chain, decision.trade)
        state.stock_market[chain] = available_stock(state, chain) + decision.trade
        player.add_stock(surviving, received)
        state.stock_market[surviving] = available_stock(state, surviving) - received
        state.add_log(
            f"{player.name} traded {decision.trade} {chain.display_name} for {received} {surviving.display_name}"
        )

    if decision.keep > 0:
        state.add_log(f"{player.name} kept {decision.keep} {chain.display_name} stock")

    context = context.advanced()
    if context.current_deciding_player_index is None:
        state.turn_phase = ResolveMergerPhase(context=context.merger_context.advanced())
        process_next_merger_chain(state)
    else:
        state.turn_phase = HandleMergerStockPhase(context=context)
    return state


# =============================================================================
# Stock Purchase
# =============================================================================

def buy_stocks(state: GameState, purchases: Dict[HotelChain, int]) -> GameState:
    """Buy up to the per-turn cap at live prices"""
    if not in_turn_phase(state, TurnPhaseKind.BUY_STOCKS):
        return state
    if any(count < 0 for count in purchases.values()):
        return state
    if sum(purchases.values()) > state.config.max_stock_purchases_per_turn:
        return state

    active = state.board.active_chains()
    total_cost = 0
    for chain, count in purchases.items():
        if count == 0:
            continue
        if chain not in active or available_stock(state, chain) < count:
            return state
        total_cost += stock_price(state, chain) * count

    player = state.current_player
    if player.money < total_cost:
        return state

    for chain, count in purchases.items():
        if count == 0:
            continue
        cost = stock_price(state, chain) * count
        player.money -= cost
        player.add_stock(chain, count)
        state.stock_market[chain] -= count
        state.add_log(f"{player.name} bought {count} {chain.display_name} stock for ${cost}")

    state.turn_phase = EndTurnPhase()
    return state


def skip_buying_stocks(state: GameState) -> GameState:
    if in_turn_phase(state, TurnPhaseKind.BUY_STOCKS):
        state.turn_phase = EndTurnPhase()
    return state


# =============================================================================
# Turn Flow
# =============================================================================

def draw_tile(state: GameState, player: Player) -> Optional[Tile]:
    if not state.tile_bag:
        return None
    tile = state.tile_bag.pop(0)
    player.tiles.append(tile)
    return tile


def replace_unplayable_tiles(state: GameState) -> int:
    """Discard hand tiles that can never be placed, drawing replacements"""
    player = state.current_player
    dead = [t for t in player.tiles if analyze_tile_placement(state, t).is_illegal]
    for tile in dead:
        player.remove_tile(tile)
        draw_tile(state, player)
    if dead:
        state.add_log(f"{player.name} exchanged {len(dead)} unplayable tile(s)")
    return len(dead)


def advance_turn(state: GameState) -> None:
    state.current_player_index = (state.current_player_index + 1) % len(state.players)
    state.turn_count += 1
    state.turn_phase = PlaceTilePhase()


def end_turn(state: GameState) -> GameState:
    """Draw, swap dead tiles, then pass to the next player"""
    if not in_turn_phase(state, TurnPhaseKind.END_TURN):
        return state

    player = state.current_player
    draw_tile(state, player)
    replace_unplayable_tiles(state)

    if can_declare_game_over(state) and not player.is_human:
        return declare_game_over(state)

    advance_turn(state)
    return state


# =============================================================================
# Game Over
# =============================================================================

def declare_game_over(state: GameState) -> GameState:
    """Final bonuses, sell every share, rank by money"""
    if not can_declare_game_over(state):
        return state

    state.add_log(f"Game Over declared by {state.current_player.name}")
    active = state.board.active_chains()

    for chain in active:
        pay_merger_bonuses(state, chain, state.board.chain_size(chain))

    for chain in active:
        price = stock_price(state, chain)
        for player in state.players:
            count = player.stock_count(chain)
            if count > 0:
                total = price * count
                player.money += total
                player.stocks[chain] = 0
                state.stock_market[chain] = available_stock(state, chain) + count
                state.add_log(f"{player.name} sold {count} {chain.display_name} for ${total}")

    state.phase = GamePhase.GAME_OVER
    state.add_log("Final standings:")
    for rank, player in enumerate(final_standings(state), start=1):
        state.add_log(f"{rank}. {player.name}: ${player.money}")
    logger.info(f"[declare_game_over] Winner: {final_standings(state)[0].name}")
    return state


def final_standings(state: GameState) -> List[Player]:
    return sorted(state.players, key=lambda p: p.money, reverse=True)


# =============================================================================
# Utility
# =============================================================================

def get_game_summary(state: GameState) -> dict:
    """Compact view of the game for callers"""
    board = state.board
    return {
        "phase": state.phase.value,
        "turn_phase": state.turn_phase.kind,
        "turn": state.turn_count,
        "current_player": state.current_player.name,
        "tiles_in_bag": len(state.tile_bag),
        "chains": {
            chain.value: {
                "size": board.chain_size(chain),
                "price": stock_price(state, chain),
                "safe": is_safe(state, chain),
                "available": available_stock(state, chain),
            }
            for chain in board.active_chains()
        },
        "players": [
            {
                "name": p.name,
                "is_human": p.is_human,
                "money": p.money,
                "stocks": {c.value: n for c, n in p.stocks.items() if n > 0},
                "tiles": len(p.tiles),
            }
            for p in state.players
        ],
    }
