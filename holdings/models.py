"""
Holdings Game Models - Pydantic v2
Board, players, stock market and the turn state machine phases
"""

import time
import uuid
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Set, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)


# =============================================================================
# Enums
# =============================================================================

class HotelChain(str, Enum):
    SACKSON = "sackson"
    WORLDWIDE = "worldwide"
    FESTIVAL = "festival"
    IMPERIAL = "imperial"
    AMERICAN = "american"
    CONTINENTAL = "continental"
    TOWER = "tower"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def tier(self) -> int:
        """Price tier (1 = cheapest)"""
        return _CHAIN_TIERS[self]


_CHAIN_TIERS = {
    HotelChain.SACKSON: 1,
    HotelChain.WORLDWIDE: 1,
    HotelChain.FESTIVAL: 2,
    HotelChain.IMPERIAL: 2,
    HotelChain.AMERICAN: 2,
    HotelChain.CONTINENTAL: 3,
    HotelChain.TOWER: 3,
}


class GamePhase(str, Enum):
    SETUP = "SETUP"
    PLAYING = "PLAYING"
    GAME_OVER = "GAME_OVER"


class TurnPhaseKind(str, Enum):
    PLACE_TILE = "place_tile"
    FOUND_CHAIN = "found_chain"
    RESOLVE_MERGER = "resolve_merger"
    HANDLE_MERGER_STOCK = "handle_merger_stock"
    BUY_STOCKS = "buy_stocks"
    END_TURN = "end_turn"


class PlacementKind(str, Enum):
    INDEPENDENT = "independent"
    FOUNDS_CHAIN = "founds_chain"
    GROWS_CHAIN = "grows_chain"
    MERGER = "merger"
    ILLEGAL = "illegal"


# =============================================================================
# Config
# =============================================================================

class GameConfig(BaseModel):
    """Rule constants"""
    columns: int = 12
    rows: int = 9
    tiles_per_player: int = 6
    starting_money: int = 6000
    stocks_per_chain: int = 25
    max_stock_purchases_per_turn: int = 3
    safe_chain_size: int = 11
    end_game_chain_size: int = 41
    bonus_rounding_increment: int = 100
    min_players: int = 2
    max_players: int = 6

    @property
    def max_active_chains(self) -> int:
        return len(HotelChain)

    @property
    def total_tiles(self) -> int:
        return self.columns * self.rows

    def all_positions(self) -> List["Position"]:
        """Every board position, row by row"""
        return [
            Position(column=column, row=row)
            for row in range(self.rows)
            for column in range(1, self.columns + 1)
        ]

    def is_on_board(self, position: "Position") -> bool:
        return 1 <= position.column <= self.columns and 0 <= position.row < self.rows


# =============================================================================
# Board Models
# =============================================================================

class Position(BaseModel):
    """Board square: column is 1-based, row is 0-based (A, B, ...)"""
    model_config = ConfigDict(frozen=True)

    column: int
    row: int

    @property
    def row_letter(self) -> str:
        return chr(ord("A") + self.row)

    @property
    def display_name(self) -> str:
        return f"{self.column}{self.row_letter}"

    @property
    def distance_from_1a(self) -> int:
        return (self.column - 1) + self.row

    def neighbors(self) -> List["Position"]:
        """Orthogonal neighbors, unclipped (the board filters off-grid ones)"""
        return [
            Position(column=self.column - 1, row=self.row),
            Position(column=self.column + 1, row=self.row),
            Position(column=self.column, row=self.row - 1),
            Position(column=self.column, row=self.row + 1),
        ]

    def _sort_key(self):
        return (self.distance_from_1a, self.row, self.column)

    def __lt__(self, other: "Position") -> bool:
        return self._sort_key() < other._sort_key()


class Tile(BaseModel):
    """A tile in a hand or the bag, identified by the square it fills"""
    model_config = ConfigDict(frozen=True)

    position: Position

    @property
    def display_name(self) -> str:
        return self.position.display_name


class Board(BaseModel):
    """Placed tiles and chain membership"""
    columns: int = 12
    rows: int = 9
    placed_tiles: Set[Position] = Field(default_factory=set)
    chain_membership: Dict[Position, HotelChain] = Field(default_factory=dict)

    @field_serializer("placed_tiles")
    def _dump_placed(self, placed: Set[Position]):
        return [{"column": p.column, "row": p.row} for p in sorted(placed)]

    @field_serializer("chain_membership")
    def _dump_membership(self, membership: Dict[Position, HotelChain]):
        return [
            {"column": p.column, "row": p.row, "chain": chain.value}
            for p, chain in sorted(membership.items())
        ]

    @field_validator("chain_membership", mode="before")
    @classmethod
    def _load_membership(cls, value):
        if not isinstance(value, list):
            return value
        membership = {}
        for item in value:
            try:
                position = Position(column=item["column"], row=item["row"])
                membership[position] = HotelChain(item["chain"])
            except (KeyError, TypeError) as e:
                raise ValueError(f"malformed chain membership entry: {item!r}") from e
        return membership

    @model_validator(mode="after")
    def _check_membership(self) -> "Board":
        stray = set(self.chain_membership) - self.placed_tiles
        if stray:
            raise ValueError(f"chain membership on empty squares: {sorted(p.display_name for p in stray)}")
        off_board = [p for p in self.placed_tiles if not self.is_on_board(p)]
        if off_board:
            raise ValueError(f"tiles outside the board: {off_board}")
        return self

    # --- queries -------------------------------------------------------------

    def is_on_board(self, position: Position) -> bool:
        return 1 <= position.column <= self.columns and 0 <= position.row < self.rows

    def adjacent_positions(self, position: Position) -> List[Position]:
        return [p for p in position.neighbors() if self.is_on_board(p)]

    def has_tile(self, position: Position) -> bool:
        return position in self.placed_tiles

    def chain_at(self, position: Position) -> Optional[HotelChain]:
        return self.chain_membership.get(position)

    def chain_positions(self, chain: HotelChain) -> Set[Position]:
        return {p for p, c in self.chain_membership.items() if c == chain}

    def chain_size(self, chain: HotelChain) -> int:
        return sum(1 for c in self.chain_membership.values() if c == chain)

    def is_safe(self, chain: HotelChain, safe_size: int = 11) -> bool:
        return self.chain_size(chain) >= safe_size

    def active_chains(self) -> List[HotelChain]:
        """Chains with tiles on the board, in declaration order"""
        present = set(self.chain_membership.values())
        return [c for c in HotelChain if c in present]

    def independent_tiles(self) -> Set[Position]:
        """Placed tiles that belong to no chain"""
        return self.placed_tiles - set(self.chain_membership)

    def connected_positions(self, start: Position) -> Set[Position]:
        """Flood fill over orthogonally adjacent placed tiles"""
        if start not in self.placed_tiles:
            return set()

        visited: Set[Position] = set()
        stack = [start]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            for adjacent in self.adjacent_positions(current):
                if adjacent in self.placed_tiles and adjacent not in visited:
                    stack.append(adjacent)
        return visited

    # --- mutations -----------------------------------------------------------

    def place_tile(self, position: Position) -> None:
        self.placed_tiles.add(position)

    def assign_chain(self, chain: HotelChain, positions: Set[Position]) -> None:
        for position in positions:
            self.chain_membership[position] = chain

    def remove_chain(self, chain: HotelChain) -> None:
        """Clear membership; the tiles stay placed as independents"""
        self.chain_membership = {p: c for p, c in self.chain_membership.items() if c != chain}


# =============================================================================
# Player Models
# =============================================================================

class Player(BaseModel):
    """Per-player ledger"""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    is_human: bool = False
    money: int = 6000
    stocks: Dict[HotelChain, int] = Field(default_factory=dict)
    tiles: List[Tile] = Field(default_factory=list)

    def stock_count(self, chain: HotelChain) -> int:
        return self.stocks.get(chain, 0)

    def add_stock(self, chain: HotelChain, count: int = 1) -> None:
        self.stocks[chain] = self.stock_count(chain) + count

    def remove_stock(self, chain: HotelChain, count: int = 1) -> None:
        self.stocks[chain] = max(0, self.stock_count(chain) - count)

    def has_tile(self, tile: Tile) -> bool:
        return tile in self.tiles

    def remove_tile(self, tile: Tile) -> None:
        self.tiles = [t for t in self.tiles if t != tile]


# =============================================================================
# Turn Phases
# =============================================================================

class MergerContext(BaseModel):
    """Snapshot of a merger, taken before acquired chains leave the board"""
    model_config = ConfigDict(frozen=True)

    surviving_chain: HotelChain
    acquired_chains: List[HotelChain]
    acquired_chain_sizes: Dict[HotelChain, int]
    current_acquired_index: int = 0

    @property
    def current_acquired_chain(self) -> Optional[HotelChain]:
        if self.current_acquired_index < len(self.acquired_chains):
            return self.acquired_chains[self.current_acquired_index]
        return None

    @property
    def current_acquired_chain_size(self) -> int:
        chain = self.current_acquired_chain
        if chain is None:
            return 0
        return self.acquired_chain_sizes.get(chain, 0)

    def advanced(self) -> "MergerContext":
        return self.model_copy(update={"current_acquired_index": self.current_acquired_index + 1})


class MergerStockContext(BaseModel):
    """Holders of one acquired chain still owing a sell/trade/keep decision"""
    model_config = ConfigDict(frozen=True)

    acquired_chain: HotelChain
    surviving_chain: HotelChain
    chain_size: int
    current_player_index: int = 0
    player_order: List[int]
    merger_context: MergerContext

    @property
    def current_deciding_player_index(self) -> Optional[int]:
        if self.current_player_index < len(self.player_order):
            return self.player_order[self.current_player_index]
        return None

    def advanced(self) -> "MergerStockContext":
        return self.model_copy(update={"current_player_index": self.current_player_index + 1})


class PlaceTilePhase(BaseModel):
    kind: Literal["place_tile"] = "place_tile"


class FoundChainPhase(BaseModel):
    kind: Literal["found_chain"] = "found_chain"
    available_chains: List[HotelChain]


class ResolveMergerPhase(BaseModel):
    kind: Literal["resolve_merger"] = "resolve_merger"
    context: MergerContext


class HandleMergerStockPhase(BaseModel):
    kind: Literal["handle_merger_stock"] = "handle_merger_stock"
    context: MergerStockContext


class BuyStocksPhase(BaseModel):
    kind: Literal["buy_stocks"] = "buy_stocks"


class EndTurnPhase(BaseModel):
    kind: Literal["end_turn"] = "end_turn"


TurnPhase = Annotated[
    Union[
        PlaceTilePhase,
        FoundChainPhase,
        ResolveMergerPhase,
        HandleMergerStockPhase,
        BuyStocksPhase,
        EndTurnPhase,
    ],
    Field(discriminator="kind"),
]


# =============================================================================
# Actions & Results
# =============================================================================

class MergerStockDecision(BaseModel):
    """How a holder disposes of shares in an acquired chain"""
    sell: int = 0
    trade: int = 0  # must be even; 2 acquired shares -> 1 surviving share
    keep: int = 0


class TilePlacement(BaseModel):
    """Outcome of placing a tile, computed before it is placed"""
    kind: PlacementKind
    chain: Optional[HotelChain] = None
    surviving: Optional[HotelChain] = None
    acquired: List[HotelChain] = []
    reason: Optional[str] = None

    @classmethod
    def independent(cls) -> "TilePlacement":
        return cls(kind=PlacementKind.INDEPENDENT)

    @classmethod
    def founds_chain(cls) -> "TilePlacement":
        return cls(kind=PlacementKind.FOUNDS_CHAIN)

    @classmethod
    def grows_chain(cls, chain: HotelChain) -> "TilePlacement":
        return cls(kind=PlacementKind.GROWS_CHAIN, chain=chain)

    @classmethod
    def merger(cls, surviving: HotelChain, acquired: List[HotelChain]) -> "TilePlacement":
        return cls(kind=PlacementKind.MERGER, surviving=surviving, acquired=acquired)

    @classmethod
    def illegal(cls, reason: str) -> "TilePlacement":
        return cls(kind=PlacementKind.ILLEGAL, reason=reason)

    @property
    def is_illegal(self) -> bool:
        return self.kind == PlacementKind.ILLEGAL


# =============================================================================
# Game State
# =============================================================================

class LogEntry(BaseModel):
    """Game log line shown to players"""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = Field(default_factory=time.time)
    turn: int = 0
    message: str


class GameState(BaseModel):
    """Single unit of truth for one game"""
    config: GameConfig = Field(default_factory=GameConfig)
    board: Board
    players: List[Player]
    current_player_index: int = 0
    tile_bag: List[Tile] = []
    stock_market: Dict[HotelChain, int] = {}
    phase: GamePhase = GamePhase.PLAYING
    turn_phase: TurnPhase = Field(default_factory=PlaceTilePhase)
    log: List[LogEntry] = []
    turn_count: int = 0
    created_at: float = Field(default_factory=time.time)
    random_seed: Optional[int] = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "GameState":
        if not self.players:
            raise ValueError("game has no players")
        if not 0 <= self.current_player_index < len(self.players):
            raise ValueError(f"current player index {self.current_player_index} out of range")

        for player in self.players:
            if player.money < 0:
                raise ValueError(f"{player.name} has negative money")
            if any(count < 0 for count in player.stocks.values()):
                raise ValueError(f"{player.name} has a negative stock count")
            for tile in player.tiles:
                if self.board.has_tile(tile.position):
                    raise ValueError(f"{tile.display_name} is both in a hand and on the board")
                if not self.board.is_on_board(tile.position):
                    raise ValueError(f"{tile.display_name} is off the board")

        for chain in HotelChain:
            bank = self.stock_market.get(chain, 0)
            if bank < 0:
                raise ValueError(f"bank supply of {chain.value} is negative")
            held = sum(p.stock_count(chain) for p in self.players)
            if bank + held != self.config.stocks_per_chain:
                raise ValueError(f"{chain.value} stock not conserved: bank {bank} + held {held}")
        return self

    @property
    def current_player(self) -> Player:
        return self.players[self.current_player_index]

    def add_log(self, message: str) -> None:
        self.log.append(LogEntry(turn=self.turn_count, message=message))


# =============================================================================
# Helper Functions
# =============================================================================

def create_tile_bag(config: GameConfig) -> List[Tile]:
    """One tile per board square, unshuffled"""
    return [Tile(position=p) for p in config.all_positions()]


def create_players(player_count: int, human_index: int, starting_money: int) -> List[Player]:
    players = []
    for i in range(player_count):
        is_human = i == human_index
        name = "You" if is_human else f"Computer {i}"
        players.append(Player(name=name, is_human=is_human, money=starting_money))
    return players
