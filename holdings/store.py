import os
import time
import uuid
import logging
from typing import Dict, Optional, Union

from pydantic import BaseModel, Field, ValidationError
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError

from holdings.models import GamePhase, GameState

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL")
SAVE_TTL_SECONDS = int(os.getenv("SAVE_TTL_SECONDS", "0")) or None


class CorruptSaveError(ValueError):
    """Saved game could not be decoded into a valid state"""


def encode_game(state: GameState) -> str:
    return state.model_dump_json()


def decode_game(data: Union[str, bytes]) -> GameState:
    try:
        return GameState.model_validate_json(data)
    except (ValidationError, ValueError) as e:
        raise CorruptSaveError(str(e)) from e


class SavedGame(BaseModel):
    """Stored game plus the fields a resume menu shows"""
    game_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
    player_count: int
    turn_number: int
    human_money: int
    state: str

    @classmethod
    def from_state(cls, state: GameState, game_id: Optional[str] = None) -> "SavedGame":
        saved = cls(
            player_count=len(state.players),
            turn_number=state.turn_count,
            human_money=_human_money(state),
            state=encode_game(state),
        )
        if game_id:
            saved.game_id = game_id
        return saved

    def update(self, state: GameState) -> None:
        self.state = encode_game(state)
        self.updated_at = time.time()
        self.turn_number = state.turn_count
        self.human_money = _human_money(state)

    def load_state(self) -> GameState:
        return decode_game(self.state)


def _human_money(state: GameState) -> int:
    human = next((p for p in state.players if p.is_human), None)
    return human.money if human else 0


class InMemoryStore:
    """In-memory fallback for local development without Redis"""
    def __init__(self):
        self.store: Dict[str, str] = {}
        logger.info("Using in-memory store (Redis not available)")

    async def get(self, key: str) -> Optional[str]:
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None):
        self.store[key] = value

    async def delete(self, key: str):
        self.store.pop(key, None)

    async def close(self):
        pass


class GameStore:
    def __init__(self, redis_url: Optional[str] = REDIS_URL, ttl: Optional[int] = SAVE_TTL_SECONDS):
        self.ttl = ttl
        # Use Redis when configured, otherwise keep saves in memory
        if redis_url:
            try:
                self.redis = Redis.from_url(redis_url, decode_responses=True)
                logger.info(f"Connected to Redis at {redis_url}")
            except ValueError as e:
                logger.warning(f"Failed to connect to Redis: {e}. Using in-memory store.")
                self.redis = InMemoryStore()
        else:
            logger.info("REDIS_URL not set. Using in-memory store for local development.")
            self.redis = InMemoryStore()

    @staticmethod
    def _key(game_id: str) -> str:
        return f"game:{game_id}"

    async def save_game(self, saved: SavedGame, state: Optional[GameState] = None) -> bool:
        """Persist a save; a finished game is deleted instead"""
        if state is not None:
            if state.phase == GamePhase.GAME_OVER:
                await self.delete_game(saved.game_id)
                return False
            saved.update(state)
        try:
            await self.redis.set(self._key(saved.game_id), saved.model_dump_json(), ex=self.ttl)
            return True
        except RedisConnectionError as e:
            logger.error(f"Redis save error: {e}")
            return False

    async def load_saved_game(self, game_id: str) -> Optional[SavedGame]:
        try:
            data = await self.redis.get(self._key(game_id))
        except RedisConnectionError as e:
            logger.error(f"Redis connection error: {e}")
            return None
        if not data:
            return None
        try:
            return SavedGame.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable save {game_id}: {e}")
            await self.delete_game(game_id)
            return None

    async def load_game(self, game_id: str) -> Optional[GameState]:
        """State of a saved game, or None when there is no usable save"""
        saved = await self.load_saved_game(game_id)
        if saved is None:
            return None
        try:
            return saved.load_state()
        except CorruptSaveError as e:
            logger.warning(f"Discarding corrupt save {game_id}: {e}")
            await self.delete_game(game_id)
            return None

    async def delete_game(self, game_id: str):
        try:
            await self.redis.delete(self._key(game_id))
        except RedisConnectionError as e:
            logger.error(f"Redis delete error: {e}")

    async def close(self):
        """Cleanup resources"""
        try:
            await self.redis.close()
        except RedisConnectionError as e:
            logger.error(f"Error closing Redis: {e}")
