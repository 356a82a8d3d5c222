# dice_duel/game_core/models.py

from dataclasses import dataclass, field, asdict
from typing import Dict, Tuple, Any, Mapping, Optional

from . import constants as c


@dataclass(frozen=True)
class GameRules:
    """Rule constants for one match. Built from the app config."""
    round_seconds: int = c.ROUND_SECONDS
    max_rounds: int = c.MAX_ROUNDS
    starting_score: int = c.STARTING_SCORE
    streak_bonus: int = c.STREAK_BONUS
    rush_multiplier: int = c.RUSH_MULTIPLIER
    results_display_sec: int = c.RESULTS_DISPLAY_SEC
    dice_faces: Tuple[int, ...] = c.DICE_FACES
    end_on_bust: bool = c.END_ON_BUST

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'GameRules':
        defaults = cls()
        return cls(
            round_seconds=int(config.get('ROUND_SECONDS', defaults.round_seconds)),
            max_rounds=int(config.get('MAX_ROUNDS', defaults.max_rounds)),
            starting_score=int(config.get('STARTING_SCORE', defaults.starting_score)),
            streak_bonus=int(config.get('STREAK_BONUS', defaults.streak_bonus)),
            rush_multiplier=int(config.get('RUSH_MULTIPLIER', defaults.rush_multiplier)),
            results_display_sec=int(config.get('RESULTS_DISPLAY_SEC', defaults.results_display_sec)),
            dice_faces=tuple(config.get('DICE_FACES', defaults.dice_faces)),
            end_on_bust=bool(config.get('END_ON_BUST', defaults.end_on_bust)),
        )


@dataclass(frozen=True)
class Bet:
    player_id: str
    round_number: int
    amount: int
    prediction: str
    locked_at: float
    forced: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Bet':
        return cls(
            player_id=data['player_id'],
            round_number=int(data['round_number']),
            amount=int(data['amount']),
            prediction=data['prediction'],
            locked_at=float(data['locked_at']),
            forced=bool(data.get('forced', False)),
        )


@dataclass
class PlayerStanding:
    player_id: str
    score: int
    win_streak: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PlayerResult:
    player_id: str
    result: str
    points_change: int
    bonuses: Tuple[str, ...]
    bet: Bet

    def to_dict(self) -> Dict[str, Any]:
        return {
            'player_id': self.player_id,
            'result': self.result,
            'points_change': self.points_change,
            'bonuses': list(self.bonuses),
            'bet': self.bet.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'PlayerResult':
        return cls(
            player_id=data['player_id'],
            result=data['result'],
            points_change=int(data['points_change']),
            bonuses=tuple(data.get('bonuses', ())),
            bet=Bet.from_dict(data['bet']),
        )


@dataclass(frozen=True)
class RoundResult:
    round_number: int
    baseline: int
    dice: int
    is_rush_round: bool
    player_results: Dict[str, PlayerResult] = field(default_factory=dict)

    def for_player(self, player_id: str) -> Optional[PlayerResult]:
        return self.player_results.get(player_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'round_number': self.round_number,
            'baseline': self.baseline,
            'dice': self.dice,
            'is_rush_round': self.is_rush_round,
            'player_results': {pid: r.to_dict() for pid, r in self.player_results.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'RoundResult':
        return cls(
            round_number=int(data['round_number']),
            baseline=int(data['baseline']),
            dice=int(data['dice']),
            is_rush_round=bool(data['is_rush_round']),
            player_results={
                pid: PlayerResult.from_dict(r) for pid, r in data.get('player_results', {}).items()
            },
        )
