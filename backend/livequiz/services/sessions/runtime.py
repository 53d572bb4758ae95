from dataclasses import dataclass
from typing import Any, Callable, Dict

from .broadcast import Broadcaster
from .persistence import SessionMirror
from .registry import SessionRegistry
from .state import SessionSettings


@dataclass(frozen=True)
class LiveSettings:
    default_time_per_question_sec: int = 30
    default_base_points: int = 100
    default_max_speed_bonus: int = 50
    skew_tolerance_ms: int = 1000
    host_grace_period_sec: float = 120
    results_display_sec: float = 5
    completed_retention_sec: float = 300
    interrupted_retention_sec: float = 60
    leaderboard_size: int = 10
    state_leaderboard_size: int = 50
    final_leaderboard_size: int = 100

    @classmethod
    def from_config(cls, config) -> 'LiveSettings':
        return cls(
            default_time_per_question_sec=int(config.get('DEFAULT_TIME_PER_QUESTION_SEC', 30)),
            default_base_points=int(config.get('DEFAULT_BASE_POINTS', 100)),
            default_max_speed_bonus=int(config.get('DEFAULT_MAX_SPEED_BONUS', 50)),
            skew_tolerance_ms=int(config.get('ANSWER_SKEW_TOLERANCE_MS', 1000)),
            host_grace_period_sec=float(config.get('HOST_GRACE_PERIOD_SEC', 120)),
            results_display_sec=float(config.get('RESULTS_DISPLAY_SEC', 5)),
            completed_retention_sec=float(config.get('COMPLETED_RETENTION_SEC', 300)),
            interrupted_retention_sec=float(config.get('INTERRUPTED_RETENTION_SEC', 60)),
            leaderboard_size=int(config.get('LEADERBOARD_SIZE', 10)),
        )

    def session_settings(self, quiz_settings: Dict[str, Any]) -> SessionSettings:
        """Per-quiz live settings layered over the configured defaults."""
        s = quiz_settings or {}
        return SessionSettings(
            time_per_question_sec=int(s.get('timePerQuestion') or self.default_time_per_question_sec),
            base_points=int(s.get('basePointsPerQuestion') or self.default_base_points),
            max_speed_bonus=int(s.get('speedBonusMax', self.default_max_speed_bonus)),
            allow_late_join=bool(s.get('allowLateJoin', False)),
            show_leaderboard_after_each=bool(s.get('showLeaderboardAfterEach', True)),
        )


@dataclass
class Runtime:
    """Collaborators shared by the session components."""
    registry: SessionRegistry
    broadcaster: Broadcaster
    mirror: SessionMirror
    scheduler: Any
    clock: Callable[[], float]
    settings: LiveSettings
    logger: Any
