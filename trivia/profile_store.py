"""
Player profiles, high scores, leaderboard and achievements on top of a
simple key-value store.
"""
import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .models import ACHIEVEMENTS, Achievement, LeaderboardEntry, QuizResult, UserProfile

PROFILE_KEY_PREFIX = "profile:"
PROFILE_INDEX_KEY = "profile_ids"


class KeyValueStore:
    """
    JSON-file-backed key-value store. Every ``set`` rewrites the file; the
    last write for a key wins. With no path the store lives in memory only.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self.logger = logging.getLogger(__name__)
        self._data: Dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to load data file {self.path}, starting empty: {e}")
            return
        if isinstance(data, dict):
            self._data = data
        else:
            self.logger.error(f"Data file {self.path} does not hold a JSON object, starting empty")

    def _flush(self, data: Dict[str, Any]) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.path)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        # Memory only changes once the file write succeeded
        updated = dict(self._data)
        updated[key] = value
        self._flush(updated)
        self._data = updated

    def remove(self, key: str) -> None:
        if key in self._data:
            updated = {k: v for k, v in self._data.items() if k != key}
            self._flush(updated)
            self._data = updated

    def keys(self) -> List[str]:
        return list(self._data.keys())


@dataclass(frozen=True)
class ProfileUpdate:
    """What changed on a profile after a finished quiz."""
    new_high_score: bool
    highest_score: int
    unlocked: Tuple[Achievement, ...] = ()


class ProfileManager:
    """Keeps player profiles, the leaderboard and achievement progress."""

    def __init__(self, store: KeyValueStore, achievements: Optional[List[Achievement]] = None):
        self.store = store
        self.achievements = list(achievements if achievements is not None else ACHIEVEMENTS)
        self.logger = logging.getLogger(__name__)

    def _key(self, user_id: str) -> str:
        return f"{PROFILE_KEY_PREFIX}{user_id}"

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        data = self.store.get(self._key(str(user_id)))
        if data is None:
            return None
        progress = dict(data.get('achievement_progress') or {})
        profile = UserProfile(**{**data, 'achievement_progress': progress})
        # Ensure all achievements are in the progress map
        for achievement in self.achievements:
            profile.achievement_progress.setdefault(achievement.id, 0)
        return profile

    def _save(self, profile: UserProfile) -> None:
        self.store.set(self._key(profile.user_id), asdict(profile))
        ids = self.store.get(PROFILE_INDEX_KEY, [])
        if profile.user_id not in ids:
            self.store.set(PROFILE_INDEX_KEY, ids + [profile.user_id])

    def get_or_create_profile(self, user_id: str, name: str) -> UserProfile:
        profile = self.get_profile(user_id)
        if profile is None:
            profile = UserProfile(user_id=str(user_id), name=name)
            self._save(profile)
            self.logger.info(f"Created profile for {name} ({user_id})")
        return profile

    def login(self, user_id: str, name: str, is_teacher: bool = False) -> UserProfile:
        """Create or refresh a profile under a display name."""
        name = (name or "").strip()
        if not name:
            raise ValueError("Name cannot be empty")
        profile = self.get_or_create_profile(str(user_id), name)
        profile.name = name
        profile.is_teacher = is_teacher
        self._save(profile)
        self.logger.info(f"User {user_id} logged in as {name}")
        return profile

    def logout(self, user_id: str) -> bool:
        """Remove a profile and its leaderboard entry."""
        user_id = str(user_id)
        if self.store.get(self._key(user_id)) is None:
            return False
        self.store.remove(self._key(user_id))
        ids = [i for i in self.store.get(PROFILE_INDEX_KEY, []) if i != user_id]
        self.store.set(PROFILE_INDEX_KEY, ids)
        self.logger.info(f"User {user_id} logged out")
        return True

    def update_user_name(self, user_id: str, new_name: str) -> UserProfile:
        profile = self.get_profile(user_id)
        if profile is None:
            raise KeyError(f"No profile for user {user_id}")
        new_name = (new_name or "").strip()
        if not new_name:
            raise ValueError("Name cannot be empty")
        profile.name = new_name
        self._save(profile)
        return profile

    def record_result(self, user_id: str, name: str, result: QuizResult) -> ProfileUpdate:
        """
        Store a finished quiz against a profile.

        Updates the last score, the high score (only a strictly greater
        score counts as new), the completed-quiz counter and achievements.
        """
        profile = self.get_or_create_profile(str(user_id), name)

        new_high_score = result.score > profile.highest_score
        profile.last_score = result.score
        if new_high_score:
            profile.highest_score = result.score
        profile.quizzes_completed += 1

        unlocked = [self._add_progress(profile, "quiz_whiz", 1)]
        if result.is_perfect:
            unlocked.append(self._add_progress(profile, "perfectionist", 1))

        self._save(profile)
        unlocked_achievements = tuple(a for a in unlocked if a is not None)
        self.logger.info(
            f"Recorded score {result.score}/{result.total_questions} for {profile.name}"
            + (" (new high score)" if new_high_score else "")
        )
        return ProfileUpdate(
            new_high_score=new_high_score,
            highest_score=profile.highest_score,
            unlocked=unlocked_achievements,
        )

    def _add_progress(self, profile: UserProfile, achievement_id: str, value: int) -> Optional[Achievement]:
        """Add progress capped at the target; return the achievement if it just unlocked."""
        achievement = next((a for a in self.achievements if a.id == achievement_id), None)
        if achievement is None:
            return None
        current = profile.achievement_progress.get(achievement_id, 0)
        updated = min(current + value, achievement.target_value)
        profile.achievement_progress[achievement_id] = updated
        if current < achievement.target_value <= updated:
            return achievement
        return None

    def get_achievements(self, user_id: str) -> List[Dict[str, Any]]:
        """Achievement progress rows for a player."""
        profile = self.get_profile(user_id)
        progress = profile.achievement_progress if profile else {}
        return [
            {
                'achievement': achievement,
                'progress': progress.get(achievement.id, 0),
                'unlocked': progress.get(achievement.id, 0) >= achievement.target_value,
            }
            for achievement in self.achievements
        ]

    def get_leaderboard(self, limit: int = 10) -> List[LeaderboardEntry]:
        """Players sorted by high score, best first."""
        entries = []
        for user_id in self.store.get(PROFILE_INDEX_KEY, []):
            profile = self.get_profile(user_id)
            if profile is not None:
                entries.append(LeaderboardEntry(user_id=profile.user_id, name=profile.name,
                                                score=profile.highest_score))
        entries.sort(key=lambda e: e.score, reverse=True)
        return entries[:limit]
