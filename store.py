"""
Document-store access for users, habits and nudges.

Each write touches one document. Habit completion is a conditional update that
only succeeds while the completion date is absent and the streak is unchanged
since it was read; the owner's XP is credited afterwards through the habit's
``pendingXp`` outbox, keyed so that crediting the same completion twice is a
no-op while the credit is in flight. ``reconcile_user_xp`` replays any outbox entries left behind by a failed
user write.
"""
from __future__ import annotations

import random
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

import gamification
from errors import AlreadyExistsError, ConcurrentUpdateError, NotFoundError, PersistenceError
from logging_config import get_logger
from schemas import DailyNudge, Habit, Nudge, User

logger = get_logger("store")

HABIT_UPDATABLE = ("title", "frequency", "reminderTime")
USER_UPDATABLE = ("name", "email", "badges")


def completion_key(habit_id: str, day: str) -> str:
    return f"{habit_id}:{day}"


def habit_out(doc: dict) -> dict:
    out = {k: v for k, v in doc.items() if k not in ("_id", "pendingXp")}
    out["id"] = str(doc["_id"])
    out.setdefault("completionLog", [])
    return out


def user_out(doc: dict) -> dict:
    return {
        "userId": doc["_id"],
        "name": doc.get("name"),
        "email": doc.get("email"),
        "xp": doc.get("xp", 0),
        "badges": doc.get("badges", []),
        "pro": doc.get("pro", False),
        "referredBy": doc.get("referredBy"),
        "createdAt": doc.get("createdAt"),
    }


def nudge_out(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "message": doc["message"],
        "type": doc.get("type", "manual"),
        "createdAt": doc.get("createdAt"),
    }


def _object_id(habit_id: str) -> ObjectId:
    try:
        return ObjectId(habit_id)
    except (InvalidId, TypeError):
        raise NotFoundError("Habit not found") from None


class HabitStore:
    def __init__(self, db: Database, max_attempts: int = 3, referral_xp: int = 20):
        self.db = db
        self.max_attempts = max_attempts
        self.referral_xp = referral_xp

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except PyMongoError as exc:
            logger.exception("Store failure during %s", action)
            raise PersistenceError(f"Database error during {action}: {exc}") from exc

    # ----------------------- Users -----------------------
    def create_user(
        self,
        user_id: str,
        name: str,
        email: str,
        password_hash: str,
        referred_by: Optional[str] = None,
    ) -> dict:
        doc = User(name=name, email=email, password=password_hash, referredBy=referred_by).model_dump()
        doc["_id"] = user_id
        with self._guard("create user"):
            try:
                self.db.user.insert_one(doc)
            except DuplicateKeyError as exc:
                raise AlreadyExistsError("User already exists") from exc
        logger.info("Registered user %s", user_id)

        if referred_by and referred_by != user_id:
            with self._guard("referral reward"):
                res = self.db.user.update_one(
                    {"_id": referred_by}, {"$inc": {"xp": self.referral_xp}}
                )
            if res.matched_count:
                logger.info("Granted %d referral XP to %s", self.referral_xp, referred_by)
        return doc

    def get_user(self, user_id: str) -> dict:
        with self._guard("read user"):
            doc = self.db.user.find_one({"_id": user_id})
        if doc is None:
            raise NotFoundError("User not found")
        return doc

    def update_user(self, user_id: str, fields: Dict) -> None:
        changes = {k: v for k, v in fields.items() if k in USER_UPDATABLE and v is not None}
        if not changes:
            self.get_user(user_id)
            return
        with self._guard("update user"):
            res = self.db.user.update_one({"_id": user_id}, {"$set": changes})
        if res.matched_count == 0:
            raise NotFoundError("User not found")

    def grant_xp(self, user_id: str, amount: int) -> int:
        with self._guard("grant xp"):
            doc = self.db.user.find_one_and_update(
                {"_id": user_id},
                {"$inc": {"xp": amount}},
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            raise NotFoundError("User not found")
        return doc["xp"]

    def upgrade_user(self, user_id: str) -> None:
        with self._guard("upgrade user"):
            res = self.db.user.update_one({"_id": user_id}, {"$set": {"pro": True}})
        if res.matched_count == 0:
            raise NotFoundError("User not found")
        logger.info("Upgraded %s to pro", user_id)

    def get_badges(self, user_id: str) -> List[str]:
        return self.get_user(user_id).get("badges") or []

    # ----------------------- Habits -----------------------
    def create_habit(self, user_id: str, title: str, frequency: str, reminder_time: str) -> str:
        self.get_user(user_id)
        doc = Habit(userId=user_id, title=title, frequency=frequency, reminderTime=reminder_time).model_dump()
        with self._guard("create habit"):
            hid = self.db.habit.insert_one(doc).inserted_id
        return str(hid)

    def list_habits(self, user_id: str) -> List[dict]:
        with self._guard("list habits"):
            return list(self.db.habit.find({"userId": user_id}).sort("createdAt", 1))

    def get_habit(self, user_id: str, habit_id: str) -> dict:
        oid = _object_id(habit_id)
        with self._guard("read habit"):
            doc = self.db.habit.find_one({"_id": oid, "userId": user_id})
        if doc is None:
            raise NotFoundError("Habit not found")
        return doc

    def update_habit(self, user_id: str, habit_id: str, fields: Dict) -> None:
        oid = _object_id(habit_id)
        changes = {k: v for k, v in fields.items() if k in HABIT_UPDATABLE and v is not None}
        if not changes:
            self.get_habit(user_id, habit_id)
            return
        with self._guard("update habit"):
            res = self.db.habit.update_one({"_id": oid, "userId": user_id}, {"$set": changes})
        if res.matched_count == 0:
            raise NotFoundError("Habit not found")

    def delete_habit(self, user_id: str, habit_id: str) -> None:
        oid = _object_id(habit_id)
        with self._guard("delete habit"):
            res = self.db.habit.delete_one({"_id": oid, "userId": user_id})
        if res.deleted_count == 0:
            raise NotFoundError("Habit not found")

    def complete_habit(self, user_id: str, habit_id: str, today: str) -> gamification.CompletionResult:
        """Complete a habit for ``today`` and credit the owner.

        Raises NotFoundError, AlreadyCompletedError, ConcurrentUpdateError or
        PersistenceError.
        """
        for attempt in range(1, self.max_attempts + 1):
            habit = self.get_habit(user_id, habit_id)
            result = gamification.complete_habit(habit, today)
            with self._guard("complete habit"):
                updated = self.db.habit.find_one_and_update(
                    {
                        "_id": habit["_id"],
                        "userId": user_id,
                        "completionLog": {"$ne": today},
                        "streak": habit.get("streak"),
                    },
                    {
                        "$push": {"completionLog": today},
                        "$set": {
                            "streak": result.streak,
                            "xp": result.xp,
                            f"pendingXp.{today}": result.xp_gained,
                        },
                    },
                )
            if updated is not None:
                logger.info(
                    "Completed habit %s for %s on %s (streak=%d, +%d XP)",
                    habit_id, user_id, today, result.streak, result.xp_gained,
                )
                self.apply_pending_xp(user_id, habit_id, today)
                return result
            logger.warning("Completion of %s lost a concurrent update (attempt %d)", habit_id, attempt)
        raise ConcurrentUpdateError("Habit was modified concurrently, please retry")

    def apply_pending_xp(self, user_id: str, habit_id: str, day: str) -> bool:
        """Credit one outbox entry to the owner, at most once.

        The entry stays in the outbox while the owner is missing. Once the
        credit has landed the entry is cleared and its key is pulled from
        ``appliedCompletions``, so the key list only holds in-flight credits.
        """
        key = completion_key(habit_id, day)
        oid = _object_id(habit_id)
        with self._guard("credit user xp"):
            habit = self.db.habit.find_one({"_id": oid, "userId": user_id}, {"pendingXp": 1})
            amount = ((habit or {}).get("pendingXp") or {}).get(day)
            if amount is None:
                return False
            res = self.db.user.update_one(
                {"_id": user_id, "appliedCompletions": {"$ne": key}},
                {"$inc": {"xp": amount}, "$push": {"appliedCompletions": key}},
            )
            if res.matched_count == 0 and self.db.user.count_documents({"_id": user_id}) == 0:
                logger.warning("Cannot credit %s: user %s not found, keeping it pending", key, user_id)
                return False
            self.db.habit.update_one(
                {"_id": oid, "userId": user_id},
                {"$unset": {f"pendingXp.{day}": ""}},
            )
            self.db.user.update_one({"_id": user_id}, {"$pull": {"appliedCompletions": key}})
        return res.modified_count == 1

    def reconcile_user_xp(self, user_id: str) -> int:
        """Replay outstanding XP outbox entries; returns how many were credited."""
        self.get_user(user_id)
        applied = 0
        for habit in self.list_habits(user_id):
            for day in sorted(habit.get("pendingXp") or {}):
                if self.apply_pending_xp(user_id, str(habit["_id"]), day):
                    applied += 1
        if applied:
            logger.info("Reconciled %d pending XP credits for %s", applied, user_id)
        return applied

    # ----------------------- Nudges -----------------------
    def add_nudge(self, user_id: str, habit_id: str, message: str, type: str = "manual") -> str:
        self.get_habit(user_id, habit_id)
        doc = Nudge(userId=user_id, habitId=habit_id, message=message, type=type).model_dump()
        with self._guard("create nudge"):
            return str(self.db.nudge.insert_one(doc).inserted_id)

    def list_nudges(self, user_id: str, habit_id: str) -> List[dict]:
        self.get_habit(user_id, habit_id)
        with self._guard("list nudges"):
            cursor = self.db.nudge.find({"userId": user_id, "habitId": habit_id}).sort(
                [("createdAt", DESCENDING), ("_id", DESCENDING)]
            )
            return list(cursor)

    def daily_nudge(
        self, user_id: str, today: str, rng: Optional[random.Random] = None
    ) -> Tuple[str, bool]:
        """Return today's nudge for a user, committing a new one if none exists."""
        self.get_user(user_id)
        key = f"{user_id}:{today}"
        with self._guard("read daily nudge"):
            cached = self.db.dailynudge.find_one({"_id": key})
        message, is_new = gamification.select_daily_nudge(cached["message"] if cached else None, rng)
        if not is_new:
            return message, False

        doc = DailyNudge(userId=user_id, date=today, message=message).model_dump()
        with self._guard("save daily nudge"):
            previous = self.db.dailynudge.find_one_and_update(
                {"_id": key},
                {"$setOnInsert": doc},
                upsert=True,
                return_document=ReturnDocument.BEFORE,
            )
        if previous is not None:
            # another request committed today's nudge first
            return previous["message"], False
        return message, True
