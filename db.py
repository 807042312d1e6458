import sqlite3
import datetime
import hashlib
import json
import logging
import os
from contextlib import contextmanager
from dataclasses import asdict
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from config import YamlConfig
from settings_schema import SettingsSchema, validate_settings
from models import (
    SYSTEM_OWNER_ID,
    ExerciseAdded,
    ExerciseModified,
    ExerciseRemoved,
    PersonalRecord,
    PersonalRecordType,
    TemplateCategory,
    TemplateDifficulty,
    TemplateExercise,
    TemplateStats,
    UserExercise,
    UserWorkout,
    Workout,
    WorkoutCustomizations,
    WorkoutExercise,
    WorkoutSet,
    WorkoutSource,
    WorkoutStatus,
    WorkoutSummary,
    WorkoutTemplate,
)
from tools import new_id

logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    """Malformed input rejected before anything is written."""


class NotFoundError(ValueError):
    """A mutation referenced an identifier that does not exist."""


class ConsistencyError(ValueError):
    """A write would break a store-wide rule such as template preservation."""


class PersistenceError(RuntimeError):
    """The underlying store failed; the surrounding write was rolled back."""


def _ts(value: datetime.datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime.datetime | None:
    return datetime.datetime.fromisoformat(value) if value else None


def _join(parts: Iterable[str]) -> str:
    return ",".join(parts)


def _split(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(p.strip() for p in value.split(",") if p.strip())


class Database:
    """Provides SQLite connection management and schema initialization.

    A repository either owns its connections (one per operation, opened from
    ``db_path``) or is handed an already open ``connection`` which it shares
    and never closes.
    """

    _TABLE_DEFINITIONS = {
        "workouts": (
            """CREATE TABLE workouts (
                    workout_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    target_body_parts TEXT NOT NULL DEFAULT '',
                    planned_duration_minutes INTEGER NOT NULL DEFAULT 45,
                    created_at TEXT NOT NULL,
                    started_at TEXT,
                    completed_at TEXT,
                    status INTEGER NOT NULL DEFAULT 0,
                    notes TEXT
                );""",
            [
                "workout_id",
                "user_id",
                "name",
                "target_body_parts",
                "planned_duration_minutes",
                "created_at",
                "started_at",
                "completed_at",
                "status",
                "notes",
            ],
        ),
        "workout_exercises": (
            """CREATE TABLE workout_exercises (
                    workout_exercise_id TEXT PRIMARY KEY,
                    workout_id TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    exercise_name TEXT NOT NULL,
                    body_parts TEXT NOT NULL DEFAULT '',
                    notes TEXT,
                    order_index INTEGER NOT NULL,
                    UNIQUE(workout_id, order_index),
                    FOREIGN KEY(workout_id) REFERENCES workouts(workout_id) ON DELETE CASCADE
                );""",
            [
                "workout_exercise_id",
                "workout_id",
                "exercise_id",
                "exercise_name",
                "body_parts",
                "notes",
                "order_index",
            ],
        ),
        "workout_sets": (
            """CREATE TABLE workout_sets (
                    set_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workout_exercise_id TEXT NOT NULL,
                    weight REAL NOT NULL,
                    reps INTEGER NOT NULL,
                    set_number INTEGER NOT NULL,
                    is_completed INTEGER NOT NULL DEFAULT 0,
                    completed_at TEXT,
                    notes TEXT,
                    rest_time_seconds INTEGER,
                    UNIQUE(workout_exercise_id, set_number),
                    FOREIGN KEY(workout_exercise_id) REFERENCES workout_exercises(workout_exercise_id) ON DELETE CASCADE
                );""",
            [
                "set_id",
                "workout_exercise_id",
                "weight",
                "reps",
                "set_number",
                "is_completed",
                "completed_at",
                "notes",
                "rest_time_seconds",
            ],
        ),
        "workout_templates": (
            """CREATE TABLE workout_templates (
                    template_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    category TEXT NOT NULL DEFAULT 'custom',
                    difficulty_level INTEGER NOT NULL DEFAULT 0,
                    target_body_parts TEXT NOT NULL DEFAULT '',
                    estimated_duration_minutes INTEGER,
                    is_favorite INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    last_used_at TEXT,
                    usage_count INTEGER NOT NULL DEFAULT 0
                );""",
            [
                "template_id",
                "user_id",
                "name",
                "description",
                "category",
                "difficulty_level",
                "target_body_parts",
                "estimated_duration_minutes",
                "is_favorite",
                "created_at",
                "updated_at",
                "last_used_at",
                "usage_count",
            ],
        ),
        "template_exercises": (
            """CREATE TABLE template_exercises (
                    template_exercise_id TEXT PRIMARY KEY,
                    template_id TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    exercise_name TEXT NOT NULL,
                    body_parts TEXT NOT NULL DEFAULT '',
                    order_index INTEGER NOT NULL,
                    suggested_sets INTEGER NOT NULL DEFAULT 3,
                    suggested_reps_min INTEGER NOT NULL DEFAULT 8,
                    suggested_reps_max INTEGER NOT NULL DEFAULT 12,
                    suggested_weight REAL,
                    rest_time_seconds INTEGER NOT NULL DEFAULT 90,
                    notes TEXT,
                    FOREIGN KEY(template_id) REFERENCES workout_templates(template_id) ON DELETE CASCADE
                );""",
            [
                "template_exercise_id",
                "template_id",
                "exercise_id",
                "exercise_name",
                "body_parts",
                "order_index",
                "suggested_sets",
                "suggested_reps_min",
                "suggested_reps_max",
                "suggested_weight",
                "rest_time_seconds",
                "notes",
            ],
        ),
        "user_workouts": (
            """CREATE TABLE user_workouts (
                    user_workout_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    base_template_id TEXT,
                    source TEXT NOT NULL DEFAULT 'custom',
                    target_body_parts TEXT NOT NULL DEFAULT '',
                    planned_duration_minutes INTEGER NOT NULL DEFAULT 45,
                    created_at TEXT NOT NULL,
                    last_used_at TEXT,
                    usage_count INTEGER NOT NULL DEFAULT 0,
                    notes TEXT
                );""",
            [
                "user_workout_id",
                "user_id",
                "name",
                "base_template_id",
                "source",
                "target_body_parts",
                "planned_duration_minutes",
                "created_at",
                "last_used_at",
                "usage_count",
                "notes",
            ],
        ),
        "user_workout_exercises": (
            """CREATE TABLE user_workout_exercises (
                    user_exercise_id TEXT PRIMARY KEY,
                    user_workout_id TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    exercise_name TEXT NOT NULL,
                    body_parts TEXT NOT NULL DEFAULT '',
                    order_index INTEGER NOT NULL,
                    suggested_sets INTEGER NOT NULL DEFAULT 3,
                    suggested_reps_min INTEGER NOT NULL DEFAULT 8,
                    suggested_reps_max INTEGER NOT NULL DEFAULT 12,
                    suggested_weight REAL,
                    rest_time_seconds INTEGER NOT NULL DEFAULT 90,
                    notes TEXT,
                    is_from_template INTEGER NOT NULL DEFAULT 0,
                    source_template_exercise_id TEXT,
                    FOREIGN KEY(user_workout_id) REFERENCES user_workouts(user_workout_id) ON DELETE CASCADE
                );""",
            [
                "user_exercise_id",
                "user_workout_id",
                "exercise_id",
                "exercise_name",
                "body_parts",
                "order_index",
                "suggested_sets",
                "suggested_reps_min",
                "suggested_reps_max",
                "suggested_weight",
                "rest_time_seconds",
                "notes",
                "is_from_template",
                "source_template_exercise_id",
            ],
        ),
        "user_workout_modifications": (
            """CREATE TABLE user_workout_modifications (
                    user_workout_id TEXT NOT NULL,
                    modification_type TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    modified_at TEXT NOT NULL,
                    modification_data TEXT,
                    PRIMARY KEY(user_workout_id, modification_type, exercise_id),
                    FOREIGN KEY(user_workout_id) REFERENCES user_workouts(user_workout_id) ON DELETE CASCADE
                );""",
            [
                "user_workout_id",
                "modification_type",
                "exercise_id",
                "modified_at",
                "modification_data",
            ],
        ),
        "personal_records": (
            """CREATE TABLE personal_records (
                    record_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    exercise_name TEXT NOT NULL,
                    record_type INTEGER NOT NULL,
                    value REAL NOT NULL,
                    secondary_value REAL,
                    achieved_at TEXT NOT NULL,
                    workout_id TEXT,
                    notes TEXT
                );""",
            [
                "record_id",
                "user_id",
                "exercise_id",
                "exercise_name",
                "record_type",
                "value",
                "secondary_value",
                "achieved_at",
                "workout_id",
                "notes",
            ],
        ),
        "progress_cache": (
            """CREATE TABLE progress_cache (
                    user_id TEXT PRIMARY KEY,
                    version INTEGER NOT NULL,
                    fingerprint TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    computed_at TEXT NOT NULL
                );""",
            ["user_id", "version", "fingerprint", "payload", "computed_at"],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
    }

    _INDEXES = [
        "CREATE INDEX IF NOT EXISTS idx_workouts_user ON workouts(user_id, created_at);",
        "CREATE INDEX IF NOT EXISTS idx_workouts_status ON workouts(user_id, status);",
        "CREATE INDEX IF NOT EXISTS idx_workout_exercises_workout ON workout_exercises(workout_id, order_index);",
        "CREATE INDEX IF NOT EXISTS idx_workout_sets_exercise ON workout_sets(workout_exercise_id, set_number);",
        "CREATE INDEX IF NOT EXISTS idx_templates_user ON workout_templates(user_id, category);",
        "CREATE INDEX IF NOT EXISTS idx_template_exercises_template ON template_exercises(template_id, order_index);",
        "CREATE INDEX IF NOT EXISTS idx_user_workouts_user ON user_workouts(user_id, base_template_id);",
        "CREATE INDEX IF NOT EXISTS idx_user_workout_exercises ON user_workout_exercises(user_workout_id, order_index);",
        "CREATE INDEX IF NOT EXISTS idx_personal_records_lookup ON personal_records(user_id, exercise_id, record_type);",
    ]

    def __init__(
        self,
        db_path: str = "ledger.db",
        connection: sqlite3.Connection | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self._db_path = db_path
        self._shared = connection
        self.clock = clock or datetime.datetime.now
        self._ensure_schema()
        self._ensure_indexes()

    @property
    def owns_connection(self) -> bool:
        return self._shared is None

    @contextmanager
    def _connection(self, transaction: bool = True):
        """Yield a connection wrapped in a single all-or-nothing transaction."""
        if self._shared is not None:
            connection = self._shared
        else:
            try:
                connection = sqlite3.connect(self._db_path)
            except sqlite3.Error as e:
                raise PersistenceError(str(e)) from e
            connection.execute("PRAGMA foreign_keys=ON;")
        try:
            if transaction and not connection.in_transaction:
                connection.execute("BEGIN;")
            yield connection
            connection.commit()
        except sqlite3.Error as e:
            connection.rollback()
            raise PersistenceError(str(e)) from e
        except BaseException:
            connection.rollback()
            raise
        finally:
            if self._shared is None:
                connection.close()

    def _ensure_schema(self) -> None:
        with self._connection(transaction=False) as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            # keep child foreign keys pointing at the rebuilt table, not its backup
            cursor.execute("PRAGMA legacy_alter_table=on;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA legacy_alter_table=off;")
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_indexes(self) -> None:
        with self._connection(transaction=False) as conn:
            for sql in self._INDEXES:
                conn.execute(sql)

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("migrating table %s", table)
        # a crashed migration can leave its backup behind
        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            conn.execute(
                f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
            )
        conn.execute(f"DROP TABLE {table}_old;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


def validate_workout(workout: Workout) -> None:
    """Reject malformed workouts before anything is written."""
    if not workout.workout_id:
        raise ValidationError("workout_id must not be empty")
    if not workout.user_id:
        raise ValidationError("user_id must not be empty")
    if workout.planned_duration_minutes < 0:
        raise ValidationError("planned duration must be non-negative")
    if workout.completed_at is not None and workout.status != WorkoutStatus.COMPLETED:
        raise ValidationError("completed_at is only allowed on completed workouts")
    positions: set[int] = set()
    exercise_ids: set[str] = set()
    for ex in workout.exercises:
        if not ex.exercise_id:
            raise ValidationError("exercise_id must not be empty")
        if ex.order_index in positions:
            raise ValidationError(f"duplicate order index {ex.order_index}")
        if ex.exercise_id in exercise_ids:
            raise ValidationError(f"duplicate exercise {ex.exercise_id}")
        positions.add(ex.order_index)
        exercise_ids.add(ex.exercise_id)
        numbers: set[int] = set()
        for s in ex.sets:
            if s.weight < 0:
                raise ValidationError("weight must be non-negative")
            if not isinstance(s.reps, int) or s.reps < 0:
                raise ValidationError("reps must be a non-negative integer")
            if s.set_number < 1:
                raise ValidationError("set number must start at 1")
            if s.set_number in numbers:
                raise ValidationError(f"duplicate set number {s.set_number}")
            if s.rest_time_seconds is not None and s.rest_time_seconds < 0:
                raise ValidationError("rest time must be non-negative")
            numbers.add(s.set_number)


class WorkoutRepository(BaseRepository):
    """Repository for workout aggregates (workout, exercises and sets)."""

    _ROOT_COLUMNS = (
        "workout_id, user_id, name, target_body_parts, planned_duration_minutes, "
        "created_at, started_at, completed_at, status, notes"
    )

    def save(self, workout: Workout) -> str:
        validate_workout(workout)
        with self._connection() as conn:
            self._check_status(conn, workout, must_exist=False)
            self._write(conn, workout)
        logger.debug("saved workout %s", workout.workout_id)
        return workout.workout_id

    def get(self, workout_id: str) -> Workout | None:
        with self._connection() as conn:
            return self._load(conn, workout_id)

    def list(
        self,
        user_id: str,
        status: WorkoutStatus | None = None,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
        descending: bool = True,
        limit: int | None = None,
        offset: int | None = None,
    ) -> List[Workout]:
        query, params = self._list_query(
            f"SELECT {self._ROOT_COLUMNS} FROM workouts",
            user_id,
            status,
            start,
            end,
            descending,
            limit,
            offset,
        )
        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
            children = self._load_children(conn, [r[0] for r in rows])
        return [self._from_row(r, children.get(r[0], ())) for r in rows]

    def list_between(
        self, user_id: str, start: datetime.datetime, end: datetime.datetime
    ) -> List[Workout]:
        return self.list(user_id, start=start, end=end)

    def completed_workouts(self, user_id: str) -> List[Workout]:
        """Completed workouts in the order they were completed."""
        workouts = self.list(user_id, status=WorkoutStatus.COMPLETED, descending=False)
        return sorted(workouts, key=lambda w: (w.session_time, w.workout_id))

    def list_summaries(
        self,
        user_id: str,
        status: WorkoutStatus | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> List[WorkoutSummary]:
        base = (
            "SELECT w.workout_id, w.user_id, w.name, w.status, w.created_at, w.completed_at, "
            "COUNT(DISTINCT we.workout_exercise_id), COUNT(ws.set_id), "
            "COALESCE(SUM(ws.is_completed), 0), "
            "COALESCE(SUM(CASE WHEN ws.is_completed = 1 THEN ws.weight * ws.reps ELSE 0 END), 0) "
            "FROM workouts w "
            "LEFT JOIN workout_exercises we ON we.workout_id = w.workout_id "
            "LEFT JOIN workout_sets ws ON ws.workout_exercise_id = we.workout_exercise_id"
        )
        params: list[str | int] = [user_id]
        query = base + " WHERE w.user_id = ?"
        if status is not None:
            query += " AND w.status = ?"
            params.append(int(status))
        query += " GROUP BY w.workout_id ORDER BY w.created_at DESC, w.workout_id"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        if offset is not None:
            if limit is None:
                query += " LIMIT -1"
            query += " OFFSET ?"
            params.append(offset)
        rows = self.fetch_all(query + ";", tuple(params))
        return [
            WorkoutSummary(
                workout_id=r[0],
                user_id=r[1],
                name=r[2],
                status=WorkoutStatus(r[3]),
                created_at=_parse_ts(r[4]),
                completed_at=_parse_ts(r[5]),
                exercise_count=int(r[6]),
                set_count=int(r[7]),
                completed_set_count=int(r[8]),
                total_volume=float(r[9]),
            )
            for r in rows
        ]

    def update(self, workout: Workout) -> None:
        validate_workout(workout)
        with self._connection() as conn:
            self._check_status(conn, workout, must_exist=True)
            self._write(conn, workout)

    def _check_status(self, conn: sqlite3.Connection, workout: Workout, must_exist: bool) -> None:
        """Status only moves forward, whichever write path replaces the row."""
        row = conn.execute(
            "SELECT status FROM workouts WHERE workout_id = ?;",
            (workout.workout_id,),
        ).fetchone()
        if row is None:
            if must_exist:
                raise NotFoundError("workout not found")
            return
        current = WorkoutStatus(row[0])
        if not current.can_become(workout.status):
            raise ValidationError(
                f"cannot change status from {current.name.lower()} to {workout.status.name.lower()}"
            )

    def delete(self, workout_id: str) -> bool:
        with self._connection() as conn:
            self._delete_children(conn, workout_id)
            cur = conn.execute("DELETE FROM workouts WHERE workout_id = ?;", (workout_id,))
            return cur.rowcount > 0

    def start(self, workout_id: str) -> Workout:
        return self._transition(workout_id, WorkoutStatus.IN_PROGRESS)

    def complete(self, workout_id: str) -> Workout:
        return self._transition(workout_id, WorkoutStatus.COMPLETED)

    def cancel(self, workout_id: str) -> Workout:
        return self._transition(workout_id, WorkoutStatus.CANCELLED)

    def add_set(
        self,
        workout_id: str,
        exercise_id: str,
        weight: float,
        reps: int,
        is_completed: bool = False,
        rest_time_seconds: int | None = None,
        notes: str | None = None,
        set_number: int | None = None,
    ) -> WorkoutSet:
        """Append a set to one exercise of a workout."""
        now = self.clock()
        added: list[WorkoutSet] = []

        def change(ex: WorkoutExercise) -> WorkoutExercise:
            new_set = WorkoutSet(
                weight=weight,
                reps=reps,
                set_number=set_number if set_number is not None else ex.next_set_number,
                is_completed=is_completed,
                completed_at=now if is_completed else None,
                rest_time_seconds=rest_time_seconds,
                notes=notes,
            )
            added.append(new_set)
            return ex.copy_with(sets=ex.sets + (new_set,))

        self._modify_exercise(workout_id, exercise_id, change)
        return added[0]

    def update_set(
        self, workout_id: str, exercise_id: str, set_number: int, **changes
    ) -> WorkoutSet:
        """Apply ``changes`` to one set; completing a set stamps its time."""
        now = self.clock()
        updated: list[WorkoutSet] = []

        def change(ex: WorkoutExercise) -> WorkoutExercise:
            sets = list(ex.sets)
            for i, s in enumerate(sets):
                if s.set_number == set_number:
                    new_set = s.copy_with(**changes)
                    if new_set.is_completed and new_set.completed_at is None:
                        new_set = new_set.copy_with(completed_at=now)
                    if not new_set.is_completed:
                        new_set = new_set.copy_with(completed_at=None)
                    sets[i] = new_set
                    updated.append(new_set)
                    return ex.copy_with(sets=tuple(sets))
            raise NotFoundError("set not found")

        self._modify_exercise(workout_id, exercise_id, change)
        return updated[0]

    def remove_set(self, workout_id: str, exercise_id: str, set_number: int) -> None:
        def change(ex: WorkoutExercise) -> WorkoutExercise:
            remaining = tuple(s for s in ex.sets if s.set_number != set_number)
            if len(remaining) == len(ex.sets):
                raise NotFoundError("set not found")
            return ex.copy_with(sets=remaining)

        self._modify_exercise(workout_id, exercise_id, change)

    def fingerprint(self, user_id: str) -> str:
        """Identify the completed history of a user for cache validation."""
        rows = self.fetch_all(
            "SELECT w.workout_id, w.created_at, w.started_at, w.completed_at, "
            "w.planned_duration_minutes, we.exercise_id, we.body_parts, COUNT(ws.set_id), "
            "COALESCE(SUM(ws.weight * ws.reps), 0) "
            "FROM workouts w "
            "LEFT JOIN workout_exercises we ON we.workout_id = w.workout_id "
            "LEFT JOIN workout_sets ws ON ws.workout_exercise_id = we.workout_exercise_id "
            "AND ws.is_completed = 1 "
            "WHERE w.user_id = ? AND w.status = ? "
            "GROUP BY w.workout_id, we.workout_exercise_id "
            "ORDER BY w.workout_id, we.order_index, we.exercise_id;",
            (user_id, int(WorkoutStatus.COMPLETED)),
        )
        digest = hashlib.sha256()
        for row in rows:
            digest.update(json.dumps(row).encode("utf-8"))
        return f"{len({r[0] for r in rows})}:{digest.hexdigest()}"

    def _transition(self, workout_id: str, target: WorkoutStatus) -> Workout:
        now = self.clock()
        with self._connection() as conn:
            workout = self._load(conn, workout_id)
            if workout is None:
                raise NotFoundError("workout not found")
            if workout.status == target or not workout.status.can_become(target):
                raise ValidationError(
                    f"cannot change status from {workout.status.name.lower()} to {target.name.lower()}"
                )
            changes: dict = {"status": target}
            if target == WorkoutStatus.IN_PROGRESS:
                changes["started_at"] = now
            elif target == WorkoutStatus.COMPLETED:
                changes["completed_at"] = now
                if workout.started_at is None:
                    changes["started_at"] = now
            workout = workout.copy_with(**changes)
            conn.execute(
                "UPDATE workouts SET status = ?, started_at = ?, completed_at = ? WHERE workout_id = ?;",
                (int(target), _ts(workout.started_at), _ts(workout.completed_at), workout_id),
            )
        logger.info("workout %s is now %s", workout_id, target.name.lower())
        return workout

    def _modify_exercise(
        self,
        workout_id: str,
        exercise_id: str,
        change: Callable[[WorkoutExercise], WorkoutExercise],
    ) -> Workout:
        with self._connection() as conn:
            workout = self._load(conn, workout_id)
            if workout is None:
                raise NotFoundError("workout not found")
            exercises = list(workout.exercises)
            for i, ex in enumerate(exercises):
                if ex.exercise_id == exercise_id:
                    exercises[i] = change(ex)
                    break
            else:
                raise NotFoundError("exercise not found")
            workout = workout.copy_with(exercises=tuple(exercises))
            validate_workout(workout)
            self._write(conn, workout)
        return workout

    def _list_query(
        self,
        base: str,
        user_id: str,
        status: WorkoutStatus | None,
        start: datetime.datetime | None,
        end: datetime.datetime | None,
        descending: bool,
        limit: int | None,
        offset: int | None,
    ) -> tuple[str, tuple]:
        params: list[str | int] = [user_id]
        where_clauses = ["user_id = ?"]
        if status is not None:
            where_clauses.append("status = ?")
            params.append(int(status))
        if start is not None:
            where_clauses.append("created_at >= ?")
            params.append(_ts(start))
        if end is not None:
            where_clauses.append("created_at <= ?")
            params.append(_ts(end))
        query = base + " WHERE " + " AND ".join(where_clauses)
        order = "DESC" if descending else "ASC"
        query += f" ORDER BY created_at {order}, workout_id {order}"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        if offset is not None:
            if limit is None:
                query += " LIMIT -1"
            query += " OFFSET ?"
            params.append(offset)
        return query + ";", tuple(params)

    def _write(self, conn: sqlite3.Connection, workout: Workout) -> None:
        conn.execute(
            f"INSERT INTO workouts ({self._ROOT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(workout_id) DO UPDATE SET user_id=excluded.user_id, name=excluded.name, "
            "target_body_parts=excluded.target_body_parts, "
            "planned_duration_minutes=excluded.planned_duration_minutes, "
            "created_at=excluded.created_at, started_at=excluded.started_at, "
            "completed_at=excluded.completed_at, status=excluded.status, notes=excluded.notes;",
            (
                workout.workout_id,
                workout.user_id,
                workout.name,
                _join(workout.target_body_parts),
                workout.planned_duration_minutes,
                _ts(workout.created_at),
                _ts(workout.started_at),
                _ts(workout.completed_at),
                int(workout.status),
                workout.notes,
            ),
        )
        self._delete_children(conn, workout.workout_id)
        for ex in workout.exercises:
            we_id = f"{workout.workout_id}_{ex.exercise_id}"
            conn.execute(
                "INSERT INTO workout_exercises (workout_exercise_id, workout_id, exercise_id, exercise_name, body_parts, notes, order_index) "
                "VALUES (?, ?, ?, ?, ?, ?, ?);",
                (
                    we_id,
                    workout.workout_id,
                    ex.exercise_id,
                    ex.exercise_name,
                    _join(ex.body_parts),
                    ex.notes,
                    ex.order_index,
                ),
            )
            for s in ex.sets:
                self._insert_set(conn, we_id, s)

    def _insert_set(self, conn: sqlite3.Connection, workout_exercise_id: str, s: WorkoutSet) -> None:
        conn.execute(
            "INSERT INTO workout_sets (workout_exercise_id, weight, reps, set_number, is_completed, completed_at, notes, rest_time_seconds) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (
                workout_exercise_id,
                s.weight,
                s.reps,
                s.set_number,
                1 if s.is_completed else 0,
                _ts(s.completed_at),
                s.notes,
                s.rest_time_seconds,
            ),
        )

    def _delete_children(self, conn: sqlite3.Connection, workout_id: str) -> None:
        conn.execute(
            "DELETE FROM workout_sets WHERE workout_exercise_id IN "
            "(SELECT workout_exercise_id FROM workout_exercises WHERE workout_id = ?);",
            (workout_id,),
        )
        conn.execute("DELETE FROM workout_exercises WHERE workout_id = ?;", (workout_id,))

    def _load(self, conn: sqlite3.Connection, workout_id: str) -> Workout | None:
        row = conn.execute(
            f"SELECT {self._ROOT_COLUMNS} FROM workouts WHERE workout_id = ?;",
            (workout_id,),
        ).fetchone()
        if row is None:
            return None
        children = self._load_children(conn, [workout_id])
        return self._from_row(row, children.get(workout_id, ()))

    def _load_children(
        self, conn: sqlite3.Connection, workout_ids: List[str]
    ) -> dict[str, tuple[WorkoutExercise, ...]]:
        if not workout_ids:
            return {}
        marks = ", ".join("?" for _ in workout_ids)
        set_rows = conn.execute(
            "SELECT ws.workout_exercise_id, ws.weight, ws.reps, ws.set_number, ws.is_completed, "
            "ws.completed_at, ws.rest_time_seconds, ws.notes "
            "FROM workout_sets ws JOIN workout_exercises we "
            "ON ws.workout_exercise_id = we.workout_exercise_id "
            f"WHERE we.workout_id IN ({marks}) ORDER BY ws.set_number;",
            tuple(workout_ids),
        ).fetchall()
        sets: dict[str, list[WorkoutSet]] = {}
        for r in set_rows:
            sets.setdefault(r[0], []).append(
                WorkoutSet(
                    weight=float(r[1]),
                    reps=int(r[2]),
                    set_number=int(r[3]),
                    is_completed=bool(r[4]),
                    completed_at=_parse_ts(r[5]),
                    rest_time_seconds=r[6],
                    notes=r[7],
                )
            )
        ex_rows = conn.execute(
            "SELECT workout_exercise_id, workout_id, exercise_id, exercise_name, body_parts, notes, order_index "
            f"FROM workout_exercises WHERE workout_id IN ({marks}) ORDER BY order_index;",
            tuple(workout_ids),
        ).fetchall()
        result: dict[str, list[WorkoutExercise]] = {}
        for r in ex_rows:
            result.setdefault(r[1], []).append(
                WorkoutExercise(
                    exercise_id=r[2],
                    exercise_name=r[3],
                    body_parts=_split(r[4]),
                    notes=r[5],
                    order_index=int(r[6]),
                    sets=tuple(sets.get(r[0], ())),
                )
            )
        return {k: tuple(v) for k, v in result.items()}

    @staticmethod
    def _from_row(row: Tuple, exercises: Iterable[WorkoutExercise]) -> Workout:
        return Workout(
            workout_id=row[0],
            user_id=row[1],
            name=row[2],
            target_body_parts=_split(row[3]),
            planned_duration_minutes=int(row[4]),
            created_at=_parse_ts(row[5]),
            started_at=_parse_ts(row[6]),
            completed_at=_parse_ts(row[7]),
            status=WorkoutStatus(row[8]),
            notes=row[9],
            exercises=tuple(exercises),
        )


def suggestions_from_sets(exercise: WorkoutExercise) -> dict:
    """Suggested sets, rep range and weight derived from completed sets.

    Empty when nothing was completed so callers keep their defaults.
    """
    done = exercise.completed_sets
    if not done:
        return {}
    reps = [s.reps for s in done]
    return {
        "suggested_sets": len(done),
        "suggested_reps_min": min(reps),
        "suggested_reps_max": max(reps),
        "suggested_weight": sum(s.weight for s in done) / len(done),
    }


def validate_template(template: WorkoutTemplate) -> None:
    if not template.template_id:
        raise ValidationError("template_id must not be empty")
    if not template.name.strip():
        raise ValidationError("template name must not be empty")
    if template.estimated_duration_minutes is not None and template.estimated_duration_minutes < 0:
        raise ValidationError("estimated duration must be non-negative")
    ids: set[str] = set()
    for ex in template.exercises:
        if ex.template_exercise_id in ids:
            raise ValidationError(f"duplicate template exercise {ex.template_exercise_id}")
        ids.add(ex.template_exercise_id)
        _validate_suggestion(
            ex.suggested_sets,
            ex.suggested_reps_min,
            ex.suggested_reps_max,
            ex.suggested_weight,
            ex.rest_time_seconds,
        )


def _validate_suggestion(
    sets: int, reps_min: int, reps_max: int, weight: float | None, rest: int
) -> None:
    if sets < 1:
        raise ValidationError("suggested sets must be positive")
    if reps_min < 0 or reps_max < reps_min:
        raise ValidationError("invalid rep range")
    if weight is not None and weight < 0:
        raise ValidationError("weight must be non-negative")
    if rest < 0:
        raise ValidationError("rest time must be non-negative")


class WorkoutTemplateRepository(BaseRepository):
    """Repository for workout templates and their exercises.

    System templates (owned by ``SYSTEM_OWNER_ID``) can only be written by the
    seeder; user actions may only bump their usage metadata.
    """

    _ROOT_COLUMNS = (
        "template_id, user_id, name, description, category, difficulty_level, "
        "target_body_parts, estimated_duration_minutes, is_favorite, created_at, "
        "updated_at, last_used_at, usage_count"
    )
    _EXERCISE_COLUMNS = (
        "template_exercise_id, template_id, exercise_id, exercise_name, body_parts, "
        "order_index, suggested_sets, suggested_reps_min, suggested_reps_max, "
        "suggested_weight, rest_time_seconds, notes"
    )

    def save(self, template: WorkoutTemplate, *, system: bool = False) -> str:
        validate_template(template)
        if template.is_system and not system:
            raise ConsistencyError("system templates cannot be modified")
        with self._connection() as conn:
            if not system:
                self._guard_system(conn, template.template_id)
            self._write(conn, template)
        logger.debug("saved template %s", template.template_id)
        return template.template_id

    def save_all(self, templates: Sequence[WorkoutTemplate], *, system: bool = False) -> int:
        """Write several templates in one transaction; nothing is kept if any fails."""
        for template in templates:
            validate_template(template)
            if template.is_system and not system:
                raise ConsistencyError("system templates cannot be modified")
        with self._connection() as conn:
            for template in templates:
                if not system:
                    self._guard_system(conn, template.template_id)
                self._write(conn, template)
        return len(templates)

    def get(self, template_id: str) -> WorkoutTemplate | None:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {self._ROOT_COLUMNS} FROM workout_templates WHERE template_id = ?;",
                (template_id,),
            ).fetchone()
            if row is None:
                return None
            children = self._load_children(conn, [template_id])
        return self._from_row(row, children.get(template_id, ()))

    def list(
        self,
        user_id: str | None = None,
        category: TemplateCategory | None = None,
        difficulty: TemplateDifficulty | None = None,
        is_favorite: bool | None = None,
        search: str | None = None,
        order_by: str = "updated_at",
        ascending: bool = False,
        limit: int | None = None,
        offset: int | None = None,
    ) -> List[WorkoutTemplate]:
        query = f"SELECT {self._ROOT_COLUMNS} FROM workout_templates"
        params: list[str | int] = []
        where_clauses: list[str] = []
        if user_id is not None:
            where_clauses.append("user_id = ?")
            params.append(user_id)
        if category is not None:
            where_clauses.append("category = ?")
            params.append(TemplateCategory(category).value)
        if difficulty is not None:
            where_clauses.append("difficulty_level = ?")
            params.append(int(difficulty))
        if is_favorite is not None:
            where_clauses.append("is_favorite = ?")
            params.append(1 if is_favorite else 0)
        if search:
            where_clauses.append("(name LIKE ? OR description LIKE ?)")
            params.extend([f"%{search}%", f"%{search}%"])
        if where_clauses:
            query += " WHERE " + " AND ".join(where_clauses)
        allowed = {"name", "usage_count", "last_used_at", "created_at", "updated_at"}
        if order_by not in allowed:
            order_by = "updated_at"
        order = "ASC" if ascending else "DESC"
        query += f" ORDER BY {order_by} {order}, template_id ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        if offset is not None:
            if limit is None:
                query += " LIMIT -1"
            query += " OFFSET ?"
            params.append(offset)
        with self._connection() as conn:
            rows = conn.execute(query + ";", tuple(params)).fetchall()
            children = self._load_children(conn, [r[0] for r in rows])
        return [self._from_row(r, children.get(r[0], ())) for r in rows]

    def list_visible(self, user_id: str) -> List[WorkoutTemplate]:
        """Personal templates followed by system templates."""
        personal = self.list(user_id=user_id) if user_id != SYSTEM_OWNER_ID else []
        return personal + self.list(user_id=SYSTEM_OWNER_ID)

    def update(self, template: WorkoutTemplate) -> WorkoutTemplate:
        validate_template(template)
        if template.is_system:
            raise ConsistencyError("system templates cannot be modified")
        template = template.copy_with(updated_at=self.clock())
        with self._connection() as conn:
            if self._owner(conn, template.template_id) is None:
                raise NotFoundError("template not found")
            self._guard_system(conn, template.template_id)
            self._write(conn, template)
        return template

    def delete(self, template_id: str) -> bool:
        with self._connection() as conn:
            self._guard_system(conn, template_id)
            conn.execute("DELETE FROM template_exercises WHERE template_id = ?;", (template_id,))
            cur = conn.execute(
                "DELETE FROM workout_templates WHERE template_id = ?;", (template_id,)
            )
            return cur.rowcount > 0

    def toggle_favorite(self, template_id: str) -> bool:
        with self._connection() as conn:
            owner = self._owner(conn, template_id)
            if owner is None:
                raise NotFoundError("template not found")
            self._guard_system(conn, template_id)
            conn.execute(
                "UPDATE workout_templates SET is_favorite = 1 - is_favorite, updated_at = ? WHERE template_id = ?;",
                (_ts(self.clock()), template_id),
            )
            row = conn.execute(
                "SELECT is_favorite FROM workout_templates WHERE template_id = ?;",
                (template_id,),
            ).fetchone()
        return bool(row[0])

    def record_usage(self, template_id: str) -> None:
        """Bump usage metadata; allowed on system templates too."""
        with self._connection() as conn:
            cur = conn.execute(
                "UPDATE workout_templates SET usage_count = usage_count + 1, last_used_at = ? WHERE template_id = ?;",
                (_ts(self.clock()), template_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError("template not found")

    def stats(self, user_id: str) -> TemplateStats:
        rows = self.fetch_all(
            "SELECT COUNT(*), COALESCE(SUM(is_favorite), 0), COALESCE(SUM(usage_count), 0), "
            "COALESCE(SUM(CASE WHEN usage_count > 0 THEN 1 ELSE 0 END), 0) "
            "FROM workout_templates WHERE user_id = ?;",
            (user_id,),
        )
        total, favorites, usage, used = rows[0]
        return TemplateStats(
            total_templates=int(total),
            favorite_templates=int(favorites),
            total_usage=int(usage),
            used_templates=int(used),
        )

    def popular(self, user_id: str, limit: int = 5) -> List[WorkoutTemplate]:
        return self.list(user_id=user_id, order_by="usage_count", limit=limit)

    def recent(self, user_id: str, limit: int = 5) -> List[WorkoutTemplate]:
        used = [
            t
            for t in self.list(user_id=user_id, order_by="last_used_at")
            if t.last_used_at is not None
        ]
        return used[:limit]

    def by_category(self, user_id: str) -> dict[TemplateCategory, List[WorkoutTemplate]]:
        grouped: dict[TemplateCategory, List[WorkoutTemplate]] = {}
        for template in self.list(user_id=user_id, order_by="name", ascending=True):
            grouped.setdefault(template.category, []).append(template)
        return grouped

    def has_system_templates(self) -> bool:
        rows = self.fetch_all(
            "SELECT COUNT(*) FROM workout_templates WHERE user_id = ?;",
            (SYSTEM_OWNER_ID,),
        )
        return rows[0][0] > 0

    def create_from_workout(
        self,
        workout: Workout,
        name: str,
        description: str = "",
        category: TemplateCategory = TemplateCategory.CUSTOM,
        difficulty: TemplateDifficulty = TemplateDifficulty.BEGINNER,
        user_id: str | None = None,
    ) -> str:
        """Turn a logged workout into a template, deriving suggestions from completed sets."""
        now = self.clock()
        template_id = new_id("template")
        exercises = []
        for ex in workout.exercises:
            exercises.append(
                TemplateExercise(
                    template_exercise_id=f"{template_id}_{ex.exercise_id}",
                    exercise_id=ex.exercise_id,
                    exercise_name=ex.exercise_name,
                    body_parts=ex.body_parts,
                    order_index=ex.order_index,
                    notes=ex.notes,
                    **suggestions_from_sets(ex),
                )
            )
        template = WorkoutTemplate(
            template_id=template_id,
            user_id=user_id or workout.user_id,
            name=name,
            description=description,
            category=category,
            difficulty=difficulty,
            target_body_parts=workout.target_body_parts,
            estimated_duration_minutes=workout.planned_duration_minutes,
            exercises=tuple(exercises),
            created_at=now,
            updated_at=now,
        )
        return self.save(template)

    def _owner(self, conn: sqlite3.Connection, template_id: str) -> Optional[str]:
        row = conn.execute(
            "SELECT user_id FROM workout_templates WHERE template_id = ?;",
            (template_id,),
        ).fetchone()
        return row[0] if row else None

    def _guard_system(self, conn: sqlite3.Connection, template_id: str) -> None:
        if self._owner(conn, template_id) == SYSTEM_OWNER_ID:
            raise ConsistencyError("system templates cannot be modified")

    def _write(self, conn: sqlite3.Connection, template: WorkoutTemplate) -> None:
        conn.execute(
            f"INSERT INTO workout_templates ({self._ROOT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(template_id) DO UPDATE SET user_id=excluded.user_id, name=excluded.name, "
            "description=excluded.description, category=excluded.category, "
            "difficulty_level=excluded.difficulty_level, target_body_parts=excluded.target_body_parts, "
            "estimated_duration_minutes=excluded.estimated_duration_minutes, "
            "is_favorite=excluded.is_favorite, created_at=excluded.created_at, "
            "updated_at=excluded.updated_at, last_used_at=excluded.last_used_at, "
            "usage_count=excluded.usage_count;",
            (
                template.template_id,
                template.user_id,
                template.name,
                template.description,
                TemplateCategory(template.category).value,
                int(template.difficulty),
                _join(template.target_body_parts),
                template.estimated_duration_minutes,
                1 if template.is_favorite else 0,
                _ts(template.created_at),
                _ts(template.updated_at),
                _ts(template.last_used_at),
                template.usage_count,
            ),
        )
        conn.execute(
            "DELETE FROM template_exercises WHERE template_id = ?;", (template.template_id,)
        )
        for ex in template.exercises:
            conn.execute(
                f"INSERT INTO template_exercises ({self._EXERCISE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    ex.template_exercise_id,
                    template.template_id,
                    ex.exercise_id,
                    ex.exercise_name,
                    _join(ex.body_parts),
                    ex.order_index,
                    ex.suggested_sets,
                    ex.suggested_reps_min,
                    ex.suggested_reps_max,
                    ex.suggested_weight,
                    ex.rest_time_seconds,
                    ex.notes,
                ),
            )

    def _load_children(
        self, conn: sqlite3.Connection, template_ids: List[str]
    ) -> dict[str, tuple[TemplateExercise, ...]]:
        if not template_ids:
            return {}
        marks = ", ".join("?" for _ in template_ids)
        rows = conn.execute(
            f"SELECT {self._EXERCISE_COLUMNS} FROM template_exercises "
            f"WHERE template_id IN ({marks}) ORDER BY order_index, template_exercise_id;",
            tuple(template_ids),
        ).fetchall()
        result: dict[str, list[TemplateExercise]] = {}
        for r in rows:
            result.setdefault(r[1], []).append(
                TemplateExercise(
                    template_exercise_id=r[0],
                    exercise_id=r[2],
                    exercise_name=r[3],
                    body_parts=_split(r[4]),
                    order_index=int(r[5]),
                    suggested_sets=int(r[6]),
                    suggested_reps_min=int(r[7]),
                    suggested_reps_max=int(r[8]),
                    suggested_weight=r[9],
                    rest_time_seconds=int(r[10]),
                    notes=r[11],
                )
            )
        return {k: tuple(v) for k, v in result.items()}

    @staticmethod
    def _from_row(row: Tuple, exercises: Iterable[TemplateExercise]) -> WorkoutTemplate:
        return WorkoutTemplate(
            template_id=row[0],
            user_id=row[1],
            name=row[2],
            description=row[3] or "",
            category=TemplateCategory(row[4]),
            difficulty=TemplateDifficulty(row[5]),
            target_body_parts=_split(row[6]),
            estimated_duration_minutes=row[7],
            is_favorite=bool(row[8]),
            created_at=_parse_ts(row[9]),
            updated_at=_parse_ts(row[10]),
            last_used_at=_parse_ts(row[11]),
            usage_count=int(row[12]),
            exercises=tuple(exercises),
        )


def _user_exercise_to_dict(exercise: UserExercise) -> dict:
    data = asdict(exercise)
    data["body_parts"] = list(exercise.body_parts)
    return data


def _user_exercise_from_dict(data: dict) -> UserExercise:
    data = dict(data)
    data["body_parts"] = tuple(data.get("body_parts", ()))
    return UserExercise(**data)


def validate_user_workout(user_workout: UserWorkout) -> None:
    if not user_workout.user_workout_id:
        raise ValidationError("user_workout_id must not be empty")
    if not user_workout.user_id:
        raise ValidationError("user_id must not be empty")
    if not user_workout.name.strip():
        raise ValidationError("workout name must not be empty")
    if user_workout.planned_duration_minutes < 0:
        raise ValidationError("planned duration must be non-negative")
    ids: set[str] = set()
    for ex in user_workout.exercises + user_workout.customizations.added_exercises:
        if ex.user_exercise_id in ids:
            raise ValidationError(f"duplicate user exercise {ex.user_exercise_id}")
        ids.add(ex.user_exercise_id)
        _validate_suggestion(
            ex.suggested_sets,
            ex.suggested_reps_min,
            ex.suggested_reps_max,
            ex.suggested_weight,
            ex.rest_time_seconds,
        )
    base = {ex.exercise_id: ex for ex in user_workout.exercises}
    for event in user_workout.customizations.modified_exercises.values():
        ex = base.get(event.exercise_id)
        if ex is None:
            raise ValidationError(f"modified exercise {event.exercise_id} is not in the workout")
        if event.order_index is not None and event.order_index < 0:
            raise ValidationError("order index must be non-negative")
        # validate the values the exercise ends up with, not only the overrides
        _validate_suggestion(
            ex.suggested_sets if event.sets is None else event.sets,
            ex.suggested_reps_min if event.reps_min is None else event.reps_min,
            ex.suggested_reps_max if event.reps_max is None else event.reps_max,
            ex.suggested_weight if event.weight is None else event.weight,
            ex.rest_time_seconds if event.rest_time_seconds is None else event.rest_time_seconds,
        )


class UserWorkoutRepository(BaseRepository):
    """Repository for personal workouts, their exercises and customizations."""

    _ROOT_COLUMNS = (
        "user_workout_id, user_id, name, base_template_id, source, target_body_parts, "
        "planned_duration_minutes, created_at, last_used_at, usage_count, notes"
    )
    _EXERCISE_COLUMNS = (
        "user_exercise_id, user_workout_id, exercise_id, exercise_name, body_parts, "
        "order_index, suggested_sets, suggested_reps_min, suggested_reps_max, "
        "suggested_weight, rest_time_seconds, notes, is_from_template, "
        "source_template_exercise_id"
    )

    def save(self, user_workout: UserWorkout) -> str:
        validate_user_workout(user_workout)
        with self._connection() as conn:
            self._write(conn, user_workout)
        logger.debug("saved user workout %s", user_workout.user_workout_id)
        return user_workout.user_workout_id

    def get(self, user_workout_id: str) -> UserWorkout | None:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {self._ROOT_COLUMNS} FROM user_workouts WHERE user_workout_id = ?;",
                (user_workout_id,),
            ).fetchone()
            if row is None:
                return None
            return self._materialize(conn, row)

    def list(self, user_id: str, base_template_id: str | None = None) -> List[UserWorkout]:
        query = f"SELECT {self._ROOT_COLUMNS} FROM user_workouts WHERE user_id = ?"
        params: list[str] = [user_id]
        if base_template_id is not None:
            query += " AND base_template_id = ?"
            params.append(base_template_id)
        query += " ORDER BY COALESCE(last_used_at, created_at) DESC, user_workout_id;"
        with self._connection() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
            return [self._materialize(conn, r) for r in rows]

    def update(self, user_workout: UserWorkout) -> None:
        validate_user_workout(user_workout)
        with self._connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM user_workouts WHERE user_workout_id = ?;",
                (user_workout.user_workout_id,),
            ).fetchone()
            if row is None:
                raise NotFoundError("user workout not found")
            self._write(conn, user_workout)

    def record_usage(self, user_workout_id: str) -> None:
        with self._connection() as conn:
            cur = conn.execute(
                "UPDATE user_workouts SET usage_count = usage_count + 1, last_used_at = ? WHERE user_workout_id = ?;",
                (_ts(self.clock()), user_workout_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError("user workout not found")

    def delete(self, user_workout_id: str) -> bool:
        with self._connection() as conn:
            self._delete_children(conn, user_workout_id)
            cur = conn.execute(
                "DELETE FROM user_workouts WHERE user_workout_id = ?;", (user_workout_id,)
            )
            return cur.rowcount > 0

    def _delete_children(self, conn: sqlite3.Connection, user_workout_id: str) -> None:
        conn.execute(
            "DELETE FROM user_workout_modifications WHERE user_workout_id = ?;",
            (user_workout_id,),
        )
        conn.execute(
            "DELETE FROM user_workout_exercises WHERE user_workout_id = ?;",
            (user_workout_id,),
        )

    def _write(self, conn: sqlite3.Connection, uw: UserWorkout) -> None:
        conn.execute(
            f"INSERT INTO user_workouts ({self._ROOT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(user_workout_id) DO UPDATE SET user_id=excluded.user_id, name=excluded.name, "
            "base_template_id=excluded.base_template_id, source=excluded.source, "
            "target_body_parts=excluded.target_body_parts, "
            "planned_duration_minutes=excluded.planned_duration_minutes, "
            "created_at=excluded.created_at, last_used_at=excluded.last_used_at, "
            "usage_count=excluded.usage_count, notes=excluded.notes;",
            (
                uw.user_workout_id,
                uw.user_id,
                uw.name,
                uw.base_template_id,
                WorkoutSource(uw.source).value,
                _join(uw.target_body_parts),
                uw.planned_duration_minutes,
                _ts(uw.created_at),
                _ts(uw.last_used_at),
                uw.usage_count,
                uw.notes,
            ),
        )
        self._delete_children(conn, uw.user_workout_id)
        for ex in uw.exercises:
            conn.execute(
                f"INSERT INTO user_workout_exercises ({self._EXERCISE_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    ex.user_exercise_id,
                    uw.user_workout_id,
                    ex.exercise_id,
                    ex.exercise_name,
                    _join(ex.body_parts),
                    ex.order_index,
                    ex.suggested_sets,
                    ex.suggested_reps_min,
                    ex.suggested_reps_max,
                    ex.suggested_weight,
                    ex.rest_time_seconds,
                    ex.notes,
                    1 if ex.is_from_template else 0,
                    ex.source_template_exercise_id,
                ),
            )
        for event in uw.customizations.events:
            if isinstance(event, ExerciseAdded):
                data = json.dumps(_user_exercise_to_dict(event.exercise))
            elif isinstance(event, ExerciseModified):
                data = json.dumps(
                    {
                        "sets": event.sets,
                        "reps_min": event.reps_min,
                        "reps_max": event.reps_max,
                        "weight": event.weight,
                        "rest_time_seconds": event.rest_time_seconds,
                        "order_index": event.order_index,
                    }
                )
            else:
                data = None
            conn.execute(
                "INSERT INTO user_workout_modifications (user_workout_id, modification_type, exercise_id, modified_at, modification_data) "
                "VALUES (?, ?, ?, ?, ?);",
                (
                    uw.user_workout_id,
                    event.kind,
                    event.exercise_id,
                    _ts(event.modified_at),
                    data,
                ),
            )

    def _materialize(self, conn: sqlite3.Connection, row: Tuple) -> UserWorkout:
        uw_id = row[0]
        ex_rows = conn.execute(
            f"SELECT {self._EXERCISE_COLUMNS} FROM user_workout_exercises "
            "WHERE user_workout_id = ? ORDER BY order_index, user_exercise_id;",
            (uw_id,),
        ).fetchall()
        exercises = tuple(
            UserExercise(
                user_exercise_id=r[0],
                exercise_id=r[2],
                exercise_name=r[3],
                body_parts=_split(r[4]),
                order_index=int(r[5]),
                suggested_sets=int(r[6]),
                suggested_reps_min=int(r[7]),
                suggested_reps_max=int(r[8]),
                suggested_weight=r[9],
                rest_time_seconds=int(r[10]),
                notes=r[11],
                is_from_template=bool(r[12]),
                source_template_exercise_id=r[13],
            )
            for r in ex_rows
        )
        mod_rows = conn.execute(
            "SELECT modification_type, exercise_id, modified_at, modification_data "
            "FROM user_workout_modifications WHERE user_workout_id = ? ORDER BY rowid;",
            (uw_id,),
        ).fetchall()
        events = []
        for kind, exercise_id, modified_at, data in mod_rows:
            when = _parse_ts(modified_at)
            if kind == "removed":
                events.append(ExerciseRemoved(exercise_id=exercise_id, modified_at=when))
            elif kind == "added":
                events.append(
                    ExerciseAdded(
                        exercise=_user_exercise_from_dict(json.loads(data)),
                        modified_at=when,
                    )
                )
            elif kind == "modified":
                events.append(
                    ExerciseModified(exercise_id=exercise_id, modified_at=when, **json.loads(data))
                )
            else:
                logger.warning("ignoring unknown modification type %s", kind)
        return UserWorkout(
            user_workout_id=uw_id,
            user_id=row[1],
            name=row[2],
            base_template_id=row[3],
            source=WorkoutSource(row[4]),
            target_body_parts=_split(row[5]),
            planned_duration_minutes=int(row[6]),
            created_at=_parse_ts(row[7]),
            last_used_at=_parse_ts(row[8]),
            usage_count=int(row[9]),
            notes=row[10],
            exercises=exercises,
            customizations=WorkoutCustomizations(tuple(events)),
        )


class PersonalRecordRepository(BaseRepository):
    """Repository for personal record rows; superseded records stay as history."""

    _COLUMNS = (
        "record_id, user_id, exercise_id, exercise_name, record_type, value, "
        "secondary_value, achieved_at, workout_id, notes"
    )

    def add(self, record: PersonalRecord) -> str:
        if record.value < 0:
            raise ValidationError("record value must be non-negative")
        self.execute(
            f"INSERT INTO personal_records ({self._COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (
                record.record_id,
                record.user_id,
                record.exercise_id,
                record.exercise_name,
                int(record.record_type),
                record.value,
                record.secondary_value,
                _ts(record.achieved_at),
                record.workout_id,
                record.notes,
            ),
        )
        return record.record_id

    def current(
        self, user_id: str, exercise_id: str, record_type: PersonalRecordType
    ) -> PersonalRecord | None:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM personal_records "
            "WHERE user_id = ? AND exercise_id = ? AND record_type = ? "
            "ORDER BY value DESC, achieved_at DESC LIMIT 1;",
            (user_id, exercise_id, int(record_type)),
        )
        return self._from_row(rows[0]) if rows else None

    def best_reps_at_or_below(
        self, user_id: str, exercise_id: str, weight: float
    ) -> PersonalRecord | None:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM personal_records "
            "WHERE user_id = ? AND exercise_id = ? AND record_type = ? AND secondary_value <= ? "
            "ORDER BY value DESC, achieved_at DESC LIMIT 1;",
            (user_id, exercise_id, int(PersonalRecordType.REPS), weight),
        )
        return self._from_row(rows[0]) if rows else None

    def list(self, user_id: str, exercise_id: str | None = None) -> List[PersonalRecord]:
        query = f"SELECT {self._COLUMNS} FROM personal_records WHERE user_id = ?"
        params: list[str] = [user_id]
        if exercise_id is not None:
            query += " AND exercise_id = ?"
            params.append(exercise_id)
        query += " ORDER BY achieved_at DESC, record_id;"
        return [self._from_row(r) for r in self.fetch_all(query, tuple(params))]

    def current_records(self, user_id: str) -> List[PersonalRecord]:
        """The best record per (exercise, kind)."""
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM personal_records WHERE user_id = ? "
            "ORDER BY exercise_id, record_type, value DESC, achieved_at DESC;",
            (user_id,),
        )
        seen: set[tuple[str, int]] = set()
        result = []
        for r in rows:
            key = (r[2], r[4])
            if key in seen:
                continue
            seen.add(key)
            result.append(self._from_row(r))
        return result

    def recent(
        self, user_id: str, since: datetime.datetime, limit: int = 10
    ) -> List[PersonalRecord]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM personal_records "
            "WHERE user_id = ? AND achieved_at >= ? ORDER BY achieved_at DESC, record_id LIMIT ?;",
            (user_id, _ts(since), limit),
        )
        return [self._from_row(r) for r in rows]

    def stats(self, user_id: str, month_start: datetime.datetime) -> dict[str, int]:
        rows = self.fetch_all(
            "SELECT COUNT(*), "
            "COALESCE(SUM(CASE WHEN achieved_at >= ? THEN 1 ELSE 0 END), 0), "
            "COUNT(DISTINCT exercise_id) FROM personal_records WHERE user_id = ?;",
            (_ts(month_start), user_id),
        )
        total, this_month, exercises = rows[0]
        return {
            "total_prs": int(total),
            "prs_this_month": int(this_month),
            "exercises_with_prs": int(exercises),
        }

    def delete(self, record_id: str) -> bool:
        with self._connection() as conn:
            cur = conn.execute("DELETE FROM personal_records WHERE record_id = ?;", (record_id,))
            return cur.rowcount > 0

    @staticmethod
    def _from_row(row: Tuple) -> PersonalRecord:
        return PersonalRecord(
            record_id=row[0],
            user_id=row[1],
            exercise_id=row[2],
            exercise_name=row[3],
            record_type=PersonalRecordType(row[4]),
            value=float(row[5]),
            secondary_value=row[6],
            achieved_at=_parse_ts(row[7]),
            workout_id=row[8],
            notes=row[9],
        )


class ProgressCacheRepository(BaseRepository):
    """Repository caching derived progress snapshots."""

    def load(self, user_id: str, version: int, fingerprint: str) -> dict | None:
        rows = self.fetch_all(
            "SELECT payload FROM progress_cache WHERE user_id = ? AND version = ? AND fingerprint = ?;",
            (user_id, version, fingerprint),
        )
        if not rows:
            return None
        return json.loads(rows[0][0])

    def store(self, user_id: str, version: int, fingerprint: str, payload: dict) -> None:
        self.execute(
            "INSERT INTO progress_cache (user_id, version, fingerprint, payload, computed_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET version=excluded.version, "
            "fingerprint=excluded.fingerprint, payload=excluded.payload, "
            "computed_at=excluded.computed_at;",
            (user_id, version, fingerprint, json.dumps(payload), _ts(self.clock())),
        )

    def clear(self, user_id: str | None = None) -> None:
        if user_id is None:
            self._delete_all("progress_cache")
        else:
            self.execute("DELETE FROM progress_cache WHERE user_id = ?;", (user_id,))


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    def __init__(
        self,
        db_path: str = "ledger.db",
        yaml_path: str | None = "settings.yaml",
        connection: sqlite3.Connection | None = None,
    ) -> None:
        super().__init__(db_path, connection)
        self._yaml = YamlConfig(yaml_path) if yaml_path else None
        self._init_settings()
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _init_settings(self) -> None:
        defaults = SettingsSchema().model_dump()
        with self._connection() as conn:
            for key, value in defaults.items():
                if value is None:
                    continue
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, self._encode(value)),
                )

    @staticmethod
    def _encode(value) -> str:
        if isinstance(value, bool):
            return "1" if value else "0"
        return str(value)

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        return {k: v for k, v in rows}

    def _sync_from_yaml(self) -> None:
        if self._yaml is None:
            return
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                if value is None:
                    continue
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, self._encode(value)),
                )

    def _sync_to_yaml(self) -> None:
        if self._yaml is None:
            return
        self._yaml.save(self.schema().model_dump(exclude_none=True))

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def set_text(self, key: str, value: str) -> None:
        candidate = self._raw_all_settings()
        candidate[key] = value
        validate_settings(candidate)
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def get_float(self, key: str, default: float) -> float:
        try:
            return float(self.get_text(key, str(default)))
        except ValueError:
            return default

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def get_bool(self, key: str, default: bool) -> bool:
        return self.get_text(key, "1" if default else "0") in {
            "1",
            "true",
            "True",
            "1.0",
        }

    def set_bool(self, key: str, value: bool) -> None:
        self.set_text(key, "1" if value else "0")

    def schema(self) -> SettingsSchema:
        """Return all settings parsed and validated."""
        return validate_settings(self._raw_all_settings())

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        return self.schema().model_dump()
