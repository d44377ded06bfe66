"""
Content record storage.

Persists user accounts, generated avatars, likes, comments and referrals.

Every counter change is a single atomic SQL statement executed inside a
``BEGIN IMMEDIATE`` transaction, so concurrent requests never lose updates:

- credits are spent with a decrement-if-positive ``UPDATE``
- likes are keyed by the ``(avatar_id, user_id)`` primary key; the avatar's
  ``likes`` counter and the owner's ``total_likes`` only move when that row
  was actually inserted or deleted, in the same transaction
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import sqlite3
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .models import (
    Artifact,
    ArtifactDraft,
    Comment,
    Referral,
    UserAccount,
    Variation,
)

logger = logging.getLogger(__name__)

_LIKE_CHUNK = 500


class BaseStore:
    """
    Abstract persistence collaborator.

    The generation pipeline, ledger and ranking only talk to this interface.
    """

    # -- users ---------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[UserAccount]:
        raise NotImplementedError

    def create_user(
        self,
        user_id: str,
        *,
        display_name: str = "",
        email: str = "",
        photo_url: Optional[str] = None,
        credits: int = 0,
        role: str = "user",
    ) -> UserAccount:
        """Create the account if missing and return it (idempotent)."""
        raise NotImplementedError

    def update_user_profile(
        self,
        user_id: str,
        *,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> Optional[UserAccount]:
        raise NotImplementedError

    def get_user_by_referral_code(self, code: str) -> Optional[UserAccount]:
        raise NotImplementedError

    def spend_credit(self, user_id: str) -> Optional[int]:
        """Atomically take one credit; return the new balance or None if none left."""
        raise NotImplementedError

    def upgrade_user(self, user_id: str) -> Optional[UserAccount]:
        raise NotImplementedError

    def set_role(self, user_id: str, role: str) -> Optional[UserAccount]:
        raise NotImplementedError

    # -- avatars -------------------------------------------------------------

    def create_artifact(self, draft: ArtifactDraft, *, created_at: Optional[float] = None) -> Artifact:
        raise NotImplementedError

    def delete_artifact(self, avatar_id: str) -> bool:
        raise NotImplementedError

    def get_artifact(self, avatar_id: str) -> Optional[Artifact]:
        raise NotImplementedError

    def update_artifact_flags(
        self,
        avatar_id: str,
        *,
        is_public: Optional[bool] = None,
        is_featured: Optional[bool] = None,
    ) -> Optional[Artifact]:
        raise NotImplementedError

    def list_public(self, limit: Optional[int] = 20) -> List[Artifact]:
        raise NotImplementedError

    def list_featured(self, limit: int = 10) -> List[Artifact]:
        raise NotImplementedError

    def list_by_user(self, user_id: str) -> List[Artifact]:
        raise NotImplementedError

    # -- engagement ------------------------------------------------------------

    def like(self, avatar_id: str, user_id: str) -> Optional[Tuple[bool, Artifact]]:
        """Return ``(changed, avatar)`` or None when the avatar doesn't exist."""
        raise NotImplementedError

    def unlike(self, avatar_id: str, user_id: str) -> Optional[Tuple[bool, Artifact]]:
        raise NotImplementedError

    def share(self, avatar_id: str, user_id: str) -> Optional[Artifact]:
        raise NotImplementedError

    def create_comment(
        self,
        avatar_id: str,
        user_id: str,
        text: str,
        *,
        user_name: str = "Anonymous",
        user_photo: Optional[str] = None,
    ) -> Optional[Comment]:
        raise NotImplementedError

    def list_comments(self, avatar_id: str) -> List[Comment]:
        raise NotImplementedError

    # -- referrals -------------------------------------------------------------

    def create_referral(
        self, referrer_id: str, referred_user_id: str, code: str, credits: int
    ) -> Optional[Referral]:
        """Record a referral and award credits; None if the user was already referred."""
        raise NotImplementedError

    def list_referrals(self, referrer_id: str) -> List[Referral]:
        raise NotImplementedError

    # -- read model ------------------------------------------------------------

    def snapshot(self) -> Tuple[List[UserAccount], List[Artifact]]:
        """All users and avatars read from one consistent snapshot."""
        raise NotImplementedError


class SQLiteStore(BaseStore):
    """
    SQLite-backed store.

    Suitable for single-instance deployments or development.
    Data is persisted to disk and survives restarts.
    """

    def __init__(self, path: str):
        self.path = path
        self._ensure_directory()
        self._init_db()

    def _ensure_directory(self) -> None:
        """Create parent directory if it doesn't exist."""
        dir_path = os.path.dirname(self.path)
        if dir_path and not os.path.exists(dir_path):
            os.makedirs(dir_path, exist_ok=True)

    def _conn(self) -> sqlite3.Connection:
        """Create a new autocommit connection; transactions are explicit."""
        con = sqlite3.connect(
            self.path,
            timeout=30,
            isolation_level=None,
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row
        return con

    @contextmanager
    def _tx(self) -> Iterator[sqlite3.Connection]:
        """Write transaction holding the database write lock from the start."""
        con = self._conn()
        try:
            con.execute("BEGIN IMMEDIATE")
            try:
                yield con
            except BaseException:
                con.execute("ROLLBACK")
                raise
            con.execute("COMMIT")
        finally:
            con.close()

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        """Read transaction: every SELECT inside sees the same snapshot."""
        con = self._conn()
        try:
            con.execute("BEGIN")
            try:
                yield con
            finally:
                con.execute("COMMIT")
        finally:
            con.close()

    def _init_db(self) -> None:
        """Create schema if not exists."""
        con = self._conn()
        try:
            con.execute("PRAGMA journal_mode=WAL")
            con.executescript(
                """
                CREATE TABLE IF NOT EXISTS users(
                    id TEXT PRIMARY KEY,
                    display_name TEXT DEFAULT '',
                    email TEXT DEFAULT '',
                    photo_url TEXT,
                    premium INTEGER NOT NULL DEFAULT 0,
                    credits INTEGER NOT NULL DEFAULT 0 CHECK (credits >= 0),
                    total_likes INTEGER NOT NULL DEFAULT 0,
                    total_shares INTEGER NOT NULL DEFAULT 0,
                    total_avatars INTEGER NOT NULL DEFAULT 0,
                    referral_code TEXT NOT NULL UNIQUE,
                    referred_by TEXT,
                    role TEXT NOT NULL DEFAULT 'user',
                    created_at REAL NOT NULL
                );

                CREATE TABLE IF NOT EXISTS avatars(
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    user_name TEXT DEFAULT '',
                    user_photo TEXT,
                    prompt TEXT NOT NULL,
                    provider TEXT NOT NULL,
                    request_json TEXT DEFAULT '{}',
                    urls_json TEXT NOT NULL,
                    variations_json TEXT DEFAULT '[]',
                    size TEXT DEFAULT '512',
                    is_premium INTEGER NOT NULL DEFAULT 0,
                    is_public INTEGER NOT NULL DEFAULT 1,
                    is_featured INTEGER NOT NULL DEFAULT 0,
                    likes INTEGER NOT NULL DEFAULT 0 CHECK (likes >= 0),
                    shares INTEGER NOT NULL DEFAULT 0 CHECK (shares >= 0),
                    comments INTEGER NOT NULL DEFAULT 0 CHECK (comments >= 0),
                    hashtags_json TEXT DEFAULT '[]',
                    created_at REAL NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(id)
                );
                CREATE INDEX IF NOT EXISTS idx_avatars_user ON avatars(user_id);
                CREATE INDEX IF NOT EXISTS idx_avatars_public ON avatars(is_public, created_at);

                CREATE TABLE IF NOT EXISTS avatar_likes(
                    avatar_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    PRIMARY KEY (avatar_id, user_id)
                );

                CREATE TABLE IF NOT EXISTS comments(
                    id TEXT PRIMARY KEY,
                    avatar_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    user_name TEXT DEFAULT 'Anonymous',
                    user_photo TEXT,
                    text TEXT NOT NULL,
                    created_at REAL NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_comments_avatar ON comments(avatar_id, created_at);

                CREATE TABLE IF NOT EXISTS referrals(
                    id TEXT PRIMARY KEY,
                    referrer_id TEXT NOT NULL,
                    referred_user_id TEXT NOT NULL UNIQUE,
                    code TEXT NOT NULL,
                    credits_awarded INTEGER NOT NULL,
                    created_at REAL NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_referrals_referrer ON referrals(referrer_id);
                """
            )
        finally:
            con.close()

    # =========================================================================
    # Row mapping
    # =========================================================================

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> UserAccount:
        return UserAccount(
            id=row["id"],
            display_name=row["display_name"] or "",
            email=row["email"] or "",
            photo_url=row["photo_url"],
            premium=bool(row["premium"]),
            credits=row["credits"],
            total_likes=row["total_likes"],
            total_shares=row["total_shares"],
            total_avatars=row["total_avatars"],
            referral_code=row["referral_code"],
            referred_by=row["referred_by"],
            role=row["role"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_artifact(row: sqlite3.Row, liked_by: Sequence[str]) -> Artifact:
        return Artifact(
            id=row["id"],
            user_id=row["user_id"],
            user_name=row["user_name"] or "",
            user_photo=row["user_photo"],
            prompt=row["prompt"],
            provider=row["provider"],
            request=json.loads(row["request_json"] or "{}"),
            urls=json.loads(row["urls_json"]),
            variations=[Variation(**v) for v in json.loads(row["variations_json"] or "[]")],
            size=row["size"],
            is_premium=bool(row["is_premium"]),
            is_public=bool(row["is_public"]),
            is_featured=bool(row["is_featured"]),
            likes=row["likes"],
            shares=row["shares"],
            comments=row["comments"],
            liked_by=list(liked_by),
            hashtags=json.loads(row["hashtags_json"] or "[]"),
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_comment(row: sqlite3.Row) -> Comment:
        return Comment(
            id=row["id"],
            avatar_id=row["avatar_id"],
            user_id=row["user_id"],
            user_name=row["user_name"] or "Anonymous",
            user_photo=row["user_photo"],
            text=row["text"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_referral(row: sqlite3.Row) -> Referral:
        return Referral(
            id=row["id"],
            referrer_id=row["referrer_id"],
            referred_user_id=row["referred_user_id"],
            code=row["code"],
            credits_awarded=row["credits_awarded"],
            created_at=row["created_at"],
        )

    def _load_artifacts(self, con: sqlite3.Connection, rows: List[sqlite3.Row]) -> List[Artifact]:
        """Attach the liked-by sets to a batch of avatar rows."""
        ids = [r["id"] for r in rows]
        likes: Dict[str, List[str]] = {i: [] for i in ids}
        for start in range(0, len(ids), _LIKE_CHUNK):
            chunk = ids[start:start + _LIKE_CHUNK]
            marks = ",".join("?" for _ in chunk)
            for lr in con.execute(
                f"SELECT avatar_id, user_id FROM avatar_likes WHERE avatar_id IN ({marks}) "
                "ORDER BY created_at",
                chunk,
            ):
                likes[lr["avatar_id"]].append(lr["user_id"])
        return [self._row_to_artifact(r, likes[r["id"]]) for r in rows]

    def _fetch_artifact(self, con: sqlite3.Connection, avatar_id: str) -> Optional[Artifact]:
        row = con.execute("SELECT * FROM avatars WHERE id = ?", (avatar_id,)).fetchone()
        if not row:
            return None
        return self._load_artifacts(con, [row])[0]

    @staticmethod
    def _fetch_user(con: sqlite3.Connection, user_id: str) -> Optional[sqlite3.Row]:
        return con.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()

    # =========================================================================
    # Users
    # =========================================================================

    def get_user(self, user_id: str) -> Optional[UserAccount]:
        with self._read() as con:
            row = self._fetch_user(con, user_id)
        return self._row_to_user(row) if row else None

    def create_user(
        self,
        user_id: str,
        *,
        display_name: str = "",
        email: str = "",
        photo_url: Optional[str] = None,
        credits: int = 0,
        role: str = "user",
    ) -> UserAccount:
        for _ in range(5):
            try:
                with self._tx() as con:
                    con.execute(
                        """
                        INSERT INTO users(id, display_name, email, photo_url, credits,
                                          referral_code, role, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(id) DO NOTHING
                        """,
                        (
                            user_id,
                            display_name,
                            email,
                            photo_url,
                            max(0, credits),
                            secrets.token_hex(4).upper(),
                            role,
                            time.time(),
                        ),
                    )
                    row = self._fetch_user(con, user_id)
                return self._row_to_user(row)
            except sqlite3.IntegrityError:
                # referral code collision: roll a new one
                continue
        raise RuntimeError("Could not allocate a unique referral code")

    def update_user_profile(
        self,
        user_id: str,
        *,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> Optional[UserAccount]:
        with self._tx() as con:
            if display_name is not None:
                con.execute("UPDATE users SET display_name = ? WHERE id = ?", (display_name, user_id))
            if photo_url is not None:
                con.execute("UPDATE users SET photo_url = ? WHERE id = ?", (photo_url, user_id))
            row = self._fetch_user(con, user_id)
        return self._row_to_user(row) if row else None

    def get_user_by_referral_code(self, code: str) -> Optional[UserAccount]:
        with self._read() as con:
            row = con.execute(
                "SELECT * FROM users WHERE referral_code = ?", (code.strip().upper(),)
            ).fetchone()
        return self._row_to_user(row) if row else None

    def spend_credit(self, user_id: str) -> Optional[int]:
        with self._tx() as con:
            cur = con.execute(
                "UPDATE users SET credits = credits - 1 WHERE id = ? AND credits > 0",
                (user_id,),
            )
            if cur.rowcount != 1:
                return None
            row = con.execute("SELECT credits FROM users WHERE id = ?", (user_id,)).fetchone()
        return row["credits"]

    def upgrade_user(self, user_id: str) -> Optional[UserAccount]:
        with self._tx() as con:
            con.execute("UPDATE users SET premium = 1 WHERE id = ?", (user_id,))
            row = self._fetch_user(con, user_id)
        return self._row_to_user(row) if row else None

    def set_role(self, user_id: str, role: str) -> Optional[UserAccount]:
        with self._tx() as con:
            con.execute("UPDATE users SET role = ? WHERE id = ?", (role, user_id))
            row = self._fetch_user(con, user_id)
        return self._row_to_user(row) if row else None

    # =========================================================================
    # Avatars
    # =========================================================================

    def create_artifact(self, draft: ArtifactDraft, *, created_at: Optional[float] = None) -> Artifact:
        avatar_id = uuid.uuid4().hex
        with self._tx() as con:
            con.execute(
                """
                INSERT INTO avatars(id, user_id, user_name, user_photo, prompt, provider,
                                    request_json, urls_json, variations_json, size,
                                    is_premium, is_public, hashtags_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    avatar_id,
                    draft.user_id,
                    draft.user_name,
                    draft.user_photo,
                    draft.prompt,
                    draft.provider,
                    json.dumps(draft.request),
                    json.dumps(draft.urls),
                    json.dumps([v.model_dump() for v in draft.variations]),
                    draft.size,
                    int(draft.is_premium),
                    int(draft.is_public),
                    json.dumps(draft.hashtags),
                    created_at if created_at is not None else time.time(),
                ),
            )
            con.execute(
                "UPDATE users SET total_avatars = total_avatars + 1 WHERE id = ?",
                (draft.user_id,),
            )
            artifact = self._fetch_artifact(con, avatar_id)
        return artifact

    def delete_artifact(self, avatar_id: str) -> bool:
        with self._tx() as con:
            row = con.execute(
                "SELECT user_id, likes, shares FROM avatars WHERE id = ?", (avatar_id,)
            ).fetchone()
            if not row:
                return False
            con.execute(
                """
                UPDATE users
                SET total_avatars = MAX(total_avatars - 1, 0),
                    total_likes = MAX(total_likes - ?, 0),
                    total_shares = MAX(total_shares - ?, 0)
                WHERE id = ?
                """,
                (row["likes"], row["shares"], row["user_id"]),
            )
            con.execute("DELETE FROM avatar_likes WHERE avatar_id = ?", (avatar_id,))
            con.execute("DELETE FROM comments WHERE avatar_id = ?", (avatar_id,))
            con.execute("DELETE FROM avatars WHERE id = ?", (avatar_id,))
        return True

    def get_artifact(self, avatar_id: str) -> Optional[Artifact]:
        with self._read() as con:
            return self._fetch_artifact(con, avatar_id)

    def update_artifact_flags(
        self,
        avatar_id: str,
        *,
        is_public: Optional[bool] = None,
        is_featured: Optional[bool] = None,
    ) -> Optional[Artifact]:
        with self._tx() as con:
            if is_public is not None:
                con.execute("UPDATE avatars SET is_public = ? WHERE id = ?", (int(is_public), avatar_id))
            if is_featured is not None:
                con.execute("UPDATE avatars SET is_featured = ? WHERE id = ?", (int(is_featured), avatar_id))
            return self._fetch_artifact(con, avatar_id)

    def list_public(self, limit: Optional[int] = 20) -> List[Artifact]:
        sql = "SELECT * FROM avatars WHERE is_public = 1 ORDER BY created_at DESC, id"
        params: Tuple[Any, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        with self._read() as con:
            rows = con.execute(sql, params).fetchall()
            return self._load_artifacts(con, rows)

    def list_featured(self, limit: int = 10) -> List[Artifact]:
        with self._read() as con:
            rows = con.execute(
                "SELECT * FROM avatars WHERE is_featured = 1 AND is_public = 1 "
                "ORDER BY created_at DESC, id LIMIT ?",
                (limit,),
            ).fetchall()
            return self._load_artifacts(con, rows)

    def list_by_user(self, user_id: str) -> List[Artifact]:
        with self._read() as con:
            rows = con.execute(
                "SELECT * FROM avatars WHERE user_id = ? ORDER BY created_at DESC, id",
                (user_id,),
            ).fetchall()
            return self._load_artifacts(con, rows)

    # =========================================================================
    # Engagement
    # =========================================================================

    def like(self, avatar_id: str, user_id: str) -> Optional[Tuple[bool, Artifact]]:
        with self._tx() as con:
            owner = con.execute("SELECT user_id FROM avatars WHERE id = ?", (avatar_id,)).fetchone()
            if not owner:
                return None
            cur = con.execute(
                "INSERT OR IGNORE INTO avatar_likes(avatar_id, user_id, created_at) VALUES (?, ?, ?)",
                (avatar_id, user_id, time.time()),
            )
            changed = cur.rowcount == 1
            if changed:
                con.execute("UPDATE avatars SET likes = likes + 1 WHERE id = ?", (avatar_id,))
                con.execute(
                    "UPDATE users SET total_likes = total_likes + 1 WHERE id = ?",
                    (owner["user_id"],),
                )
            artifact = self._fetch_artifact(con, avatar_id)
        return changed, artifact

    def unlike(self, avatar_id: str, user_id: str) -> Optional[Tuple[bool, Artifact]]:
        with self._tx() as con:
            owner = con.execute("SELECT user_id FROM avatars WHERE id = ?", (avatar_id,)).fetchone()
            if not owner:
                return None
            cur = con.execute(
                "DELETE FROM avatar_likes WHERE avatar_id = ? AND user_id = ?",
                (avatar_id, user_id),
            )
            changed = cur.rowcount == 1
            if changed:
                con.execute("UPDATE avatars SET likes = likes - 1 WHERE id = ?", (avatar_id,))
                con.execute(
                    "UPDATE users SET total_likes = MAX(total_likes - 1, 0) WHERE id = ?",
                    (owner["user_id"],),
                )
            artifact = self._fetch_artifact(con, avatar_id)
        return changed, artifact

    def share(self, avatar_id: str, user_id: str) -> Optional[Artifact]:
        with self._tx() as con:
            owner = con.execute("SELECT user_id FROM avatars WHERE id = ?", (avatar_id,)).fetchone()
            if not owner:
                return None
            con.execute("UPDATE avatars SET shares = shares + 1 WHERE id = ?", (avatar_id,))
            con.execute(
                "UPDATE users SET total_shares = total_shares + 1 WHERE id = ?",
                (owner["user_id"],),
            )
            artifact = self._fetch_artifact(con, avatar_id)
        logger.debug("share avatar=%s by=%s", avatar_id, user_id)
        return artifact

    def create_comment(
        self,
        avatar_id: str,
        user_id: str,
        text: str,
        *,
        user_name: str = "Anonymous",
        user_photo: Optional[str] = None,
    ) -> Optional[Comment]:
        comment_id = uuid.uuid4().hex
        with self._tx() as con:
            cur = con.execute("UPDATE avatars SET comments = comments + 1 WHERE id = ?", (avatar_id,))
            if cur.rowcount != 1:
                return None
            con.execute(
                """
                INSERT INTO comments(id, avatar_id, user_id, user_name, user_photo, text, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (comment_id, avatar_id, user_id, user_name, user_photo, text, time.time()),
            )
            row = con.execute("SELECT * FROM comments WHERE id = ?", (comment_id,)).fetchone()
        return self._row_to_comment(row)

    def list_comments(self, avatar_id: str) -> List[Comment]:
        with self._read() as con:
            rows = con.execute(
                "SELECT * FROM comments WHERE avatar_id = ? ORDER BY created_at, id",
                (avatar_id,),
            ).fetchall()
        return [self._row_to_comment(r) for r in rows]

    # =========================================================================
    # Referrals
    # =========================================================================

    def create_referral(
        self, referrer_id: str, referred_user_id: str, code: str, credits: int
    ) -> Optional[Referral]:
        referral_id = uuid.uuid4().hex
        with self._tx() as con:
            cur = con.execute(
                """
                INSERT OR IGNORE INTO referrals(id, referrer_id, referred_user_id, code,
                                                credits_awarded, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (referral_id, referrer_id, referred_user_id, code, credits, time.time()),
            )
            if cur.rowcount != 1:
                return None
            con.execute(
                "UPDATE users SET referred_by = ? WHERE id = ?", (referrer_id, referred_user_id)
            )
            con.execute(
                "UPDATE users SET credits = credits + ? WHERE id = ?", (credits, referrer_id)
            )
            row = con.execute("SELECT * FROM referrals WHERE id = ?", (referral_id,)).fetchone()
        return self._row_to_referral(row)

    def list_referrals(self, referrer_id: str) -> List[Referral]:
        with self._read() as con:
            rows = con.execute(
                "SELECT * FROM referrals WHERE referrer_id = ? ORDER BY created_at, id",
                (referrer_id,),
            ).fetchall()
        return [self._row_to_referral(r) for r in rows]

    # =========================================================================
    # Read model
    # =========================================================================

    def snapshot(self) -> Tuple[List[UserAccount], List[Artifact]]:
        with self._read() as con:
            users = [
                self._row_to_user(r)
                for r in con.execute("SELECT * FROM users ORDER BY created_at, id").fetchall()
            ]
            rows = con.execute("SELECT * FROM avatars ORDER BY created_at, id").fetchall()
            artifacts = self._load_artifacts(con, rows)
        return users, artifacts
