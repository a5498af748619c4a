"""SQLite-backed durable store for feeds, cycles and pipeline rows.

Every core table carries a cycle foreign key. Each public method runs in its
own transaction, so a failure leaves the table it was writing unchanged.
"""

import json
import logging
import re
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from newsdesk.core.errors import MissingTableError, StoreError
from newsdesk.models.content import (
    Article,
    ArchiveResult,
    ArchivedArticle,
    Criterion,
    CriterionScore,
    Cycle,
    CycleStatus,
    DuplicateGroup,
    Feed,
    Rating,
    SourceItem,
)

logger = logging.getLogger(__name__)

MAX_CRITERIA = 5

SCHEMA = """
CREATE TABLE IF NOT EXISTS feeds (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    url TEXT UNIQUE NOT NULL,
    active INTEGER NOT NULL DEFAULT 1,
    last_processed TIMESTAMP,
    processing_errors INTEGER NOT NULL DEFAULT 0,
    last_error TEXT
);

CREATE TABLE IF NOT EXISTS cycles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    date TEXT UNIQUE NOT NULL,
    status TEXT NOT NULL DEFAULT 'processing',
    subject_line TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS source_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    feed_id INTEGER NOT NULL REFERENCES feeds(id),
    cycle_id INTEGER NOT NULL REFERENCES cycles(id),
    external_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL DEFAULT '',
    full_text TEXT,
    author TEXT,
    published_at TIMESTAMP,
    source_url TEXT,
    image_url TEXT,
    processed_at TIMESTAMP NOT NULL,
    UNIQUE (feed_id, external_id)
);

CREATE TABLE IF NOT EXISTS ratings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id INTEGER UNIQUE NOT NULL REFERENCES source_items(id),
    cycle_id INTEGER NOT NULL REFERENCES cycles(id),
    {rating_columns},
    total_score REAL NOT NULL,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id INTEGER NOT NULL REFERENCES source_items(id),
    cycle_id INTEGER NOT NULL REFERENCES cycles(id),
    headline TEXT NOT NULL,
    body TEXT NOT NULL,
    word_count INTEGER NOT NULL DEFAULT 0,
    fact_check_score REAL,
    fact_check_passed INTEGER NOT NULL DEFAULT 0,
    fact_check_details TEXT,
    rank INTEGER,
    active INTEGER NOT NULL DEFAULT 0,
    review_position INTEGER,
    final_position INTEGER,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL,
    UNIQUE (item_id, cycle_id)
);

CREATE TABLE IF NOT EXISTS duplicate_groups (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    cycle_id INTEGER NOT NULL REFERENCES cycles(id),
    primary_item_id INTEGER NOT NULL REFERENCES source_items(id),
    topic_signature TEXT NOT NULL DEFAULT '',
    explanation TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS duplicate_members (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    group_id INTEGER NOT NULL REFERENCES duplicate_groups(id),
    cycle_id INTEGER NOT NULL REFERENCES cycles(id),
    item_id INTEGER NOT NULL REFERENCES source_items(id)
);

CREATE TABLE IF NOT EXISTS archived_articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    original_article_id INTEGER NOT NULL,
    item_id INTEGER NOT NULL,
    cycle_id INTEGER NOT NULL,
    headline TEXT NOT NULL,
    body TEXT NOT NULL,
    word_count INTEGER NOT NULL DEFAULT 0,
    fact_check_score REAL,
    fact_check_details TEXT,
    rank INTEGER,
    active INTEGER NOT NULL DEFAULT 0,
    review_position INTEGER,
    final_position INTEGER,
    archive_reason TEXT NOT NULL,
    cycle_date TEXT,
    cycle_status TEXT,
    original_created_at TIMESTAMP,
    original_updated_at TIMESTAMP,
    archived_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS archived_source_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    original_item_id INTEGER NOT NULL,
    feed_id INTEGER NOT NULL,
    cycle_id INTEGER NOT NULL,
    external_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    content TEXT,
    author TEXT,
    published_at TIMESTAMP,
    source_url TEXT,
    image_url TEXT,
    archive_reason TEXT NOT NULL,
    original_processed_at TIMESTAMP,
    archived_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS archived_ratings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    archived_item_id INTEGER NOT NULL REFERENCES archived_source_items(id),
    original_item_id INTEGER NOT NULL,
    cycle_id INTEGER NOT NULL,
    {rating_columns},
    total_score REAL NOT NULL,
    archive_reason TEXT NOT NULL,
    original_created_at TIMESTAMP,
    archived_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS criteria (
    number INTEGER PRIMARY KEY CHECK (number BETWEEN 1 AND 5),
    name TEXT NOT NULL,
    weight REAL NOT NULL DEFAULT 1.0,
    prompt TEXT,
    enabled INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_items_cycle ON source_items(cycle_id);
CREATE INDEX IF NOT EXISTS idx_articles_cycle ON articles(cycle_id);
CREATE INDEX IF NOT EXISTS idx_archived_articles_cycle ON archived_articles(cycle_id);
CREATE INDEX IF NOT EXISTS idx_archived_items_cycle ON archived_source_items(cycle_id);
"""

RATING_COLUMNS = [
    f"criteria_{n}_{field}" for n in range(1, MAX_CRITERIA + 1)
    for field in ("score", "reason", "weight")
]

MISSING_TABLE = re.compile(r"no such table: (\w+)")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class Store:
    """Relational store used by every pipeline stage."""

    def __init__(self, db_path: str):
        """Initialize the store.

        Args:
            db_path: SQLite database file, created on first use
        """
        self.db_path = Path(db_path)
        if self.db_path.parent and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection and run the block in one transaction."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            with conn:
                yield conn
        except sqlite3.OperationalError as e:
            match = MISSING_TABLE.search(str(e))
            if match:
                raise MissingTableError(str(e), table=match.group(1)) from e
            raise StoreError(str(e)) from e
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def init_schema(self) -> None:
        """Create all tables and indexes if they do not exist."""
        rating_columns = ",\n    ".join(
            f"{col} {'TEXT' if col.endswith('reason') else 'REAL'}"
            for col in RATING_COLUMNS
        )
        with self.connect() as conn:
            conn.executescript(SCHEMA.replace("{rating_columns}", rating_columns))
        logger.debug(f"Schema ready at {self.db_path}")

    # Feeds

    def _feed(self, row: sqlite3.Row) -> Feed:
        return Feed(
            id=row["id"],
            name=row["name"],
            url=row["url"],
            active=bool(row["active"]),
            last_processed=_parse_ts(row["last_processed"]),
            processing_errors=row["processing_errors"],
            last_error=row["last_error"],
        )

    def add_feed(self, url: str, name: Optional[str] = None) -> Feed:
        """Register a feed, returning the existing row if the URL is known."""
        with self.connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO feeds (name, url) VALUES (?, ?)",
                (name or url, url),
            )
            row = conn.execute("SELECT * FROM feeds WHERE url = ?", (url,)).fetchone()
        return self._feed(row)

    def list_feeds(self) -> List[Feed]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM feeds ORDER BY id").fetchall()
        return [self._feed(r) for r in rows]

    def get_active_feeds(self) -> List[Feed]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM feeds WHERE active = 1 ORDER BY id"
            ).fetchall()
        return [self._feed(r) for r in rows]

    def set_feed_active(self, feed_id: int, active: bool) -> None:
        with self.connect() as conn:
            conn.execute(
                "UPDATE feeds SET active = ? WHERE id = ?", (int(active), feed_id)
            )

    def mark_feed_success(self, feed_id: int, when: Optional[datetime] = None) -> None:
        with self.connect() as conn:
            conn.execute(
                """UPDATE feeds SET last_processed = ?, processing_errors = 0,
                   last_error = NULL WHERE id = ?""",
                (_ts(when or _now()), feed_id),
            )

    def mark_feed_failure(self, feed_id: int, error: str) -> None:
        with self.connect() as conn:
            conn.execute(
                """UPDATE feeds SET processing_errors = processing_errors + 1,
                   last_error = ? WHERE id = ?""",
                (error[:1000], feed_id),
            )

    # Cycles

    def _cycle(self, row: sqlite3.Row) -> Cycle:
        return Cycle(
            id=row["id"],
            date=date.fromisoformat(row["date"]),
            status=CycleStatus(row["status"]),
            subject_line=row["subject_line"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def get_or_create_cycle(self, cycle_date: date) -> Cycle:
        """Look up the cycle for a date, creating it in ``processing`` if absent."""
        now = _ts(_now())
        with self.connect() as conn:
            conn.execute(
                """INSERT OR IGNORE INTO cycles (date, status, created_at, updated_at)
                   VALUES (?, ?, ?, ?)""",
                (cycle_date.isoformat(), CycleStatus.PROCESSING.value, now, now),
            )
            row = conn.execute(
                "SELECT * FROM cycles WHERE date = ?", (cycle_date.isoformat(),)
            ).fetchone()
        return self._cycle(row)

    def get_cycle(self, cycle_id: int) -> Optional[Cycle]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM cycles WHERE id = ?", (cycle_id,)).fetchone()
        return self._cycle(row) if row else None

    def set_cycle_status(self, cycle_id: int, status: CycleStatus) -> None:
        with self.connect() as conn:
            conn.execute(
                "UPDATE cycles SET status = ?, updated_at = ? WHERE id = ?",
                (CycleStatus(status).value, _ts(_now()), cycle_id),
            )

    def set_subject_line(self, cycle_id: int, subject_line: str) -> None:
        with self.connect() as conn:
            conn.execute(
                "UPDATE cycles SET subject_line = ?, updated_at = ? WHERE id = ?",
                (subject_line, _ts(_now()), cycle_id),
            )

    # Source items

    def _item(self, row: sqlite3.Row) -> SourceItem:
        return SourceItem(
            id=row["id"],
            feed_id=row["feed_id"],
            cycle_id=row["cycle_id"],
            external_id=row["external_id"],
            title=row["title"],
            description=row["description"] or "",
            content=row["content"] or "",
            full_text=row["full_text"],
            author=row["author"],
            published_at=_parse_ts(row["published_at"]),
            source_url=row["source_url"],
            image_url=row["image_url"],
            processed_at=_parse_ts(row["processed_at"]),
        )

    def item_exists(self, feed_id: int, external_id: str) -> bool:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM source_items WHERE feed_id = ? AND external_id = ?",
                (feed_id, external_id),
            ).fetchone()
        return row is not None

    def insert_item(self, item: SourceItem) -> Optional[SourceItem]:
        """Insert an item; returns None if ``(feed_id, external_id)`` exists."""
        processed_at = item.processed_at or _now()
        with self.connect() as conn:
            cursor = conn.execute(
                """INSERT OR IGNORE INTO source_items
                   (feed_id, cycle_id, external_id, title, description, content,
                    full_text, author, published_at, source_url, image_url, processed_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    item.feed_id,
                    item.cycle_id,
                    item.external_id,
                    item.title,
                    item.description,
                    item.content,
                    item.full_text,
                    item.author,
                    _ts(item.published_at),
                    item.source_url,
                    item.image_url,
                    _ts(processed_at),
                ),
            )
            if cursor.rowcount == 0:
                return None
            item_id = cursor.lastrowid
        return item.model_copy(update={"id": item_id, "processed_at": processed_at})

    def get_items(self, cycle_id: int) -> List[SourceItem]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM source_items WHERE cycle_id = ? ORDER BY id", (cycle_id,)
            ).fetchall()
        return [self._item(r) for r in rows]

    def count_items(self, cycle_id: int) -> int:
        with self.connect() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM source_items WHERE cycle_id = ?", (cycle_id,)
            ).fetchone()[0]

    # Ratings

    def _rating(self, row: sqlite3.Row) -> Rating:
        scores = []
        for n in range(1, MAX_CRITERIA + 1):
            score = row[f"criteria_{n}_score"]
            if score is None:
                continue
            scores.append(
                CriterionScore(
                    number=n,
                    score=score,
                    reason=row[f"criteria_{n}_reason"] or "",
                    weight=row[f"criteria_{n}_weight"],
                )
            )
        return Rating(
            id=row["id"],
            item_id=row["item_id"],
            scores=scores,
            total_score=row["total_score"],
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _rating_values(rating: Rating) -> Dict[str, object]:
        values: Dict[str, object] = {col: None for col in RATING_COLUMNS}
        for s in rating.scores:
            values[f"criteria_{s.number}_score"] = s.score
            values[f"criteria_{s.number}_reason"] = s.reason
            values[f"criteria_{s.number}_weight"] = s.weight
        return values

    def save_rating(self, rating: Rating, cycle_id: int) -> Rating:
        values = self._rating_values(rating)
        created_at = rating.created_at or _now()
        columns = ["item_id", "cycle_id", *RATING_COLUMNS, "total_score", "created_at"]
        params = [
            rating.item_id,
            cycle_id,
            *values.values(),
            rating.total_score,
            _ts(created_at),
        ]
        with self.connect() as conn:
            cursor = conn.execute(
                f"INSERT INTO ratings ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                params,
            )
            rating_id = cursor.lastrowid
        return rating.model_copy(update={"id": rating_id, "created_at": created_at})

    def get_ratings(self, cycle_id: int) -> Dict[int, Rating]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM ratings WHERE cycle_id = ?", (cycle_id,)
            ).fetchall()
        return {row["item_id"]: self._rating(row) for row in rows}

    # Articles

    def _article(self, row: sqlite3.Row) -> Article:
        return Article(
            id=row["id"],
            item_id=row["item_id"],
            cycle_id=row["cycle_id"],
            headline=row["headline"],
            body=row["body"],
            word_count=row["word_count"],
            fact_check_score=row["fact_check_score"] or 0.0,
            fact_check_passed=bool(row["fact_check_passed"]),
            fact_check_details=row["fact_check_details"],
            rank=row["rank"],
            active=bool(row["active"]),
            review_position=row["review_position"],
            final_position=row["final_position"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def get_article(self, item_id: int, cycle_id: int) -> Optional[Article]:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM articles WHERE item_id = ? AND cycle_id = ?",
                (item_id, cycle_id),
            ).fetchone()
        return self._article(row) if row else None

    def insert_article(self, article: Article) -> Article:
        now = _now()
        with self.connect() as conn:
            cursor = conn.execute(
                """INSERT INTO articles
                   (item_id, cycle_id, headline, body, word_count, fact_check_score,
                    fact_check_passed, fact_check_details, rank, active,
                    review_position, final_position, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    article.item_id,
                    article.cycle_id,
                    article.headline,
                    article.body,
                    article.word_count,
                    article.fact_check_score,
                    int(article.fact_check_passed),
                    article.fact_check_details,
                    article.rank,
                    int(article.active),
                    article.review_position,
                    article.final_position,
                    _ts(now),
                    _ts(now),
                ),
            )
            article_id = cursor.lastrowid
        return article.model_copy(
            update={"id": article_id, "created_at": now, "updated_at": now}
        )

    def get_articles(self, cycle_id: int) -> List[Article]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM articles WHERE cycle_id = ? ORDER BY id", (cycle_id,)
            ).fetchall()
        return [self._article(r) for r in rows]

    def count_articles(self, cycle_id: int) -> int:
        with self.connect() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM articles WHERE cycle_id = ?", (cycle_id,)
            ).fetchone()[0]

    def apply_selection(self, cycle_id: int, ranks: Dict[int, int]) -> None:
        """Activate ``{article_id: rank}`` and deactivate every other article."""
        now = _ts(_now())
        with self.connect() as conn:
            conn.execute(
                """UPDATE articles SET active = 0, rank = NULL, updated_at = ?
                   WHERE cycle_id = ?""",
                (now, cycle_id),
            )
            conn.executemany(
                """UPDATE articles SET active = 1, rank = ?, updated_at = ?
                   WHERE id = ? AND cycle_id = ?""",
                [(rank, now, article_id, cycle_id) for article_id, rank in ranks.items()],
            )

    def set_article_positions(
        self,
        article_id: int,
        review_position: Optional[int] = None,
        final_position: Optional[int] = None,
    ) -> None:
        """Record editor-assigned positions on an article."""
        with self.connect() as conn:
            conn.execute(
                """UPDATE articles SET review_position = ?, final_position = ?,
                   updated_at = ? WHERE id = ?""",
                (review_position, final_position, _ts(_now()), article_id),
            )

    # Duplicate groups

    def get_duplicate_groups(self, cycle_id: int) -> List[DuplicateGroup]:
        with self.connect() as conn:
            groups = conn.execute(
                "SELECT * FROM duplicate_groups WHERE cycle_id = ? ORDER BY id",
                (cycle_id,),
            ).fetchall()
            members = conn.execute(
                "SELECT group_id, item_id FROM duplicate_members WHERE cycle_id = ?",
                (cycle_id,),
            ).fetchall()

        by_group: Dict[int, List[int]] = {}
        for m in members:
            by_group.setdefault(m["group_id"], []).append(m["item_id"])

        return [
            DuplicateGroup(
                id=g["id"],
                cycle_id=g["cycle_id"],
                primary_item_id=g["primary_item_id"],
                topic_signature=g["topic_signature"],
                explanation=g["explanation"],
                member_item_ids=by_group.get(g["id"], []),
            )
            for g in groups
        ]

    def save_duplicate_groups(
        self, cycle_id: int, groups: List[DuplicateGroup]
    ) -> List[DuplicateGroup]:
        saved = []
        now = _ts(_now())
        with self.connect() as conn:
            for group in groups:
                cursor = conn.execute(
                    """INSERT INTO duplicate_groups
                       (cycle_id, primary_item_id, topic_signature, explanation, created_at)
                       VALUES (?, ?, ?, ?, ?)""",
                    (
                        cycle_id,
                        group.primary_item_id,
                        group.topic_signature,
                        group.explanation,
                        now,
                    ),
                )
                group_id = cursor.lastrowid
                conn.executemany(
                    """INSERT INTO duplicate_members (group_id, cycle_id, item_id)
                       VALUES (?, ?, ?)""",
                    [(group_id, cycle_id, item_id) for item_id in group.member_item_ids],
                )
                saved.append(group.model_copy(update={"id": group_id}))
        return saved

    # Clearing

    def clear_cycle(self, cycle_id: int) -> None:
        """Delete a cycle's live rows and its subject line. Callers archive first."""
        with self.connect() as conn:
            conn.execute(
                "UPDATE cycles SET subject_line = NULL, updated_at = ? WHERE id = ?",
                (_ts(_now()), cycle_id),
            )
            conn.execute("DELETE FROM duplicate_members WHERE cycle_id = ?", (cycle_id,))
            conn.execute("DELETE FROM duplicate_groups WHERE cycle_id = ?", (cycle_id,))
            conn.execute("DELETE FROM articles WHERE cycle_id = ?", (cycle_id,))
            conn.execute("DELETE FROM ratings WHERE cycle_id = ?", (cycle_id,))
            conn.execute("DELETE FROM source_items WHERE cycle_id = ?", (cycle_id,))
        logger.info(f"🧹 Cleared live rows for cycle {cycle_id}")

    # Archive

    def archive_cycle(
        self, cycle: Cycle, reason: str, archived_at: datetime
    ) -> ArchiveResult:
        """Copy a cycle's articles, items and ratings in one transaction.

        A missing ``archived_ratings`` table rolls back only the ratings copy
        and sets ``ratings_skipped``. Any other failure rolls back everything.
        """
        result = ArchiveResult(cycle_id=cycle.id)
        with self.connect() as conn:
            result.articles = self._archive_articles(conn, cycle, reason, archived_at)
            item_map = self._archive_items(conn, cycle.id, reason, archived_at)
            result.items = len(item_map)

            conn.execute("SAVEPOINT archive_ratings")
            try:
                result.ratings = self._archive_ratings(
                    conn, cycle.id, item_map, reason, archived_at
                )
            except sqlite3.OperationalError as e:
                conn.execute("ROLLBACK TO SAVEPOINT archive_ratings")
                conn.execute("RELEASE SAVEPOINT archive_ratings")
                if not MISSING_TABLE.search(str(e)):
                    raise
                result.ratings_skipped = True
            else:
                conn.execute("RELEASE SAVEPOINT archive_ratings")
        return result

    def _archive_articles(
        self, conn: sqlite3.Connection, cycle: Cycle, reason: str, archived_at: datetime
    ) -> int:
        cursor = conn.execute(
            """INSERT INTO archived_articles
               (original_article_id, item_id, cycle_id, headline, body, word_count,
                fact_check_score, fact_check_details, rank, active,
                review_position, final_position, archive_reason, cycle_date,
                cycle_status, original_created_at, original_updated_at, archived_at)
               SELECT id, item_id, cycle_id, headline, body, word_count,
                fact_check_score, fact_check_details, rank, active,
                review_position, final_position, ?, ?, ?, created_at, updated_at, ?
               FROM articles WHERE cycle_id = ? ORDER BY id""",
            (
                reason,
                cycle.date.isoformat(),
                CycleStatus(cycle.status).value,
                _ts(archived_at),
                cycle.id,
            ),
        )
        return cursor.rowcount

    def _archive_items(
        self, conn: sqlite3.Connection, cycle_id: int, reason: str, archived_at: datetime
    ) -> Dict[int, int]:
        """Archive a cycle's items; returns ``{original_item_id: archived_id}``."""
        mapping: Dict[int, int] = {}
        rows = conn.execute(
            "SELECT * FROM source_items WHERE cycle_id = ? ORDER BY id", (cycle_id,)
        ).fetchall()
        for row in rows:
            cursor = conn.execute(
                """INSERT INTO archived_source_items
                   (original_item_id, feed_id, cycle_id, external_id, title,
                    description, content, author, published_at, source_url,
                    image_url, archive_reason, original_processed_at, archived_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    row["id"],
                    row["feed_id"],
                    row["cycle_id"],
                    row["external_id"],
                    row["title"],
                    row["description"],
                    row["content"],
                    row["author"],
                    row["published_at"],
                    row["source_url"],
                    row["image_url"],
                    reason,
                    row["processed_at"],
                    _ts(archived_at),
                ),
            )
            mapping[row["id"]] = cursor.lastrowid
        return mapping

    def _archive_ratings(
        self,
        conn: sqlite3.Connection,
        cycle_id: int,
        item_map: Dict[int, int],
        reason: str,
        archived_at: datetime,
    ) -> int:
        if not item_map:
            return 0
        columns = [
            "archived_item_id",
            "original_item_id",
            "cycle_id",
            *RATING_COLUMNS,
            "total_score",
            "archive_reason",
            "original_created_at",
            "archived_at",
        ]
        insert = (
            f"INSERT INTO archived_ratings ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        count = 0
        rows = conn.execute(
            "SELECT * FROM ratings WHERE cycle_id = ?", (cycle_id,)
        ).fetchall()
        for row in rows:
            archived_item_id = item_map.get(row["item_id"])
            if archived_item_id is None:
                continue
            conn.execute(
                insert,
                [
                    archived_item_id,
                    row["item_id"],
                    cycle_id,
                    *(row[col] for col in RATING_COLUMNS),
                    row["total_score"],
                    reason,
                    row["created_at"],
                    _ts(archived_at),
                ],
            )
            count += 1
        return count

    def _archived_article(self, row: sqlite3.Row) -> ArchivedArticle:
        return ArchivedArticle(
            id=row["id"],
            original_article_id=row["original_article_id"],
            item_id=row["item_id"],
            cycle_id=row["cycle_id"],
            headline=row["headline"],
            body=row["body"],
            word_count=row["word_count"],
            fact_check_score=row["fact_check_score"],
            fact_check_details=row["fact_check_details"],
            rank=row["rank"],
            active=bool(row["active"]),
            review_position=row["review_position"],
            final_position=row["final_position"],
            archive_reason=row["archive_reason"],
            cycle_date=date.fromisoformat(row["cycle_date"]) if row["cycle_date"] else None,
            cycle_status=row["cycle_status"],
            original_created_at=_parse_ts(row["original_created_at"]),
            original_updated_at=_parse_ts(row["original_updated_at"]),
            archived_at=_parse_ts(row["archived_at"]),
        )

    def get_archived_articles(self, cycle_id: int) -> List[ArchivedArticle]:
        with self.connect() as conn:
            rows = conn.execute(
                """SELECT * FROM archived_articles WHERE cycle_id = ?
                   ORDER BY archived_at DESC, rank IS NULL, rank, id""",
                (cycle_id,),
            ).fetchall()
        return [self._archived_article(r) for r in rows]

    def get_archived_articles_between(self, start: date, end: date) -> List[ArchivedArticle]:
        with self.connect() as conn:
            rows = conn.execute(
                """SELECT * FROM archived_articles WHERE cycle_date BETWEEN ? AND ?
                   ORDER BY cycle_date DESC, rank IS NULL, rank, id""",
                (start.isoformat(), end.isoformat()),
            ).fetchall()
        return [self._archived_article(r) for r in rows]

    def count_archived(self, cycle_id: int) -> Dict[str, int]:
        """Archived row counts for one cycle, by table."""
        counts = {}
        with self.connect() as conn:
            for key, table in (
                ("articles", "archived_articles"),
                ("items", "archived_source_items"),
                ("ratings", "archived_ratings"),
            ):
                try:
                    counts[key] = conn.execute(
                        f"SELECT COUNT(*) FROM {table} WHERE cycle_id = ?", (cycle_id,)
                    ).fetchone()[0]
                except sqlite3.OperationalError:
                    counts[key] = 0
        return counts

    def archive_stats(self) -> Dict[str, object]:
        with self.connect() as conn:
            totals = conn.execute(
                """SELECT COUNT(*) AS articles,
                          COUNT(DISTINCT cycle_id) AS cycles,
                          MIN(archived_at) AS oldest,
                          MAX(archived_at) AS newest
                   FROM archived_articles"""
            ).fetchone()
            items = conn.execute("SELECT COUNT(*) FROM archived_source_items").fetchone()[0]
            reasons = conn.execute(
                """SELECT archive_reason, COUNT(*) AS n FROM archived_articles
                   GROUP BY archive_reason ORDER BY n DESC"""
            ).fetchall()
        return {
            "total_articles": totals["articles"],
            "total_items": items,
            "cycles": totals["cycles"],
            "oldest": totals["oldest"],
            "newest": totals["newest"],
            "by_reason": {r["archive_reason"]: r["n"] for r in reasons},
        }

    # Configuration

    def get_criteria(self) -> List[Criterion]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM criteria ORDER BY number").fetchall()
        return [
            Criterion(
                number=r["number"],
                name=r["name"],
                weight=r["weight"],
                prompt=r["prompt"],
                enabled=bool(r["enabled"]),
            )
            for r in rows
        ]

    def save_criterion(self, criterion: Criterion) -> None:
        with self.connect() as conn:
            conn.execute(
                """INSERT INTO criteria (number, name, weight, prompt, enabled)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(number) DO UPDATE SET name = excluded.name,
                   weight = excluded.weight, prompt = excluded.prompt,
                   enabled = excluded.enabled""",
                (
                    criterion.number,
                    criterion.name,
                    criterion.weight,
                    criterion.prompt,
                    int(criterion.enabled),
                ),
            )

    def get_setting(self, key: str) -> Optional[str]:
        with self.connect() as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_setting(self, key: str, value: object) -> None:
        stored = value if isinstance(value, str) else json.dumps(value)
        with self.connect() as conn:
            conn.execute(
                """INSERT INTO settings (key, value) VALUES (?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value""",
                (key, stored),
            )
