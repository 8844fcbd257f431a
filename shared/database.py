"""
SQLite store for track and album rows.
Backs the library view, the upload flow and the duration correction sweep.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import List, Dict, Any, Optional, Iterator

from shared.models import Track, Album, TrackStatus
from shared.constants import DEFAULT_DATA_DIR, DATABASE_FILENAME

TRACK_COLUMNS = (
    "id", "title", "artist", "album", "album_id", "genre", "year", "duration",
    "audio_url", "image_url", "lyrics", "plays", "favorites", "downloads",
    "is_public", "status", "track_number", "uploader_id", "file_size", "created_at",
)


class TrackStore:
    def __init__(self, db_path: Optional[str] = None):
        if db_path is None:
            db_dir = Path(DEFAULT_DATA_DIR).expanduser()
            db_dir.mkdir(parents=True, exist_ok=True)
            self.db_path = db_dir / DATABASE_FILENAME
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        """Create tables and add any columns missing from older databases."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tracks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    artist TEXT,
                    album TEXT,
                    album_id TEXT,
                    genre TEXT,
                    year INTEGER,
                    duration INTEGER NOT NULL,
                    audio_url TEXT,
                    image_url TEXT,
                    lyrics TEXT,
                    plays INTEGER DEFAULT 0,
                    favorites INTEGER DEFAULT 0,
                    downloads INTEGER DEFAULT 0,
                    is_public BOOLEAN DEFAULT 1,
                    status TEXT DEFAULT 'active',
                    track_number INTEGER,
                    uploader_id TEXT,
                    file_size INTEGER DEFAULT 0,
                    created_at TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS albums (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    owner_id TEXT
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tracks_duration ON tracks(duration)")

            # Schema migrations
            cursor = conn.execute("PRAGMA table_info(tracks)")
            columns = [row[1] for row in cursor.fetchall()]
            if 'file_size' not in columns:
                conn.execute("ALTER TABLE tracks ADD COLUMN file_size INTEGER DEFAULT 0")
            if 'lyrics' not in columns:
                conn.execute("ALTER TABLE tracks ADD COLUMN lyrics TEXT")

    def insert_track(self, track: Track) -> Track:
        data = self._track_to_row(track)
        placeholders = ', '.join(['?'] * len(TRACK_COLUMNS))
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO tracks ({', '.join(TRACK_COLUMNS)}) VALUES ({placeholders})",
                [data[c] for c in TRACK_COLUMNS]
            )
        return track

    def get_track(self, track_id: str) -> Optional[Track]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tracks WHERE id = ?", (track_id,)).fetchone()
            return self._row_to_track(row) if row else None

    def list_tracks(self, uploader_id: Optional[str] = None,
                    status: Optional[TrackStatus] = None) -> List[Track]:
        """Tracks ordered newest first, optionally scoped to one uploader/status."""
        query = "SELECT * FROM tracks"
        clauses, params = [], []
        if uploader_id is not None:
            clauses.append("uploader_id = ?")
            params.append(uploader_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC"

        with self._connect() as conn:
            return [self._row_to_track(row) for row in conn.execute(query, params).fetchall()]

    def search_tracks(self, query: str, uploader_id: Optional[str] = None) -> List[Track]:
        """Case-insensitive match on title, artist or album, newest first."""
        pattern = f"%{query.lower()}%"
        sql = """
            SELECT * FROM tracks
            WHERE (LOWER(title) LIKE ? OR LOWER(COALESCE(artist, '')) LIKE ?
                   OR LOWER(COALESCE(album, '')) LIKE ?)
        """
        params: List[Any] = [pattern, pattern, pattern]
        if uploader_id is not None:
            sql += " AND uploader_id = ?"
            params.append(uploader_id)
        sql += " ORDER BY created_at DESC"
        with self._connect() as conn:
            return [self._row_to_track(row) for row in conn.execute(sql, params).fetchall()]

    def find_by_duration(self, seconds: int, uploader_id: Optional[str] = None) -> List[Track]:
        query = "SELECT * FROM tracks WHERE duration = ?"
        params: List[Any] = [seconds]
        if uploader_id is not None:
            query += " AND uploader_id = ?"
            params.append(uploader_id)
        query += " ORDER BY created_at DESC"
        with self._connect() as conn:
            return [self._row_to_track(row) for row in conn.execute(query, params).fetchall()]

    def update_track(self, track_id: str, changes: Dict[str, Any]) -> bool:
        """
        Update columns of one row.

        Returns:
            True if a row was updated, False if the track does not exist
        """
        unknown = (set(changes) - set(TRACK_COLUMNS)) | ({'id'} & set(changes))
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")
        if not changes:
            return self.get_track(track_id) is not None

        values = dict(changes)
        if isinstance(values.get('status'), TrackStatus):
            values['status'] = values['status'].value

        assignments = ', '.join(f"{column} = ?" for column in values)
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE tracks SET {assignments} WHERE id = ?",
                list(values.values()) + [track_id]
            )
            return cursor.rowcount > 0

    def update_duration(self, track_id: str, seconds: int) -> bool:
        return self.update_track(track_id, {'duration': int(seconds)})

    def delete_track(self, track_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM tracks WHERE id = ?", (track_id,))
            return cursor.rowcount > 0

    def insert_album(self, album: Album) -> Album:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO albums (id, title, owner_id) VALUES (?, ?, ?)",
                (album.id, album.title, album.owner_id)
            )
        return album

    def list_albums(self, owner_id: str) -> List[Album]:
        with self._connect() as conn:
            cursor = conn.execute(
                "SELECT id, title, owner_id FROM albums WHERE owner_id = ? ORDER BY title ASC",
                (owner_id,)
            )
            return [Album(**dict(row)) for row in cursor.fetchall()]

    def get_stats(self, uploader_id: Optional[str] = None) -> Dict[str, int]:
        """Total track count plus one count per TrackStatus value."""
        query = "SELECT status, COUNT(*) FROM tracks"
        params = []
        if uploader_id is not None:
            query += " WHERE uploader_id = ?"
            params.append(uploader_id)
        query += " GROUP BY status"

        stats = {"tracks": 0}
        stats.update({s.value: 0 for s in TrackStatus})
        with self._connect() as conn:
            for status, count in conn.execute(query, params).fetchall():
                stats["tracks"] += count
                if status in stats:
                    stats[status] = count
        return stats

    @staticmethod
    def _track_to_row(track: Track) -> Dict[str, Any]:
        data = track.to_dict()
        data['is_public'] = 1 if track.is_public else 0
        return data

    @staticmethod
    def _row_to_track(row: sqlite3.Row) -> Track:
        return Track.from_dict(dict(row))
