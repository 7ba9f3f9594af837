"""Database operations and management"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterable, Optional

from sqlalchemy import and_, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import PRICEABLE_POST_TYPES, Base, Option, Post, PostMeta, Transient

logger = logging.getLogger(__name__)


def _encode(value: Any) -> str:
    return json.dumps(value)


def _decode(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    return json.loads(raw)


class Database:
    """Database management class"""

    def __init__(self, db_url: str = "sqlite:///data/db/satoshipay.db", echo: bool = False):
        self.db_url = db_url

        engine_kwargs: dict[str, Any] = {"echo": echo}
        if db_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in db_url or db_url == "sqlite://":
                # One shared connection, otherwise every session sees an empty store
                engine_kwargs["poolclass"] = StaticPool
            else:
                database = make_url(db_url).database
                if database:
                    Path(database).parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(db_url, **engine_kwargs)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        logger.info(f"Database initialized: {db_url}")

    @contextmanager
    def session(self):
        """Context manager for database sessions"""
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def create_post(
        self,
        post_title: str = "",
        post_content: str = "",
        post_type: str = "post",
        post_status: str = "draft",
    ) -> int:
        """Insert a post and return its ID"""
        with self.session() as session:
            post = Post(
                post_title=post_title,
                post_content=post_content,
                post_type=post_type,
                post_status=post_status,
            )
            session.add(post)
            session.flush()
            logger.debug(f"Created post {post.id} ({post_type}, {post_status})")
            return post.id

    def update_post(self, post_id: int, **fields) -> bool:
        """Update columns of an existing post"""
        with self.session() as session:
            post = session.get(Post, post_id)
            if not post:
                return False

            for name, value in fields.items():
                if value is not None:
                    setattr(post, name, value)
            return True

    def get_post(self, post_id: int) -> Optional[Post]:
        """Get a single post by ID"""
        with self.session() as session:
            post = session.get(Post, post_id)
            if post:
                session.expunge(post)
            return post

    def delete_post(self, post_id: int) -> bool:
        """Delete a post together with all of its metadata"""
        with self.session() as session:
            post = session.get(Post, post_id)
            if not post:
                return False

            session.delete(post)
            logger.debug(f"Deleted post {post_id}")
            return True

    def get_post_ids(
        self,
        post_types: Iterable[str] = PRICEABLE_POST_TYPES,
        exclude_status: str = "auto-draft",
    ) -> list[int]:
        """Get IDs of posts of the given types, skipping one status"""
        with self.session() as session:
            rows = (
                session.query(Post.id)
                .filter(Post.post_type.in_(list(post_types)), Post.post_status != exclude_status)
                .order_by(Post.id)
                .all()
            )
            return [row[0] for row in rows]

    def get_post_ids_without_meta(
        self,
        meta_key: str,
        post_types: Iterable[str] = PRICEABLE_POST_TYPES,
        exclude_status: str = "auto-draft",
    ) -> list[int]:
        """Get IDs of posts that have no metadata stored under meta_key"""
        with self.session() as session:
            rows = (
                session.query(Post.id)
                .outerjoin(
                    PostMeta,
                    and_(PostMeta.post_id == Post.id, PostMeta.meta_key == meta_key),
                )
                .filter(
                    Post.post_type.in_(list(post_types)),
                    Post.post_status != exclude_status,
                    PostMeta.id.is_(None),
                )
                .order_by(Post.id)
                .all()
            )
            return [row[0] for row in rows]

    # ------------------------------------------------------------------
    # Post metadata
    # ------------------------------------------------------------------

    def _find_meta(self, session: Session, post_id: int, meta_key: str) -> Optional[PostMeta]:
        return (
            session.query(PostMeta)
            .filter(PostMeta.post_id == post_id, PostMeta.meta_key == meta_key)
            .first()
        )

    def get_post_meta(self, post_id: int, meta_key: str, default: Any = None) -> Any:
        """Get a decoded metadata value"""
        with self.session() as session:
            meta = self._find_meta(session, post_id, meta_key)
            if meta is None:
                return default
            return _decode(meta.meta_value)

    def add_post_meta(self, post_id: int, meta_key: str, value: Any) -> bool:
        """Add metadata unless the key already exists for the post"""
        with self.session() as session:
            if self._find_meta(session, post_id, meta_key) is not None:
                return False

            session.add(PostMeta(post_id=post_id, meta_key=meta_key, meta_value=_encode(value)))
            return True

    def update_post_meta(self, post_id: int, meta_key: str, value: Any):
        """Add or replace metadata"""
        with self.session() as session:
            meta = self._find_meta(session, post_id, meta_key)
            if meta is None:
                session.add(PostMeta(post_id=post_id, meta_key=meta_key, meta_value=_encode(value)))
            else:
                meta.meta_value = _encode(value)

    def delete_post_meta(self, post_id: int, meta_key: str) -> bool:
        """Remove metadata"""
        with self.session() as session:
            deleted = (
                session.query(PostMeta)
                .filter(PostMeta.post_id == post_id, PostMeta.meta_key == meta_key)
                .delete()
            )
            return deleted > 0

    def find_post_id_by_meta(self, meta_key: str, value: Any) -> Optional[int]:
        """Get the ID of the first post whose metadata equals value"""
        with self.session() as session:
            row = (
                session.query(PostMeta.post_id)
                .filter(PostMeta.meta_key == meta_key, PostMeta.meta_value == _encode(value))
                .order_by(PostMeta.post_id)
                .first()
            )
            return row[0] if row else None

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    def get_option(self, name: str, default: Any = None) -> Any:
        """Get a decoded option value"""
        with self.session() as session:
            option = session.query(Option).filter(Option.name == name).first()
            if option is None:
                return default
            return _decode(option.value)

    def update_option(self, name: str, value: Any) -> bool:
        """Add or replace an option; returns True if the stored value changed"""
        encoded = _encode(value)
        with self.session() as session:
            option = session.query(Option).filter(Option.name == name).first()
            if option is None:
                session.add(Option(name=name, value=encoded))
                return True

            if option.value == encoded:
                return False

            option.value = encoded
            return True

    # ------------------------------------------------------------------
    # Transients
    # ------------------------------------------------------------------

    def set_transient(self, name: str, value: Any, ttl_seconds: int):
        """Store a value that expires after ttl_seconds"""
        expires_at = datetime.utcnow() + timedelta(seconds=ttl_seconds)
        with self.session() as session:
            transient = session.query(Transient).filter(Transient.name == name).first()
            if transient is None:
                session.add(Transient(name=name, value=_encode(value), expires_at=expires_at))
            else:
                transient.value = _encode(value)
                transient.expires_at = expires_at

    def get_transient(self, name: str) -> Any:
        """Get a transient value, or None if missing or expired"""
        with self.session() as session:
            transient = session.query(Transient).filter(Transient.name == name).first()
            if transient is None:
                return None

            if transient.expires_at and transient.expires_at < datetime.utcnow():
                session.delete(transient)
                return None

            return _decode(transient.value)

    def delete_transient(self, name: str) -> bool:
        """Remove a transient"""
        with self.session() as session:
            deleted = session.query(Transient).filter(Transient.name == name).delete()
            return deleted > 0

    def cleanup_expired_transients(self) -> int:
        """Remove all expired transients"""
        with self.session() as session:
            deleted = (
                session.query(Transient)
                .filter(Transient.expires_at < datetime.utcnow())
                .delete()
            )
            if deleted:
                logger.info(f"Deleted {deleted} expired transients")
            return deleted
