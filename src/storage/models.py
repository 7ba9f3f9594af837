"""Database models for SatoshiPay Publisher."""

from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# Post types that can carry SatoshiPay pricing
PRICEABLE_POST_TYPES = ("attachment", "page", "post")


class Post(Base):
    """A post, page or attachment of the publishing site."""

    __tablename__ = "posts"

    id = Column(Integer, primary_key=True)
    post_type = Column(String, index=True, nullable=False, default="post")
    post_status = Column(String, index=True, nullable=False, default="draft")
    post_title = Column(String, nullable=False, default="")
    post_content = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    meta = relationship("PostMeta", back_populates="post", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Post(id={self.id}, type='{self.post_type}', status='{self.post_status}')>"


class PostMeta(Base):
    """Single-valued post metadata. Values are JSON encoded."""

    __tablename__ = "post_meta"
    __table_args__ = (UniqueConstraint("post_id", "meta_key", name="uq_post_meta_key"),)

    id = Column(Integer, primary_key=True)
    post_id = Column(Integer, ForeignKey("posts.id"), index=True, nullable=False)
    meta_key = Column(String, index=True, nullable=False)
    meta_value = Column(Text)

    post = relationship("Post", back_populates="meta")

    def __repr__(self):
        return f"<PostMeta(post_id={self.post_id}, key='{self.meta_key}')>"


class Option(Base):
    """Site-wide option record. Values are JSON encoded."""

    __tablename__ = "options"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    value = Column(Text)

    def __repr__(self):
        return f"<Option(name='{self.name}')>"


class Transient(Base):
    """Option with an expiry, used for short-lived admin notices."""

    __tablename__ = "transients"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    value = Column(Text)
    expires_at = Column(DateTime, index=True)

    def __repr__(self):
        return f"<Transient(name='{self.name}', expires_at={self.expires_at})>"
