"""Chain events delivered to realtime callbacks, and the decoding of raw feed
payloads into them."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Literal, Optional, Union

import pydantic
from pydantic import BaseModel, Field, field_validator

from .operations import parse_json_metadata


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


class NewPost(BaseModel):
    type: Literal["new_post"] = "new_post"
    author: str = Field(min_length=1)
    permlink: str = Field(min_length=1)
    title: str = ""
    body: str = ""
    created: str = Field(default_factory=_utc_now_iso)
    tags: List[str] = Field(default_factory=list)
    sport_category: Optional[str] = None
    block_num: Optional[int] = None


class NewVote(BaseModel):
    type: Literal["new_vote"] = "new_vote"
    voter: str = Field(min_length=1)
    author: str = Field(min_length=1)
    permlink: str = Field(min_length=1)
    weight: int = Field(ge=-10000, le=10000)
    timestamp: str = Field(default_factory=_utc_now_iso)
    block_num: Optional[int] = None


class NewComment(BaseModel):
    type: Literal["new_comment"] = "new_comment"
    author: str = Field(min_length=1)
    permlink: str = Field(min_length=1)
    parent_author: str = Field(min_length=1)
    parent_permlink: str = Field(min_length=1)
    body: str = ""
    created: str = Field(default_factory=_utc_now_iso)
    block_num: Optional[int] = None

    @field_validator("parent_author")
    @classmethod
    def _reply_only(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("top-level posts are not comments")
        return value


ChainEvent = Union[NewPost, NewVote, NewComment]
EventCallback = Callable[[ChainEvent], None]


class MalformedPayload(ValueError):
    """Raw feed payload that cannot become a ChainEvent."""


def _unwrap(data: Any, key: str) -> Dict[str, Any]:
    # Feeds deliver either the bare operation or an envelope keyed by kind.
    if not isinstance(data, dict):
        raise MalformedPayload(f"expected an object, got {type(data).__name__}")
    inner = data.get(key, data)
    if not isinstance(inner, dict):
        raise MalformedPayload(f"expected an object under {key!r}")
    return inner


def _without_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def normalize_post(data: Any) -> NewPost:
    post = _unwrap(data, "post")
    metadata = parse_json_metadata(post.get("json_metadata"))
    tags = metadata.get("tags") if isinstance(metadata.get("tags"), list) else []
    try:
        return NewPost(**_without_none({
            "author": post.get("author"),
            "permlink": post.get("permlink"),
            "title": post.get("title"),
            "body": post.get("body"),
            "created": post.get("created") or post.get("timestamp"),
            "tags": [str(t) for t in tags],
            "sport_category": metadata.get("sport_category"),
            "block_num": data.get("block_num"),
        }))
    except pydantic.ValidationError as e:
        raise MalformedPayload(str(e)) from e


def normalize_vote(data: Any) -> NewVote:
    vote = _unwrap(data, "vote")
    try:
        return NewVote(**_without_none({
            "voter": vote.get("voter"),
            "author": vote.get("author"),
            "permlink": vote.get("permlink"),
            "weight": vote.get("weight"),
            "timestamp": vote.get("time") or vote.get("timestamp"),
            "block_num": data.get("block_num"),
        }))
    except pydantic.ValidationError as e:
        raise MalformedPayload(str(e)) from e


def normalize_comment(data: Any) -> NewComment:
    comment = _unwrap(data, "comment")
    try:
        return NewComment(**_without_none({
            "author": comment.get("author"),
            "permlink": comment.get("permlink"),
            "parent_author": comment.get("parent_author"),
            "parent_permlink": comment.get("parent_permlink"),
            "body": comment.get("body"),
            "created": comment.get("created") or comment.get("timestamp"),
            "block_num": data.get("block_num"),
        }))
    except pydantic.ValidationError as e:
        raise MalformedPayload(str(e)) from e


NORMALIZERS: Dict[str, Callable[[Any], ChainEvent]] = {
    "posts": normalize_post,
    "votes": normalize_vote,
    "comments": normalize_comment,
}
