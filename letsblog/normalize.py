from __future__ import annotations

from typing import Any, Iterable, Mapping
from urllib.parse import quote

from .models import PostDraft

EXCERPT_LENGTH = 150
DEFAULT_TITLE = "Untitled"

_AVATAR_URL = "https://ui-avatars.com/api/?name={name}&background=random"


def derive_excerpt(content: str | None, excerpt: str | None = None) -> str:
    supplied = (excerpt or "").strip()
    if supplied:
        return excerpt or ""
    return (content or "")[:EXCERPT_LENGTH]


def normalize_title(title: str | None) -> str:
    t = (title or "").strip()
    return t or DEFAULT_TITLE


def normalize_tags(tags: Iterable[Any] | None) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()

    for item in tags or ():
        if not isinstance(item, str):
            continue
        tag = item.strip()
        if not tag:
            continue
        key = tag.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(tag)

    return out


def default_avatar_url(username: str) -> str:
    return _AVATAR_URL.format(name=quote((username or "").strip(), safe=""))


def new_post_fields(draft: PostDraft) -> dict[str, Any]:
    """
    Resolve every user-supplied field of a fresh post.

    Missing title becomes "Untitled"; missing excerpt is cut from the content.
    """
    content = draft.content or ""
    cover = (draft.cover_image or "").strip() or None
    return {
        "title": normalize_title(draft.title),
        "content": content,
        "excerpt": derive_excerpt(content, draft.excerpt),
        "cover_image": cover,
        "tags": normalize_tags(draft.tags),
    }


def changed_post_fields(current: Mapping[str, Any], draft: PostDraft) -> dict[str, Any]:
    """
    Merge a partial update over the current post fields.

    Only fields present in the draft change. New content without an explicit
    excerpt re-derives the excerpt.
    """
    merged: dict[str, Any] = {
        "title": current.get("title"),
        "content": current.get("content"),
        "excerpt": current.get("excerpt"),
        "cover_image": current.get("cover_image"),
        "tags": list(current.get("tags") or []),
    }

    if draft.title is not None:
        merged["title"] = normalize_title(draft.title)
    if draft.content is not None:
        merged["content"] = draft.content
    if draft.excerpt is not None and draft.excerpt.strip():
        merged["excerpt"] = draft.excerpt
    elif draft.content is not None:
        merged["excerpt"] = derive_excerpt(draft.content)
    if draft.cover_image is not None:
        merged["cover_image"] = draft.cover_image.strip() or None
    if draft.tags is not None:
        merged["tags"] = normalize_tags(draft.tags)

    return merged
