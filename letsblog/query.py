from __future__ import annotations

from datetime import datetime
from typing import Iterable, Literal

from .models import Post

SortOrder = Literal["recent", "trending"]
SORT_ORDERS: tuple[SortOrder, ...] = ("recent", "trending")


def _created_key(post: Post) -> datetime:
    return datetime.fromisoformat(post.created_at.replace("Z", "+00:00"))


def filter_posts(
    posts: Iterable[Post],
    *,
    search: str | None = None,
    tag: str | None = None,
    author: str | None = None,
) -> list[Post]:
    """
    Narrow a post listing the way the home and profile pages do.

    search matches title or content case-insensitively; tag must be one of the
    post's tags exactly; author is the author's username. Blank filters are
    ignored and the input order is kept.
    """
    needle = (search or "").strip().casefold()
    wanted_tag = (tag or "").strip()
    wanted_author = (author or "").strip()

    out: list[Post] = []
    for post in posts:
        if needle and needle not in post.title.casefold() and needle not in post.content.casefold():
            continue
        if wanted_tag and wanted_tag not in post.tags:
            continue
        if wanted_author and post.author.username != wanted_author:
            continue
        out.append(post)
    return out


def sort_posts(posts: Iterable[Post], order: SortOrder = "recent") -> list[Post]:
    """Return posts newest first ("recent") or most liked first ("trending")."""
    if order == "trending":
        return sorted(posts, key=lambda p: p.likes, reverse=True)
    if order == "recent":
        return sorted(posts, key=_created_key, reverse=True)
    raise ValueError(f"Unknown sort order: {order!r}")


def all_tags(posts: Iterable[Post]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for post in posts:
        for tag in post.tags:
            if tag not in seen:
                seen.add(tag)
                out.append(tag)
    return out
