from __future__ import annotations

import argparse
import sys
from typing import Sequence

from .config import config_sha256, load_config, resolve_server_secrets
from .config_schema import AppConfig
from .errors import BlogError, ConfigError, StorageError
from .event_log import EventLogger
from .mode import select_backend
from .models import Post
from .query import SORT_ORDERS, all_tags, filter_posts, sort_posts


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="letsblog")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser(
        "serve",
        help="Run the REST backend.",
    )
    serve.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    serve.set_defaults(_handler=_cmd_serve)

    probe = subparsers.add_parser(
        "probe",
        help="Probe the backend once and report which data mode would be used.",
    )
    probe.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    probe.set_defaults(_handler=_cmd_probe)

    posts = subparsers.add_parser(
        "posts",
        help="List posts through the selected backend (remote or local fallback).",
    )
    posts.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    posts.add_argument(
        "--search",
        help="Only posts whose title or content contains this text (case-insensitive).",
    )
    posts.add_argument(
        "--tag",
        help="Only posts carrying this tag.",
    )
    posts.add_argument(
        "--author",
        help="Only posts written by this username.",
    )
    posts.add_argument(
        "--sort",
        choices=SORT_ORDERS,
        default="recent",
        help="recent (newest first) or trending (most liked first).",
    )
    posts.set_defaults(_handler=_cmd_posts)

    tags = subparsers.add_parser(
        "tags",
        help="List the distinct tags used across all posts.",
    )
    tags.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    tags.set_defaults(_handler=_cmd_tags)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _open_logger(cfg: AppConfig, component: str) -> EventLogger:
    return EventLogger.open(cfg.logging.path, component=component, level=cfg.logging.level)


def _cmd_serve(args: argparse.Namespace) -> int:
    from .server import create_app

    cfg = load_config(args.config)
    secrets = resolve_server_secrets(cfg)

    with _open_logger(cfg, "server") as log:
        log.info(
            "serve_command_started",
            config_path=str(args.config),
            config_sha256=config_sha256(cfg),
            host=cfg.server.host,
            port=cfg.server.port,
            database_path=cfg.server.database_path,
        )
        try:
            app = create_app(cfg, secrets, logger=log)
            app.run(host=cfg.server.host, port=cfg.server.port)
        except Exception as e:
            log.exception("serve_command_failed", exc=e)
            raise

    return 0


def _cmd_probe(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)

    with _open_logger(cfg, "client") as log:
        selection = select_backend(cfg, logger=log)

    print(f"mode={selection.mode}")
    print(f"base_url={cfg.api.base_url}")
    print(f"probe={selection.detail}")
    return 0


def _fetch_posts(args: argparse.Namespace, command: str) -> tuple[str, list[Post]]:
    cfg = load_config(args.config)

    with _open_logger(cfg, "client") as log:
        selection = select_backend(cfg, logger=log)
        try:
            posts = selection.backend.get_posts()
        except BlogError as e:
            log.exception(f"{command}_command_failed", exc=e, mode=selection.mode)
            raise

    return selection.mode, posts


def _cmd_posts(args: argparse.Namespace) -> int:
    mode, posts = _fetch_posts(args, "posts")
    posts = filter_posts(posts, search=args.search, tag=args.tag, author=args.author)
    posts = sort_posts(posts, args.sort)

    print(f"mode={mode}")
    print(f"post_count={len(posts)}")
    for post in posts:
        print(f"{post.id}\t{post.title}")
    return 0


def _cmd_tags(args: argparse.Namespace) -> int:
    mode, posts = _fetch_posts(args, "tags")
    tags = all_tags(posts)

    print(f"mode={mode}")
    print(f"tag_count={len(tags)}")
    for tag in tags:
        print(tag)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except (BlogError, StorageError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
