import asyncio
import json
import os
import random
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError

from backends import BACKENDS
from backends.base import AsyncRemote
from core import storage
from core.catalog import is_discount_active
from core.errors import ConfigError, RemoteError
from core.logger import get_logger
from core.models import SearchFilters
from core.notifier import Notifier
from core.search import SearchStore
from core.wishlist import WishlistStore

logger = get_logger(__name__)

MODE = os.getenv("MODE", "once").lower()  # "once" or "daemon"
CONFIG_PATH = os.getenv("CONFIG_PATH", "/data/config.json")
POLL_SECONDS = int(os.getenv("POLL_SECONDS", "300"))


@dataclass
class App:
    """Everything a UI layer needs, built once and passed by reference."""
    remote: AsyncRemote
    notifier: Notifier
    wishlist: WishlistStore
    search: SearchStore


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    if not os.path.exists(path):
        raise ConfigError(f"Config file not found at {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to load config at {path}: {e}") from e
    validate_config(cfg)
    return cfg


def validate_config(cfg: Any) -> None:
    if not isinstance(cfg, dict):
        raise ConfigError("config must be a JSON object.")
    backend = cfg.get("backend", "rest")
    if backend not in BACKENDS:
        raise ConfigError(f"Unknown backend '{backend}'; expected one of {sorted(BACKENDS)}.")
    seed = cfg.get("seed", {})
    if not isinstance(seed, dict) or not all(isinstance(v, list) for v in seed.values()):
        raise ConfigError("config 'seed' must map table names to lists of rows.")
    search = cfg.get("search")
    if search is not None:
        if not isinstance(search, dict) or not isinstance(search.get("query"), str):
            raise ConfigError("config 'search' must be an object with a string 'query'.")
        try:
            SearchFilters.model_validate(search.get("filters", {}))
        except ValidationError as e:
            raise ConfigError(f"config 'search.filters' is invalid: {e}") from e


def build_remote(cfg: Dict[str, Any]) -> AsyncRemote:
    backend = cfg.get("backend", "rest")
    factory = BACKENDS[backend]
    if backend == "memory":
        return AsyncRemote(factory(tables=cfg.get("seed", {})))
    try:
        return AsyncRemote(factory(**cfg.get("rest", {})))
    except TypeError as e:
        raise ConfigError(f"config 'rest' is invalid: {e}") from e


def build_app(cfg: Dict[str, Any], history_db: Optional[str] = None) -> App:
    remote = build_remote(cfg)
    notifier = Notifier()
    if history_db is None and cfg.get("persist_history"):
        history_db = storage.DB_PATH
    return App(
        remote=remote,
        notifier=notifier,
        wishlist=WishlistStore(remote, notifier),
        search=SearchStore(remote, history_db=history_db),
    )


async def run_once(app: App, cfg: Dict[str, Any]) -> int:
    user_id = cfg.get("user_id")
    status = 0

    if user_id:
        await app.wishlist.fetch_wishlist(user_id)
        state = app.wishlist.state
        if state.error:
            logger.error("Wishlist sync failed for %s: %s", user_id, state.error)
            status = 1
        else:
            logger.info("Wishlist for %s: %d items.", user_id, state.favorite_count)
    else:
        logger.info("No user_id configured; skipping wishlist sync.")

    search = cfg.get("search")
    if search:
        filters = SearchFilters.model_validate(search.get("filters", {}))
        await app.search.search_products(search["query"], filters)
        await app.search.wait_background()
        state = app.search.state
        if state.error:
            logger.error("Search %r failed: %s", search["query"], state.error)
            status = 1
        else:
            logger.info(
                "Search %r: %d results, %d on sale.",
                search["query"], len(state.results),
                sum(1 for p in state.results if is_discount_active(p)),
            )

    for note in app.notifier.drain():
        logger.warning("Pending notification: %s: %s", note.title, note.message)
    return status


async def run_daemon(app: App, cfg: Dict[str, Any]) -> None:
    user_id = cfg.get("user_id")
    if not user_id:
        raise ConfigError("daemon mode needs 'user_id' in config.")
    logger.info("Starting daemon; refreshing wishlist every %d seconds.", POLL_SECONDS)
    await app.wishlist.fetch_wishlist(user_id)
    while True:
        base = max(1, POLL_SECONDS)
        delay = base + random.uniform(-0.1 * base, 0.1 * base)
        logger.debug("Sleeping %.1f seconds before next refresh.", delay)
        await asyncio.sleep(delay)
        try:
            await app.wishlist.refresh(user_id)
        except Exception as e:
            logger.exception("Unhandled error in daemon loop: %s", e)


def main() -> int:
    try:
        cfg = load_config(CONFIG_PATH)
        app = build_app(cfg)
        if MODE == "daemon":
            asyncio.run(run_daemon(app, cfg))
            return 0
        return asyncio.run(run_once(app, cfg))
    except (ConfigError, RemoteError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        raise SystemExit(0)
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        raise SystemExit(2)
