"""Walk through the storefront against a document store.

Resolves a session, waits for the catalog (seeding it on an empty store),
fills the cart, prints the total and checks out.

Usage:
    python scripts/storefront_demo.py [--backend memory|cosmos] [--add 2 --add 2 --add 4]

The cosmos backend reads its connection settings from BOOKSPHERE_*
environment variables. Use a TEST database, never production.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from booksphere_sync import CatalogService, StoreBackend, StoreConfig, StoreFront, WriteStatus
from booksphere_sync.logging_utils import configure_structured_logging

# Seconds to wait for seeded books to reach the catalog
SEED_TIMEOUT = 10.0


def _configure_logging(verbose: bool, json_logs: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    if json_logs:
        configure_structured_logging(level=level)
    else:
        logging.basicConfig(level=level, format="%(levelname)s  %(name)s  %(message)s")
    # Suppress Azure SDK HTTP noise
    for noisy in ("azure", "azure.core", "azure.identity", "azure.cosmos", "msal", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


async def _wait_for_seed(catalog: CatalogService, poll_interval: float, timeout: float) -> bool:
    """Wait for confirmed seed writes to show up in the catalog mirror.

    Returns False if a seed write failed or the books did not arrive in time
    (e.g. the mirror rejected a seeded document).
    """
    statuses = await asyncio.gather(*(w.wait() for w in catalog.seed_writes))
    if any(s != WriteStatus.CONFIRMED for s in statuses):
        return False

    async def arrived() -> None:
        while len(catalog.books) < len(catalog.default_books):
            await asyncio.sleep(poll_interval / 10)

    try:
        await asyncio.wait_for(arrived(), timeout)
    except TimeoutError:
        return False
    return True


async def run(config: StoreConfig, book_ids: list[str]) -> int:
    async with StoreFront(config) as shop:
        session = shop.session

        print()
        print("=" * 70)
        print("BOOKSPHERE STOREFRONT")
        print("=" * 70)
        print(f"  deployment : {config.deployment_id}")
        print(f"  backend    : {config.backend.value}")
        print(f"  identity   : {session.identity or '(none, cart unavailable)'}")
        print("=" * 70)

        await shop.catalog.wait_ready()
        if shop.catalog.seed_writes:
            seeded = await _wait_for_seed(shop.catalog, config.poll_interval, SEED_TIMEOUT)
            if not seeded:
                print("\nWarning: the default catalog was not fully seeded.")

        print("\n--- Catalog ---")
        for book in shop.catalog.books:
            print(f"  [{book.id}] {book.title:45s} {book.author:20s} ${book.price:>7}")

        if not session.has_identity:
            print("\nNo identity: the cart is unavailable.")
            return 1

        await shop.cart.wait_ready()

        print("\n--- Cart ---")
        for book_id in book_ids:
            book = shop.catalog.get(book_id)
            if book is None:
                print(f"  unknown book id: {book_id}")
                continue
            write = shop.cart.add(book)
            status = await write.wait()
            print(f"  add {book.title:45s} -> {status.value}")

        for item in shop.cart.items:
            print(f"  {item.quantity} x {item.book.title:41s} ${item.subtotal:>7}")
        print(f"  items: {shop.cart.item_count}  total: ${shop.cart.total}")

        result = shop.cart.checkout()
        status = await result.clear_write.wait()
        print("\n--- Checkout ---")
        print(f"  charged    : ${result.total} for {result.item_count} item(s) (placeholder)")
        print(f"  cart clear : {status.value}")

        return 0 if status == WriteStatus.CONFIRMED else 1


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Walk through the BookSphere storefront",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # In-process store (catalog is seeded on first run)
    python scripts/storefront_demo.py --add 1 --add 2 --add 2

    # Cosmos DB (uses environment variables)
    BOOKSPHERE_COSMOS_ENDPOINT="https://...test..." \\
    python scripts/storefront_demo.py --backend cosmos --add 3
        """,
    )
    parser.add_argument(
        "--backend",
        choices=[b.value for b in StoreBackend],
        default=None,
        help="Document store (default: BOOKSPHERE_BACKEND or memory)",
    )
    parser.add_argument("--deployment-id", help="Deployment identifier")
    parser.add_argument("--token", help="Pre-issued session token (anonymous if omitted)")
    parser.add_argument(
        "--add", dest="book_ids", action="append", default=[], help="Book id to add (repeatable)"
    )
    parser.add_argument("--json-logs", action="store_true", help="Structured JSON logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()
    _configure_logging(args.verbose, args.json_logs)

    config = StoreConfig.from_environment()
    if args.backend:
        config.backend = StoreBackend(args.backend)
    if args.deployment_id:
        config.deployment_id = args.deployment_id
    if args.token:
        config.initial_auth_token = args.token

    book_ids = args.book_ids or ["2", "4", "2"]
    sys.exit(asyncio.run(run(config, book_ids)))


if __name__ == "__main__":
    main()
