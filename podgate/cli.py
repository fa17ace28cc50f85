#!/usr/bin/env python3
"""
podgate CLI

Usage:
  podgate [-c podgate.yaml] [-v] run                  - run processor and sweeper until interrupted
  podgate [-c podgate.yaml] process                   - one pass over the inbox
  podgate [-c podgate.yaml] sweep                     - one pass over the private container
  podgate [-c podgate.yaml] offers list
  podgate [-c podgate.yaml] offers publish <resource> --price 0.01 --duration 5
  podgate [-c podgate.yaml] grants <resource>         - list time-bounded grants
  podgate [-c podgate.yaml] verify <notification-url> - dry-run verification
"""

import argparse
import logging
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from .config import Config
from .directory import ResourceDirectory
from .errors import ParseFailure, PodgateError, VerificationFailure
from .grants import list_grants
from .ledger import JsonRpcLedger, to_wei
from .notifications import Notification
from .offers import Offer, OfferCatalog
from .storage import StorageClient
from .tasks import ExpirySweeper, ItemStatus, NotificationProcessor, RecurringTask
from .verifier import NotificationVerifier

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a command needs, wired from one Config."""
    config: Config
    directory: ResourceDirectory
    catalog: OfferCatalog
    verifier: NotificationVerifier
    processor: NotificationProcessor
    sweeper: ExpirySweeper


def build_services(config: Config, storage=None, ledger=None) -> Services:
    """Wire collaborators. storage/ledger default to the HTTP clients."""
    if storage is None:
        storage = StorageClient(auth_token=config.auth_token, timeout=config.storage_timeout)
    if ledger is None:
        ledger = JsonRpcLedger(config.rpc_url, timeout=config.ledger_timeout)

    directory = ResourceDirectory(storage)
    catalog = OfferCatalog(directory)
    verifier = NotificationVerifier(
        ledger,
        owner_address=lambda: directory.ethereum_address(config.owner_webid),
        marker=config.payload_marker,
    )
    return Services(
        config=config,
        directory=directory,
        catalog=catalog,
        verifier=verifier,
        processor=NotificationProcessor(directory, catalog, verifier, config),
        sweeper=ExpirySweeper(directory, config),
    )


def cmd_run(services: Services, args) -> int:
    """Run both recurring tasks until interrupted."""
    interval = args.interval or services.config.interval_seconds
    tasks = [
        RecurringTask("process", services.processor.tick, interval),
        RecurringTask("sweep", services.sweeper.tick, interval),
    ]
    for task in tasks:
        task.start()

    print(f"podgate running for {services.config.owner_webid} (every {interval:g}s)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nShutting down...")
        for task in tasks:
            task.stop(timeout=5)
    return 0


def cmd_process(services: Services, args) -> int:
    report = services.processor.tick()
    for outcome in sorted(report.outcomes, key=lambda o: o.item):
        print(f"  [{outcome.status.value.upper()}] {outcome.item} {outcome.detail}".rstrip())
    print(f"Granted: {len(report.by_status(ItemStatus.GRANTED))}")
    return 1 if report.by_status(ItemStatus.FAILED) else 0


def cmd_sweep(services: Services, args) -> int:
    report = services.sweeper.tick()
    for outcome in report.by_status(ItemStatus.REVOKED):
        print(f"  [REVOKED] {outcome.item}: {outcome.count}")
    for outcome in report.by_status(ItemStatus.FAILED):
        print(f"  [FAILED] {outcome.item}: {outcome.detail}")
    print(f"Revoked: {report.total(ItemStatus.REVOKED)}")
    return 1 if report.by_status(ItemStatus.FAILED) else 0


def cmd_offers_list(services: Services, args) -> int:
    offers = services.catalog.list_offers(services.config.offers_url)
    if not offers:
        print("No offers")
        return 0
    for offer in offers:
        print(f"{offer.resource_url}")
        print(f"  price: {offer.price} {offer.currency}  duration: {offer.duration_minutes} min")
        print(f"  offer: {offer.offer_url}")
    return 0


def cmd_offers_publish(services: Services, args) -> int:
    try:
        price = Decimal(args.price)
        to_wei(price)
    except (InvalidOperation, ParseFailure):
        print(f"Invalid price: {args.price}", file=sys.stderr)
        return 2
    if args.duration < 0:
        print("Duration must not be negative", file=sys.stderr)
        return 2

    offer = Offer(resource_url=args.resource, price=price, duration_minutes=args.duration)
    location = services.catalog.publish(services.config.offers_url, offer, slug=args.slug)
    print(f"Published offer for {args.resource}" + (f" at {location}" if location else ""))
    return 0


def cmd_grants(services: Services, args) -> int:
    acl = services.directory.fetch_permission_document(args.resource)
    if acl is None:
        print(f"{args.resource} has no permission document", file=sys.stderr)
        return 1

    now = datetime.now(timezone.utc)
    grants = sorted(list_grants(acl).values(), key=lambda g: g.valid_until)
    if not grants:
        print("No time-bounded grants")
    for grant in grants:
        state = "expired" if grant.is_expired(now) else "active"
        print(f"{grant.grantee_webid}  until {grant.valid_until.isoformat()}  [{state}]")
    return 0


def cmd_verify(services: Services, args) -> int:
    doc = services.directory.fetch_graph(args.notification)
    if doc is None:
        print(f"{args.notification} not found", file=sys.stderr)
        return 1

    notification = Notification.from_graph(doc)
    catalog = services.catalog.load(services.config.offers_url)
    result = services.verifier.verify(notification, catalog)
    try:
        request = result.raise_for_rejection()
    except VerificationFailure as e:
        print(f"REJECTED {e}")
        return 1

    print(f"OK {request.grantee_webid} -> {request.resource_url} ({request.duration_minutes} min)")
    return 0


def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="podgate",
        description="Pay-per-access gate for Solid pods",
    )
    parser.add_argument("-c", "--config", default="podgate.yaml", help="Config file (default: podgate.yaml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run", help="Run processor and sweeper on a schedule")
    run_parser.add_argument("--interval", type=float, help="Seconds between ticks (overrides config)")

    subparsers.add_parser("process", help="Process the inbox once")
    subparsers.add_parser("sweep", help="Revoke expired grants once")

    offers_parser = subparsers.add_parser("offers", help="Manage offers")
    offers_sub = offers_parser.add_subparsers(dest="offers_command")
    offers_sub.add_parser("list", help="List published offers")
    publish_parser = offers_sub.add_parser("publish", help="Publish an offer")
    publish_parser.add_argument("resource", help="Resource URL")
    publish_parser.add_argument("--price", required=True, help="Price in ETH")
    publish_parser.add_argument("--duration", type=int, required=True, help="Access duration in minutes")
    publish_parser.add_argument("--slug", help="Suggested name for the offer document")

    grants_parser = subparsers.add_parser("grants", help="List time-bounded grants of a resource")
    grants_parser.add_argument("resource", help="Resource URL")

    verify_parser = subparsers.add_parser("verify", help="Verify a notification without granting")
    verify_parser.add_argument("notification", help="Notification URL")

    return parser


COMMANDS = {
    "run": cmd_run,
    "process": cmd_process,
    "sweep": cmd_sweep,
    "grants": cmd_grants,
    "verify": cmd_verify,
}


def main(argv: Optional[List[str]] = None, services: Optional[Services] = None) -> int:
    parser = make_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "offers":
        handlers = {"list": cmd_offers_list, "publish": cmd_offers_publish}
        handler = handlers.get(args.offers_command)
        if handler is None:
            parser.print_help()
            return 1
    else:
        handler = COMMANDS[args.command]

    try:
        if services is None:
            services = build_services(Config.from_file(args.config))
        return handler(services, args)
    except PodgateError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
