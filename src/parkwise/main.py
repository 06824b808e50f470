# File: src/parkwise/main.py
"""
Command line entry point for the ParkWise parking core

Every sub-command is turned into a command dict and handed to the
ParkingCommandHandler; the structured response is printed as JSON and a
failed command exits with status 1.
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from .domain.exceptions import ParkingError
from .infrastructure.config import load_config
from .infrastructure.factories import ServiceFactory


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Setup application logging configuration"""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )
    return logging.getLogger("parkwise")


ANALYTICS_REPORTS = {
    'revenue': "revenue_analytics",
    'utilization': "slot_utilization",
    'peak-hours': "peak_hours",
    'vehicles': "vehicle_type_analytics",
    'operations': "operational_metrics",
    'sessions': "session_stats",
    'occupancy': "occupancy_trends",
    'activity': "activity_stats",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="parkwise", description="ParkWise parking operations")
    parser.add_argument('--config', help='YAML configuration file (default: $PARKWISE_CONFIG)')
    parser.add_argument('--database-url', help='Override the configured database URL')
    sub = parser.add_subparsers(dest='command', required=True)

    seed = sub.add_parser('seed', help='Create the standard slot layout')
    seed.add_argument('--floors', nargs='+', help='Floor prefixes (default: B1..B5)')
    seed.add_argument('--slots-per-floor', type=int, default=15)

    entry = sub.add_parser('entry', help='Park a vehicle')
    entry.add_argument('number_plate')
    entry.add_argument('vehicle_type', help='CAR, BIKE, EV or HANDICAP_ACCESSIBLE')
    entry.add_argument('--billing-type', default='HOURLY', help='HOURLY or DAY_PASS')
    entry.add_argument('--slot', help='Explicit slot id or number')

    exit_ = sub.add_parser('exit', help='Close the active session of a vehicle')
    exit_.add_argument('number_plate')

    search = sub.add_parser('search', help='Find a vehicle by plate')
    search.add_argument('number_plate')

    slots = sub.add_parser('slots', help='List slots')
    slots.add_argument('--type', dest='slot_type')
    slots.add_argument('--status')
    slots.add_argument('--floor')
    slots.add_argument('--page', type=int, default=1)
    slots.add_argument('--page-size', type=int, default=50)

    sub.add_parser('available', help='Free slots per area')

    maintenance = sub.add_parser('maintenance', help='Put a slot under maintenance or release it')
    maintenance.add_argument('slot')
    maintenance.add_argument('--release', action='store_true')

    sub.add_parser('sessions', help='Active sessions with running estimates')
    sub.add_parser('overstays', help='Run overstay detection')
    stats = sub.add_parser('overstay-stats', help='Overstay statistics')
    stats.add_argument('--days', type=int, default=7)
    sub.add_parser('dashboard', help='Occupancy figures')
    sub.add_parser('revenue', help='Revenue figures')
    billing = sub.add_parser('billing', help='Switch an active session between HOURLY and DAY_PASS')
    billing.add_argument('session_id')
    billing.add_argument('billing_type')
    analytics = sub.add_parser('analytics', help='Analytics and session reports')
    analytics.add_argument('report', choices=sorted(ANALYTICS_REPORTS))
    analytics.add_argument('--period', default='DAY', help='DAY, WEEK or MONTH')
    sub.add_parser('rates', help='Show the rate card')
    return parser


def to_command(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate parsed arguments into a handler command"""
    if args.command == 'seed':
        return {"type": "seed_slots", "data": {"floors": args.floors, "slots_per_floor": args.slots_per_floor}}
    if args.command == 'entry':
        return {"type": "park_vehicle", "data": {
            "number_plate": args.number_plate,
            "vehicle_type": args.vehicle_type,
            "billing_type": args.billing_type,
            "slot_id": args.slot,
        }}
    if args.command == 'exit':
        return {"type": "exit_vehicle", "data": {"number_plate": args.number_plate}}
    if args.command == 'search':
        return {"type": "search_vehicle", "data": {"number_plate": args.number_plate}}
    if args.command == 'slots':
        data = {"page": args.page, "page_size": args.page_size}
        for key in ('slot_type', 'status', 'floor'):
            if getattr(args, key):
                data[key] = getattr(args, key)
        return {"type": "list_slots", "data": data}
    if args.command == 'available':
        return {"type": "availability_map", "data": {}}
    if args.command == 'maintenance':
        command_type = "release_maintenance" if args.release else "set_maintenance"
        return {"type": command_type, "data": {"slot_id": args.slot}}
    if args.command == 'sessions':
        return {"type": "current_sessions", "data": {}}
    if args.command == 'overstays':
        return {"type": "run_overstay_detection", "data": {}}
    if args.command == 'overstay-stats':
        return {"type": "overstay_stats", "data": {"period_days": args.days}}
    if args.command == 'dashboard':
        return {"type": "dashboard_stats", "data": {}}
    if args.command == 'revenue':
        return {"type": "revenue_stats", "data": {}}
    if args.command == 'billing':
        return {"type": "change_billing_type", "data": {
            "session_id": args.session_id, "billing_type": args.billing_type}}
    if args.command == 'analytics':
        data = {} if args.report == 'activity' else {"period": args.period}
        return {"type": ANALYTICS_REPORTS[args.report], "data": data}
    return {"type": "billing_preview", "data": {}}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ParkingError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 2
    if args.database_url:
        config = config.model_copy(update={"database_url": args.database_url})

    logger = setup_logging(config.logging.level, config.logging.file)
    app = ServiceFactory(config).create_application()
    try:
        response = app.command_handler.handle(to_command(args))
    finally:
        app.close()

    print(response.to_json(indent=2))
    if not response.success:
        logger.warning(f"{args.command} failed: {response.error}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
