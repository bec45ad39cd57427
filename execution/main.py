"""CLI entry point for the Slide Starter pipelines."""

import argparse
import logging
import os
import sys

from configuration import DEFAULT_CONFIG_RANGE, load_env
from pipeline import run_deck_pipeline, run_psi_pipeline


def parse_args(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        description="Slide Starter: build slide decks and performance reports from a spreadsheet"
    )
    parser.add_argument(
        "--spreadsheet-id",
        default=None,
        help="Spreadsheet holding the Configuration sheet (default: SPREADSHEET_ID from .env)",
    )
    parser.add_argument(
        "--config-range",
        default=None,
        help=f"Key/value configuration range (default: {DEFAULT_CONFIG_RANGE})",
    )
    parser.add_argument(
        "--server-mode",
        action="store_true",
        help="Use GOOGLE_TOKEN_JSON and never open a browser for OAuth",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    deck = subparsers.add_parser("deck", help="Generate a deck from the configured data sources")
    deck.add_argument(
        "--share",
        action="store_true",
        help="Make the generated deck viewable by anyone with the link",
    )

    psi = subparsers.add_parser("psi", help="Measure URLs with PageSpeed Insights")
    co2 = psi.add_mutually_exclusive_group()
    co2.add_argument(
        "--co2",
        dest="co2",
        action="store_const",
        const=True,
        default=None,
        help="Append the CO2e estimate column (overrides INCLUDE_CO2EQ)",
    )
    co2.add_argument(
        "--no-co2",
        dest="co2",
        action="store_const",
        const=False,
        help="Skip the CO2e estimate column (overrides INCLUDE_CO2EQ)",
    )

    return parser.parse_args(argv)


def print_summary(command: str, event: dict) -> None:
    summary = event.get("summary", {})
    print(f"\n=== Summary ===")
    if command == "deck":
        print(f"Slides created:   {summary.get('slides_created', 0)}")
        for name, count in summary.get("sections", {}).items():
            print(f"  {name}: {count}")
        print(f"Report URL:       {summary.get('report_url')}")
    else:
        print(f"URLs measured:    {summary.get('urls_measured', 0)}")
        print(f"Errors:           {summary.get('errors', 0)}")
        print(f"Results sheet:    {summary.get('results_sheet')}")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="  %(levelname)s %(name)s: %(message)s",
    )

    load_env()
    spreadsheet_id = args.spreadsheet_id or os.getenv("SPREADSHEET_ID")
    if not spreadsheet_id:
        print("Error: pass --spreadsheet-id or set SPREADSHEET_ID in .env")
        return 1
    config_range = (args.config_range or os.getenv("SLIDE_STARTER_CONFIG_RANGE")
                    or DEFAULT_CONFIG_RANGE)

    if args.command == "deck":
        print(f"\n=== Slide Starter: deck ===")
        events = run_deck_pipeline(spreadsheet_id, config_range,
                                   server_mode=args.server_mode, share=args.share)
    else:
        print(f"\n=== Slide Starter: PageSpeed Insights ===")
        events = run_psi_pipeline(spreadsheet_id, config_range,
                                  server_mode=args.server_mode, include_co2=args.co2)

    for event in events:
        if event["type"] == "progress":
            print(event["message"])
        elif event["type"] == "error":
            print(f"Error: {event['message']}")
            return 1
        elif event["type"] == "result":
            print_summary(args.command, event)
    return 0


if __name__ == "__main__":
    sys.exit(main())
