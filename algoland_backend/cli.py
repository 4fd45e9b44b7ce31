"""
Weekly winners CLI
==================
Prints the draw outcome of one or more campaign weeks: draw state,
challenge configuration, winner records and prize asset holders.

    algoland-winners --week 1,3-5 [--registry ID] [--draw ID] [--json]
"""

import argparse
import json
import re
import sys

from algoland_backend.config import Settings
from algoland_backend.draws import normalise_error
from algoland_backend.errors import IndexerError, WeekNotPublishedError
from algoland_backend.services import Services

RANGE = re.compile(r"^(\d+)-(\d+)$")


def parse_weeks(values):
    """Sorted unique weeks from repeated, comma separated or ranged tokens."""
    weeks = set()
    for value in values:
        for token in str(value).split(","):
            token = token.strip()
            if not token:
                raise ValueError("Missing week value")
            match = RANGE.match(token)
            if match:
                start, end = int(match.group(1)), int(match.group(2))
                if start < 1 or end < 1:
                    raise ValueError(f"Invalid week range: {token}")
                if end < start:
                    raise ValueError(f"Week range must increase from start to end: {token}")
                weeks.update(range(start, end + 1))
            elif token.isdigit():
                if int(token) < 1:
                    raise ValueError(f"Week values must be positive integers: {token}")
                weeks.add(int(token))
            else:
                raise ValueError(f"Invalid week value: {token}")
    return sorted(weeks)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="algoland-winners", description="Inspect Algoland weekly draw winners."
    )
    parser.add_argument("--week", "-w", action="append", required=True,
                        help="Week number to inspect (repeat, comma list, or range like 1-3)")
    parser.add_argument("--registry", type=int, help="Override registry app id")
    parser.add_argument("--draw", type=int, help="Override draw app id (normally read from registry)")
    parser.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    return parser


def _ids(values):
    return ", ".join(str(v) for v in values or []) or "none"


def print_winner(winner, index, out):
    referrals = winner["numReferrals"]
    lines = [
        f"Winner {index + 1}: Relative ID {winner['relativeId']}",
        f"  Address: {winner['address']}",
        f"  Referrer ID: {winner['referrerId'] or '-'}",
        f"  Points: {winner['points'] or 0}",
        f"  Redeemed points: {winner['redeemedPoints'] or 0}",
        f"  Weekly draw entries: {winner['weeklyDrawEntries']}",
        f"  {referrals} referral{'' if referrals == 1 else 's'} ({_ids(winner['referralIds'])})",
        f"  Completed quests: {', '.join(winner['completedQuests']) or 'none'}",
        f"  Completed challenges: {', '.join(winner['completedChallenges']) or 'none'}",
        f"  Available prize asset IDs: {_ids(winner['availablePrizeAssetIds'])}",
        f"  Claimed prize asset IDs: {_ids(winner['claimedPrizeAssetIds'])}",
        "",
    ]
    print("\n".join(lines), file=out)


def print_prize_asset(asset, out):
    if asset.get("error"):
        print(f"  ASA {asset['assetId']}: {asset['error']}", file=out)
        return
    print(f"  ASA {asset['assetId']}: {len(asset['holders'])} holder(s)", file=out)
    for record in asset.get("balances") or []:
        print(f"    - {record['address']} ({record['amount']})", file=out)
    if not asset.get("balances"):
        print("    (no holders)", file=out)


def print_week(result, out):
    print(f"Week {result['week']} weekly draw summary", file=out)
    print("=" * 40, file=out)
    if result.get("error"):
        print(f"Error: {result['error']}", file=out)
        return
    state = result["weeklyState"]
    challenge = result["challenge"]
    print(f"Status: {state['status'] or 'unknown'}", file=out)
    print(f"Eligible accounts ingested: {state['accountsIngested'] or 0}", file=out)
    print(f"Last relative id scanned: {state['lastRelativeId'] or 0}", file=out)
    print(f"Draw winners (relative ids): {_ids(state['winners'])}", file=out)
    print("", file=out)
    print("Challenge configuration", file=out)
    print(f"  Quest IDs: {_ids(challenge['questIds'])}", file=out)
    print(f"  Draw prize asset IDs: {_ids(challenge['drawPrizeAssetIds'])}", file=out)
    print(f"  Eligible accounts reported: {challenge['numDrawEligibleAccounts'] or 0}", file=out)
    print(f"  Winners expected: {challenge['numDrawWinners'] or 0}", file=out)
    print("", file=out)
    print("Winner details", file=out)
    for index, winner in enumerate(result["winners"]):
        print_winner(winner, index, out)
    print("Prize asset holders", file=out)
    if not result["prizeAssets"]:
        print("  No prize asset data available.", file=out)
    for asset in result["prizeAssets"]:
        print_prize_asset(asset, out)


def collect(services, weeks):
    results = []
    for week in weeks:
        try:
            results.append(services.draws.fetch_week(week))
        except (IndexerError, WeekNotPublishedError) as exc:
            results.append({"week": week, "error": normalise_error(exc)})
    return results


def main(argv=None, services=None, out=None):
    out = out or sys.stdout
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        weeks = parse_weeks(args.week)
    except ValueError as exc:
        parser.error(str(exc))

    if services is None:
        overrides = {}
        if args.registry:
            overrides["algoland_app_id"] = args.registry
        if args.draw:
            overrides["draw_app_id"] = args.draw
        services = Services(Settings(**overrides))

    try:
        draw_app_id = services.registry.draw_app_id()
    except IndexerError as exc:
        print(f"Error: unable to resolve draw app id: {exc}", file=sys.stderr)
        return 1

    results = collect(services, weeks)
    if args.json:
        payload = {
            "registryAppId": services.registry.app_id,
            "drawAppId": draw_app_id,
            "weeks": results,
        }
        print(json.dumps(payload, indent=2), file=out)
        return 0

    for result in results:
        print_week(result, out)
        print("", file=out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
