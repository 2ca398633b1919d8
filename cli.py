"""Small CLI for the voter client and the reference bulletin board.

Usage examples:
    python cli.py serve --port 5000
    python cli.py config
    python cli.py board-hash
    python cli.py vote --voter-id voter123 --email voter@foo.bar --cvr '{"1": "option1", "2": "optiona"}' --spoil
"""

import argparse
import json
import logging
import sys

from voter_client import AVClient, AVClientError
from voter_client.board import create_app
from voter_client.config import Settings, configure_logging
from voter_client.connectors import BulletinBoard

logger = logging.getLogger("voter_client.cli")


def serve(port: int):
    create_app().run(port=port)


def show_config(settings: Settings):
    board = BulletinBoard(settings.board_url, timeout=settings.timeout)
    print(json.dumps(board.get_election_config(), indent=2))


def board_hash(settings: Settings):
    board = BulletinBoard(settings.board_url, timeout=settings.timeout)
    print(json.dumps(board.get_board_hash()))


def vote(settings: Settings, voter_id: str, email: str, cvr: str, spoil: bool, otp: str = None):
    client = AVClient(settings.board_url, timeout=settings.timeout)
    client.initialize()
    client.request_access_code(voter_id, email)
    code = otp or input("One-time code sent to %s: " % email).strip()
    client.validate_access_code(code)
    client.register_voter()

    tracking_code = client.construct_ballot_cryptograms(json.loads(cvr))
    print("tracking code:", tracking_code)
    if spoil:
        print("test code:", client.generate_test_code())
        print("spoiled ballot:", json.dumps(client.spoil_ballot_cryptograms()))
    receipt = client.submit_ballot_cryptograms()
    print(json.dumps(receipt.to_json(), indent=2))


def main():
    p = argparse.ArgumentParser()
    sub = p.add_subparsers(dest="cmd")
    s = sub.add_parser("serve")
    s.add_argument("--port", type=int, default=5000)
    sub.add_parser("config")
    sub.add_parser("board-hash")
    v = sub.add_parser("vote")
    v.add_argument("--voter-id", required=True)
    v.add_argument("--email", required=True)
    v.add_argument("--cvr", required=True, help="JSON object contest -> option")
    v.add_argument("--otp", help="one-time code (prompted for when omitted)")
    v.add_argument("--spoil", action="store_true", help="spoil an audit copy before submitting")
    args = p.parse_args()

    settings = Settings.from_env()
    configure_logging(settings)
    try:
        if args.cmd == "serve":
            serve(args.port)
        elif args.cmd == "config":
            show_config(settings)
        elif args.cmd == "board-hash":
            board_hash(settings)
        elif args.cmd == "vote":
            vote(settings, args.voter_id, args.email, args.cvr, args.spoil, args.otp)
        else:
            p.print_help()
    except AVClientError as e:
        logger.error("%s failed: %s", args.cmd, e)
        sys.exit(1)


if __name__ == "__main__":
    main()
