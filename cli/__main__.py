"""Entry point for linguahub CLI client."""

import argparse
import sys

import requests

from cli.api_client import LinguaAPIClient
from cli.console import ConsoleUI


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='LinguaHub - Spanish vocabulary builder')
    parser.add_argument(
        '--server',
        default='http://localhost:8000',
        help='Server URL (default: http://localhost:8000)'
    )
    parser.add_argument(
        '--user',
        default='default',
        help='User ID (default: default)'
    )
    commands = parser.add_subparsers(dest='command', required=True)

    lookup = commands.add_parser('lookup', help='Look up a Spanish word')
    lookup.add_argument('word')

    add = commands.add_parser('add', help='Add a word to your word bank')
    add.add_argument('term')
    add.add_argument('definition', nargs='?', default='')
    add.add_argument('--category', default='General')

    words = commands.add_parser('words', help='List your word bank')
    words.add_argument('--category')

    review = commands.add_parser('review', help='Study your words')
    review.add_argument('--category')
    review.add_argument('--all', action='store_true', help='Review every word in order')

    commands.add_parser('stats', help='Show level, XP and streak')
    commands.add_parser('usage', help="Show today's free-tier usage")
    return parser


def run(args, ui: ConsoleUI):
    client = ui.client
    if args.command == 'lookup':
        ui.print_word_info(client.lookup(args.word))
    elif args.command == 'add':
        ui.print_added(client.add_word(args.term, args.definition, args.category))
    elif args.command == 'words':
        ui.print_words(client.list_words(args.category))
    elif args.command == 'review':
        ui.run_review(args.category, smart=not args.all)
    elif args.command == 'stats':
        ui.print_stats(client.get_stats())
    elif args.command == 'usage':
        ui.print_usage(client.get_usage())


def main(argv=None):
    args = build_parser().parse_args(argv)

    client = LinguaAPIClient(base_url=args.server, user_id=args.user)
    ui = ConsoleUI(client)

    try:
        run(args, ui)
    except requests.HTTPError as e:
        response = e.response
        if response is not None and response.status_code == 429:
            print("Daily limit reached. Upgrade to premium for unlimited use.")
        else:
            print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print('\nGoodbye!')
        sys.exit(0)


if __name__ == '__main__':
    main()
