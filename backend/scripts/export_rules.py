"""Write the Firestore security rules generated from core/security_rules.py.

Usage:
    PYTHONPATH=backend/src python backend/scripts/export_rules.py
    PYTHONPATH=backend/src python backend/scripts/export_rules.py --output firestore.rules
    PYTHONPATH=backend/src python backend/scripts/export_rules.py --check
"""

import argparse
import sys
from pathlib import Path

from core.security_rules import render_firestore_rules

DEFAULT_OUTPUT = Path(__file__).resolve().parents[2] / 'firestore.rules'


def main() -> None:
    parser = argparse.ArgumentParser(description='Export Firestore security rules.')
    parser.add_argument(
        '--output', type=Path, default=DEFAULT_OUTPUT,
        help=f'Destination file (default: {DEFAULT_OUTPUT})',
    )
    parser.add_argument(
        '--check', action='store_true',
        help='Exit non-zero if the file on disk is out of date instead of writing it',
    )
    args = parser.parse_args()

    rules = render_firestore_rules()
    if args.check:
        current = args.output.read_text() if args.output.exists() else ''
        if current != rules:
            print(f'{args.output} is out of date; run export_rules.py', file=sys.stderr)
            sys.exit(1)
        print(f'{args.output} is up to date')
        return

    args.output.write_text(rules)
    print(f'Wrote {args.output}')


if __name__ == '__main__':
    main()
