"""
Command-line interface for district registry reconciliation.

Usage:
    python -m scripts.registry states
    python -m scripts.registry create-tables
    python -m scripts.registry load MA "MASS Supt List - Sheet1.csv" --source-name "Massachusetts MASS"
    python -m scripts.registry match TN "Knox County Schools"
    python -m scripts.registry delete MD
    python -m scripts.registry delete --batch 6f1c...
"""

import argparse
import json
import logging
import sys

from db_config import DBConfig, get_connection

from .config import LoaderConfig, get_jurisdiction, list_jurisdictions, normalize_state_code

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def cmd_states(args):
    """List states with their own name vocabulary."""
    print("\n" + "=" * 60)
    print("STATE NAME VOCABULARIES")
    print("=" * 60 + "\n")

    for code in list_jurisdictions():
        jur = get_jurisdiction(code)
        print(f"  {code}  {jur.name}")
        for pattern, repl in jur.effective_vocabulary():
            target = f"'{repl}'" if repl else "(removed)"
            print(f"      {pattern:40s} -> {target}")
        if jur.notes:
            print(f"      note: {jur.notes}")
        print()

    default = get_jurisdiction(None)
    print("  Other states use the default vocabulary:")
    for pattern, _ in default.vocabulary:
        print(f"      {pattern}")
    print()


def cmd_create_tables(args):
    """Create the registry tables if they do not exist."""
    from .store import RegistryStore

    conn = get_connection(DBConfig.from_env())
    try:
        RegistryStore(conn).create_tables()
        print("Registry tables ready: data_imports, state_registry_districts, district_matches")
    finally:
        conn.close()


def cmd_load(args):
    """Load and match a state roster."""
    from .loader import run_load
    from .models import RosterSource
    from .report import print_summary
    from .sources import RosterColumns, read_roster

    state = normalize_state_code(args.state)
    columns = RosterColumns(
        district=args.name_col,
        first=args.first_col,
        last=args.last_col,
        full_name=args.full_name_col,
        email=args.email_col,
        phone=args.phone_col,
        state_id=args.id_col,
    )

    print(f"\n{'='*60}")
    print(f"LOADING ROSTER: {state}")
    print(f"{'='*60}\n")

    records = read_roster(args.file, state, columns)
    with_email = sum(1 for r in records if r.administrator_email)
    print(f"  Parsed {len(records):,} records ({with_email:,} with email)")

    source = RosterSource(
        name=args.source_name or f"{get_jurisdiction(state).name} roster",
        url=args.source_url,
        file=args.file,
        notes=args.notes,
    )
    config = LoaderConfig(matched_by=args.matched_by)

    stats = run_load(state, records, source, db=DBConfig.from_env(), config=config)

    if args.json:
        print(json.dumps(stats.to_dict(), indent=2, default=str))
    else:
        print_summary(stats)


def cmd_match(args):
    """Match a single name against live NCES candidates."""
    from .matcher import DistrictMatcher
    from .normalizer import normalize_district_name
    from .store import RegistryStore

    state = normalize_state_code(args.state)
    conn = get_connection(DBConfig.from_env())

    try:
        candidates = RegistryStore(conn).load_reference_entities(state)
    finally:
        conn.close()

    matcher = DistrictMatcher(candidates, state)
    result = matcher.match(args.name)

    print(f"\n{'='*60}")
    print(f"MATCH TEST")
    print(f"{'='*60}")
    print(f"  Input:      {args.name}")
    print(f"  Normalized: {normalize_district_name(args.name, state)}")
    print(f"  State:      {state} ({len(matcher):,} NCES candidates)")
    print()

    if result:
        print(f"  MATCHED!")
        print(f"  NCES ID:  {result.entity.reference_id}")
        print(f"  NCES name: {result.entity.name}")
        print(f"  Method:   {result.method}")
        print(f"  Score:    {result.score:.4f}")
        print(f"  Review:   {'yes' if result.needs_review else 'no'}")
    else:
        print(f"  NO MATCH FOUND")
    print()


def cmd_delete(args):
    """Delete roster rows and matches for a state or one import batch."""
    from .store import RegistryStore

    if not args.state and not args.batch:
        print("Error: give a state code or --batch ID")
        sys.exit(1)

    conn = get_connection(DBConfig.from_env())
    try:
        store = RegistryStore(conn)
        if args.batch:
            print(f"\n=== DELETE BATCH: {args.batch} ===\n")
            deleted = store.delete_batch(args.batch, keep_imports=args.keep_imports)
        else:
            state = normalize_state_code(args.state)
            print(f"\n=== DELETE STATE: {state} ===\n")
            counts = store.state_counts(state)
            print(f"  state_registry_districts: {counts['registry']:,}")
            print(f"  district_matches:         {counts['matches']:,}")
            if counts["registry"] == 0:
                print(f"\n  No records found for {state}. Nothing to delete.")
                return
            deleted = store.delete_state(state, keep_imports=args.keep_imports)

        print(f"\n  Deleted matches:  {deleted['matches']:,}")
        print(f"  Deleted records:  {deleted['registry']:,}")
        print(f"  Deleted imports:  {deleted['imports']:,}")
        print()
    finally:
        conn.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="District Registry Reconciliation CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m scripts.registry states
  python -m scripts.registry load WI roster.csv --name-col "District Name"
  python -m scripts.registry load NH sup_list.xlsx --full-name-col Superintendent
  python -m scripts.registry match MA "Agawam Public Schools"
  python -m scripts.registry delete MD --keep-imports
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    states_parser = subparsers.add_parser('states', help='List state name vocabularies')
    states_parser.set_defaults(func=cmd_states)

    tables_parser = subparsers.add_parser('create-tables', help='Create registry tables')
    tables_parser.set_defaults(func=cmd_create_tables)

    # Load command
    load_parser = subparsers.add_parser('load', help='Load and match a state roster')
    load_parser.add_argument('state', help='Two-letter state code')
    load_parser.add_argument('file', help='Roster CSV or XLSX')
    load_parser.add_argument('--source-name', help='data_imports.source_name')
    load_parser.add_argument('--source-url', help='data_imports.source_url')
    load_parser.add_argument('--notes', help='data_imports.notes')
    load_parser.add_argument('--matched-by', default=LoaderConfig().matched_by,
                             help='Attribution written to matches')
    load_parser.add_argument('--name-col', default='district', help='District name column')
    load_parser.add_argument('--first-col', default='first', help='First name column')
    load_parser.add_argument('--last-col', default='last', help='Last name column')
    load_parser.add_argument('--full-name-col', help='Full name column (parsed into first/last)')
    load_parser.add_argument('--email-col', default='email', help='Email column')
    load_parser.add_argument('--phone-col', help='Phone column')
    load_parser.add_argument('--id-col', help='State district id column')
    load_parser.add_argument('--json', action='store_true', help='Print stats as JSON')
    load_parser.set_defaults(func=cmd_load)

    # Match command
    match_parser = subparsers.add_parser('match', help='Test matching a single name')
    match_parser.add_argument('state', help='Two-letter state code')
    match_parser.add_argument('name', help='District name to match')
    match_parser.set_defaults(func=cmd_match)

    # Delete command
    delete_parser = subparsers.add_parser('delete', help='Delete a state or batch')
    delete_parser.add_argument('state', nargs='?', help='Two-letter state code')
    delete_parser.add_argument('--batch', help='Import batch id')
    delete_parser.add_argument('--keep-imports', action='store_true',
                               help='Keep data_imports rows')
    delete_parser.set_defaults(func=cmd_delete)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except (ValueError, FileNotFoundError) as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
