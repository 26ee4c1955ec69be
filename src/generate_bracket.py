import argparse
import os
import sys

import yaml

from brackets.compass import generate_compass_draw
from brackets.double_elimination import generate_double_elimination
from brackets.elimination import generate_knockout
from brackets.errors import BracketError
from brackets.models import BYE, Participant
from brackets.round_robin import generate_round_robin

FORMATS = ('single', 'double', 'compass', 'round_robin')


def load_participants(file_path):
    """Read a YAML list of participants (dicts with at least user_id, or plain ids)."""
    with open(file_path, mode='r', encoding='utf-8') as file:
        data = yaml.safe_load(file) or []
    participants = []
    for entry in data:
        if isinstance(entry, dict):
            participants.append(Participant.from_dict(entry))
        else:
            participants.append(Participant(user_id=str(entry)))
    return participants


def build_structure(participants, args):
    if args.format == 'double':
        return generate_double_elimination(participants, args.seeding, is_doubles=args.doubles)
    if args.format == 'compass':
        return generate_compass_draw(participants, args.seeding, is_doubles=args.doubles)
    if args.format == 'round_robin':
        return generate_round_robin(participants, args.seeding, is_doubles=args.doubles,
                                    group_count=args.groups, top_advance_per_group=args.top_per_group)
    return generate_knockout(participants, args.seeding, is_doubles=args.doubles, bronze_match=args.bronze)


def _label(team):
    if team is None:
        return 'TBD'
    return team


def print_structure(structure):
    first_bracket = True
    for bracket in structure.brackets.values():
        if not first_bracket:
            print()
        print(f"# {bracket.name}")
        for round_number in sorted(bracket.rounds):
            print(f"## {bracket.round_names.get(round_number) or f'Round {round_number}'}")
            for node in structure.round_nodes(bracket.name, round_number):
                line = f"{_label(node.team1)} vs {_label(node.team2)}"
                if node.is_decided:
                    line += f"  [{node.status}: {node.winner or 'no winner'}]"
                elif BYE in (node.team1, node.team2):
                    line += "  [bye]"
                print(line)
        first_bracket = False


def main():
    script_dir = os.path.dirname(__file__)
    base_dir = os.path.dirname(script_dir)

    parser = argparse.ArgumentParser(description='Print a tournament bracket for a list of participants.')
    parser.add_argument('participants_file', nargs='?', default=os.path.join(base_dir, 'data', 'participants.yaml'))
    parser.add_argument('--format', choices=FORMATS, default='single')
    parser.add_argument('--seeding', choices=('ranked', 'random', 'manual'), default='ranked')
    parser.add_argument('--bronze', action='store_true', help='add a third place match (single elimination)')
    parser.add_argument('--singles', dest='doubles', action='store_false')
    parser.add_argument('--groups', type=int, default=1)
    parser.add_argument('--top-per-group', type=int, default=2)
    args = parser.parse_args()

    participants = load_participants(args.participants_file)
    try:
        structure = build_structure(participants, args)
    except BracketError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)
    print_structure(structure)


if __name__ == '__main__':
    main()
