#!/usr/bin/env python3
"""
Interactive call-flow preview: walk a flow the way a caller would
"""

import argparse
import json
import sys
import logging
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from core.config import get_settings
from core.errors import FlowError
from core.matching import EdgeMatcher
from graph.traversal import PathSelector, TraversalEngine
from loaders.flow_loader import load_flow_file

load_dotenv()


def setup_logging(verbose: bool = False):
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler('flow_preview.log')
        ]
    )


def load_contact(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    with open(path, "r", encoding="utf-8") as f:
        contact = json.load(f)
    if not isinstance(contact, dict):
        raise ValueError("Contact file must contain a JSON object")
    return contact


def validate_only(config_path: str) -> bool:
    """Validate a flow file without starting a preview"""
    try:
        print(f"Validating flow: {config_path}")
        _, report = load_flow_file(config_path)
    except (OSError, json.JSONDecodeError, FlowError) as e:
        print(f"❌ Flow validation failed: {e}")
        return False

    for w in report.warnings:
        print(f"   ⚠️ {w.node_id}: {w.message}")
    if report.orphans:
        print(f"   ⚠️ Orphaned steps: {report.orphans}")
    for e in report.errors:
        print(f"   ❌ {e}")
    if report.ok:
        print(f"✅ Flow is valid ({len(report.connected)} connected step(s))")
    return report.ok


def print_turn(engine: TraversalEngine):
    transcript = engine.transcript
    if transcript:
        print(f"\nAI> {transcript[-1].text}")

    terminal = engine.terminal_state()
    if terminal:
        print(f"\n[{terminal.banner}]")
        return

    print("\n   Responses:")
    for i, edge in enumerate(engine.choices(), start=1):
        print(f"   {i}. \"{edge.condition_value}\"")


def print_info(engine: TraversalEngine):
    node = engine.current_node
    print(f"\n Preview info:")
    print(f"   Current step: {node.label if node else 'None'} ({node.node_type.value if node else '-'})")
    print(f"   Turns: {sum(1 for m in engine.transcript if m.role == 'customer')}")
    if node and node.capture_field:
        print(f"   Captures: {node.capture_field}")


def print_path(selector: PathSelector):
    print("\n Selected path:")
    for node in selector.selected_path():
        print(f"   -> [{node.node_type.value}] {node.label}")


def main():
    """Main CLI function"""
    parser = argparse.ArgumentParser(
        description="Call flow preview",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Walk a flow
  flow-preview --config config/sample_flow.json

  # Bind placeholders from a contact record
  flow-preview --config config/sample_flow.json --contact contact.json

  # Validation only
  flow-preview --config config/sample_flow.json --validate-only
        """
    )

    parser.add_argument('--config', required=True, help='Path to flow JSON file')
    parser.add_argument('--contact', help='Path to a JSON object of contact fields')
    parser.add_argument('--match', choices=['exact', 'contains'],
                        help='Free-text matching strategy (default: EDGE_MATCH_STRATEGY or exact)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    parser.add_argument('--validate-only', action='store_true',
                        help='Validate the flow and exit (no preview)')

    args = parser.parse_args()

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    if args.validate_only:
        sys.exit(0 if validate_only(args.config) else 1)

    try:
        store, report = load_flow_file(args.config)
        contact = load_contact(args.contact)
        matcher = EdgeMatcher(args.match or get_settings().edge_match_strategy)
        engine = TraversalEngine(store, contact=contact)
        engine.reset()
        selector = PathSelector(store)
    except FileNotFoundError as e:
        print(f"File not found: {e}")
        sys.exit(1)
    except json.JSONDecodeError as e:
        print(f"Invalid JSON: {e}")
        sys.exit(1)
    except (FlowError, ValueError) as e:
        logger.error(f"Initialization failed: {e}")
        print(f"Could not start preview: {e}")
        sys.exit(1)

    if report.orphans:
        print(f"⚠️ {len(report.orphans)} step(s) are not reachable from the start")

    print("\n" + "=" * 60)
    print(f"Preview: {store.flow.name}")
    print("   Commands:")
    print("   - 'quit', 'exit', 'q': exit")
    print("   - 'reset': start over")
    print("   - 'info': current step")
    print("   - 'path': selected authoring path")
    print("   Answer with a response number or the customer's words.")
    print("=" * 60)
    print_turn(engine)

    while True:
        try:
            user_input = input("\n Customer> ").strip()
            if not user_input:
                continue

            command = user_input.lower()
            if command in ['quit', 'exit', 'q']:
                print("\n Preview closed.")
                break
            elif command == 'reset':
                engine.reset()
                print_turn(engine)
                continue
            elif command == 'info':
                print_info(engine)
                continue
            elif command == 'path':
                print_path(selector)
                continue

            choices = engine.choices()
            if not choices:
                print("The call is over. Type 'reset' to start again.")
                continue

            if user_input.isdigit() and 1 <= int(user_input) <= len(choices):
                edge = choices[int(user_input) - 1]
            else:
                edge = matcher.match(choices, user_input)
            if edge is None:
                print("No response matches that. Pick a number from the list.")
                continue

            selector.select(engine.current_node_id, choices.index(edge))
            engine.advance(edge)
            print_turn(engine)

        except KeyboardInterrupt:
            print("\n\n Preview closed.")
            break
        except EOFError:
            print("\n\nInput closed.")
            break
        except FlowError as e:
            logger.error(f"Preview error: {e}")
            print(f"Error: {e}")


if __name__ == "__main__":
    main()
