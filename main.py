from __future__ import annotations

import argparse
import os

from graph.builder import export_graph_info
from graph.placeholders import flow_variables
from loaders.flow_loader import load_flow_with_visualization


def main() -> None:
    parser = argparse.ArgumentParser(description="Validate a call flow and print a report")
    parser.add_argument("config", nargs="?", help="Path to flow JSON file")
    parser.add_argument("--png", help="Write a visualization to this path")
    args = parser.parse_args()

    base_dir = os.path.dirname(os.path.abspath(__file__))
    config_path = args.config or os.path.join(base_dir, "config", "sample_flow.json")

    print("=" * 60)
    print("Call flow report")
    print("=" * 60)

    store, report = load_flow_with_visualization(config_path, args.png)
    flow = store.flow

    info = export_graph_info(flow)
    print(f"\nFlow: {flow.name} ({'active' if flow.is_active else 'inactive'})")
    print(f"Steps: {info['graph_stats']['nodes']}")
    print(f"Responses: {info['graph_stats']['edges']}")
    print(f"Loops: {'no' if info['graph_stats']['is_dag'] else 'yes'}")
    for node_type, ids in sorted(info["type_groups"].items()):
        print(f"  {node_type}: {len(ids)}")

    variables = flow_variables(flow)
    if variables:
        print(f"\nContact fields used: {', '.join(variables)}")

    if report.orphans:
        names = [flow.nodes[n].label or n for n in report.orphans]
        print(f"\n⚠️ Orphaned steps: {names}")
    for w in report.warnings:
        print(f"⚠️ {flow.nodes[w.node_id].label or w.node_id}: {w.message}")
    for e in report.errors:
        print(f"❌ {e}")

    print("\n✅ Flow is valid" if report.ok else "\n❌ Flow has structural errors")
    if args.png:
        print(f"Visualization saved: {args.png}")


if __name__ == "__main__":
    main()
