import argparse
import json
import sys

from cardflow.core.exception import ExternalToolError, FlowIOError, MarkerError, PromptNodeError, SpecError, StrictModeError
from cardflow.core.observability import ensure_logging
from cardflow.core.runtime.settings import load_settings
from cardflow.core.scan import scan_manifest
from cardflow.core.spec import ScanSpec
from cardflow.core.workspace import generate

_HANDLED = (SpecError, StrictModeError, MarkerError, ExternalToolError, FlowIOError, PromptNodeError)


def _add_scan_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--cards", required=True, help="Directory of Adaptive Card JSON files")
    p.add_argument("--group-by", choices=["folder", "flow_field"], default=None, help="Flow grouping strategy")
    p.add_argument("--default-flow", default=None, help="Flow name for cards without a flow identity")
    p.add_argument("--strict", action="store_true", help="Fail on the first recoverable problem instead of warning")
    p.add_argument("--json", action="store_true", help="Output machine-readable JSON")


def main(argv=None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = argparse.ArgumentParser(prog="cardflow", description="Compile Adaptive Card JSON into flow documents")
    sp = parser.add_subparsers(dest="cmd", required=True)

    scanp = sp.add_parser("scan", help="Scan a cards directory and print the flow grouping")
    _add_scan_args(scanp)

    genp = sp.add_parser("generate", help="Generate flow documents from a cards directory")
    _add_scan_args(genp)
    genp.add_argument("--out", required=True, help="Output workspace directory")
    genp.add_argument("--primary-flow", default=None, help="Flow written to the reserved primary document")
    genp.add_argument("--prompt", action="store_true", help="Place the prompt-routing node first in the primary flow")
    genp.add_argument("--backend", choices=["cli", "builtin"], default=None, help="Flow compiler backend (default from settings)")
    genp.add_argument("--flow-bin", default=None, help="Path to the greentic-flow binary")

    args = parser.parse_args(argv)

    overrides = {}
    if getattr(args, "backend", None):
        overrides["backend"] = args.backend
    if getattr(args, "flow_bin", None):
        overrides["flow_bin"] = args.flow_bin
    settings = load_settings(overrides or None)
    ensure_logging(settings)

    try:
        if args.cmd == "scan":
            manifest = scan_manifest(
                ScanSpec(
                    cards_dir=args.cards,
                    group_by=args.group_by,
                    default_flow=args.default_flow,
                    strict=bool(args.strict),
                )
            )
            if args.json:
                print(json.dumps(manifest.as_dict(), ensure_ascii=False))
            else:
                for f in manifest.flows:
                    print(f"{f.flow_name}: {len(f.cards)} cards")
                for w in manifest.warnings:
                    print(f"! [{w.kind.value}] {w.message}")
            return 0

        if args.cmd == "generate":
            report = generate(
                {
                    "cards_dir": args.cards,
                    "out_dir": args.out,
                    "group_by": args.group_by,
                    "default_flow": args.default_flow,
                    "strict": bool(args.strict),
                    "primary_flow": args.primary_flow,
                    "prompt": bool(args.prompt),
                },
                settings=settings,
            )
            if args.json:
                print(json.dumps(report.as_dict(), ensure_ascii=False))
            else:
                print(report.summary())
            return 0
    except _HANDLED as e:
        if getattr(args, "json", False):
            print(json.dumps({"ok": False, "error": type(e).__name__, "msg": str(e)}, ensure_ascii=False))
        else:
            print(f"ERROR: {e}", file=sys.stderr)
        return 2

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
