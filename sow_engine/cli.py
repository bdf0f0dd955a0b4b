"""Command-line entry point: `sow-engine schema|export`."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from sow_engine.config import settings
from sow_engine.exceptions import TemplateEngineError
from sow_engine.models.value_store import IMAGE_SLOTS, ValueStore
from sow_engine.services.document_parser import TranscriptParser
from sow_engine.services.exporter import SowExporter
from sow_engine.services.image_loader import load_image
from sow_engine.services.schema_builder import build_schema_from_transcript
from sow_engine.services.value_mapper import UnfilledPolicy

logger = logging.getLogger("sow_engine.cli")

MODES = ("transcript", "template", "structured")

EXAMPLES = """
Examples:
  sow-engine schema template.docx
  sow-engine schema template.txt --strict -o schema.json
  sow-engine export template.docx values.json -o out/
  sow-engine export template.docx values.json --mode structured --format pdf -o sow.pdf
  sow-engine export transcript.txt values.json --logo logo.png --blank-fill -o out/
"""


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _read_template(path: Path):
    data = path.read_bytes()
    parsed = TranscriptParser().parse(data, path.suffix or ".txt", filename=path.name)
    return data, parsed


def _load_store(values_path: Optional[Path], logo: Optional[Path], signature: Optional[Path]) -> ValueStore:
    values = {}
    if values_path is not None:
        values = json.loads(values_path.read_text(encoding="utf-8"))
        if not isinstance(values, dict):
            raise ValueError(f"{values_path} must hold a JSON object of field values")

    images = {}
    files = {"logo": logo, "signature": signature}
    for slot in IMAGE_SLOTS:
        source = files[slot].read_bytes() if files[slot] is not None else values.get(slot)
        if isinstance(source, (bytes, str)) and source:
            images[slot] = load_image(source, slot)
    return ValueStore.from_mapping(values, images)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_schema(args: argparse.Namespace) -> int:
    path = Path(args.template)
    _, parsed = _read_template(path)
    schema = build_schema_from_transcript(
        parsed.transcript,
        template_id=args.id or path.stem,
        title=args.title or parsed.metadata.get("title") or path.stem,
        strict=args.strict,
    )
    payload = schema.model_dump_json(indent=2)
    if args.output:
        Path(args.output).write_text(payload + "\n", encoding="utf-8")
        logger.info("Wrote schema with %d fields to %s", len(schema.fields), args.output)
    else:
        print(payload)
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    path = Path(args.template)
    data, parsed = _read_template(path)
    store = _load_store(
        Path(args.values) if args.values else None,
        Path(args.logo) if args.logo else None,
        Path(args.signature) if args.signature else None,
    )

    if args.blank_fill is not None:
        policy = UnfilledPolicy.blank_fill(args.blank_fill or None)
    else:
        policy = UnfilledPolicy.from_settings()

    mode = args.mode
    if mode is None:
        mode = "template" if path.suffix.lower() == ".docx" and args.format == "docx" else "transcript"
    if mode == "template" and (path.suffix.lower() != ".docx" or args.format != "docx"):
        raise ValueError("Template mode needs a .docx template and --format docx")

    exporter = SowExporter(policy=policy, title=args.title)
    if mode == "template":
        doc = exporter.export_template_docx(data, store, filename=path.name)
    elif mode == "structured":
        schema = build_schema_from_transcript(parsed.transcript, path.stem, args.title, strict=args.strict)
        if args.format == "pdf":
            doc = exporter.export_structured_pdf(schema, store)
        else:
            doc = exporter.export_structured_docx(schema, store)
    elif args.format == "pdf":
        doc = exporter.export_transcript_pdf(parsed.transcript, store)
    else:
        doc = exporter.export_transcript_docx(parsed.transcript, store)

    out = Path(args.output)
    if out.is_dir():
        out = out / doc.filename
    out.write_bytes(doc.content)
    print(out)
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sow-engine",
        description="Extract fill-in fields from SOW templates and export filled documents.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EXAMPLES,
    )
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="Logging level (default: %(default)s)")
    sub = parser.add_subparsers(dest="command", required=True)

    schema = sub.add_parser("schema", help="Print the field schema of a template as JSON")
    schema.add_argument("template", help="Template file (.docx, .pdf or .txt)")
    schema.add_argument("--id", help="Schema id (default: file stem)")
    schema.add_argument("--title", help="Schema title")
    schema.add_argument("--strict", action="store_true", default=None,
                        help="Only literal [..] / <..> placeholders, no synthesized fields")
    schema.add_argument("-o", "--output", help="Write JSON here instead of stdout")
    schema.set_defaults(func=cmd_schema)

    export = sub.add_parser("export", help="Fill a template and write the document")
    export.add_argument("template", help="Template file (.docx, .pdf or .txt)")
    export.add_argument("values", nargs="?", help="JSON file with field values")
    export.add_argument("-o", "--output", required=True, help="Output file, or a directory for the generated name")
    export.add_argument("--format", choices=("docx", "pdf"), default="docx")
    export.add_argument("--mode", choices=MODES,
                        help="template: edit the .docx in place; transcript: line-for-line; "
                             "structured: canonical layout (default: template for .docx, else transcript)")
    export.add_argument("--title", help="Document title for the structured layout and the filename")
    export.add_argument("--logo", help="Logo image file")
    export.add_argument("--signature", help="Signature image file")
    export.add_argument("--blank-fill", nargs="?", const="", default=None, metavar="MARKER",
                        help="Replace unfilled placeholders with MARKER (default marker when omitted)")
    export.add_argument("--strict", action="store_true", default=None,
                        help="Structured mode: only literal placeholders become fields")
    export.set_defaults(func=cmd_export)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    try:
        return args.func(args)
    except (TemplateEngineError, ValueError, RuntimeError, OSError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
