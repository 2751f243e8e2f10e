#!/usr/bin/env python3
"""
Module: scripts/aham_chat.py
Summary: Command-line front end for the on-device oracle: ask, chat, notes, grouping.
Inputs: AHAM_* env (model path, data dir, sources dir); CLI flags
Outputs: Answers with sources on stdout; entries persisted under AHAM_DATA_DIR
Related: aham/runtime/*

Usage:
  python scripts/aham_chat.py --dry-run sources
  python scripts/aham_chat.py ask "What gigs are booked next week?" --source gig
  python scripts/aham_chat.py chat --source work
  python scripts/aham_chat.py note add "buy milk" --tag errands
  python scripts/aham_chat.py note list
  python scripts/aham_chat.py group
  python scripts/aham_chat.py source create personal --file notes.md

Environment:
  - AHAM_MODEL_PATH, AHAM_DATA_DIR, AHAM_SOURCES_DIR (see aham/runtime/config.py)
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from aham.runtime import (
    AhamRuntime,
    LoggingTelemetryClient,
    ModelLoadError,
    MutationRollbackError,
    RuntimeConfig,
    SessionLostError,
)

logger = logging.getLogger("aham_chat")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Talk to the on-device oracle and organize notes")
    p.add_argument("--model-path", default=None, help="GGUF model file (overrides AHAM_MODEL_PATH)")
    p.add_argument("--data-dir", default=None, help="Directory for entries, snapshots and user sources")
    p.add_argument("--sources-dir", default=None, help="Directory of built-in *.md knowledge sources")
    p.add_argument("--threads", type=int, default=None)
    p.add_argument("--gpu-layers", type=int, default=None, help="0 keeps inference on the CPU")
    p.add_argument("--max-new-tokens", type=int, default=None)
    p.add_argument("--temperature", type=float, default=None)
    p.add_argument("--telemetry", action="store_true", help="Log model load/generate spans")
    p.add_argument("--dry-run", action="store_true", help="Print the plan and exit without loading the model")
    p.add_argument("-v", "--verbose", action="store_true")

    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("sources", help="List knowledge sources")

    ask = sub.add_parser("ask", help="Answer one question from the knowledge sources")
    ask.add_argument("question")
    ask.add_argument("--source", action="append", default=[], help="Restrict to a source (repeat); default all")

    chat = sub.add_parser("chat", help="Interactive question loop")
    chat.add_argument("--source", action="append", default=[], help="Restrict to a source (repeat); default all")

    note = sub.add_parser("note", help="Manage entries")
    note_sub = note.add_subparsers(dest="note_command", required=True)
    note_add = note_sub.add_parser("add")
    note_add.add_argument("text")
    note_add.add_argument("--tag", action="append", default=[])
    note_sub.add_parser("list")
    note_del = note_sub.add_parser("delete")
    note_del.add_argument("entry_id")
    note_sub.add_parser("restore", help="Replace entries with the last known good snapshot")

    sub.add_parser("group", help="Reorganize entries by tag and semantic similarity")

    source = sub.add_parser("source", help="Manage user-created knowledge sources")
    source_sub = source.add_subparsers(dest="source_command", required=True)
    create = source_sub.add_parser("create")
    create.add_argument("name")
    create.add_argument("--file", default=None, help="Read initial content from a file")
    rename = source_sub.add_parser("rename")
    rename.add_argument("old")
    rename.add_argument("new")
    delete = source_sub.add_parser("delete")
    delete.add_argument("name")
    return p.parse_args(argv)


def build_config(args: argparse.Namespace) -> RuntimeConfig:
    env = dict(os.environ)
    if args.data_dir:
        env["AHAM_DATA_DIR"] = args.data_dir
    if args.sources_dir:
        env["AHAM_SOURCES_DIR"] = args.sources_dir
    config = RuntimeConfig.from_env(env)

    overrides = {}
    if args.model_path:
        overrides["model_path"] = args.model_path
    if args.threads is not None:
        overrides["thread_count"] = args.threads
    if args.gpu_layers is not None:
        overrides["gpu_layers"] = args.gpu_layers
    if args.max_new_tokens is not None:
        overrides["max_new_tokens"] = args.max_new_tokens
    if args.temperature is not None:
        overrides["temperature"] = args.temperature
    if overrides:
        config.model = replace(config.model, **overrides)
    return config


def print_answer(runtime: AhamRuntime, question: str, sources: list[str]) -> None:
    result = runtime.answers.answer(question, sources or None)
    print(result.answer)
    print(f"\n[sources] {', '.join(result.sources_used) or 'none'}")
    if result.unreadable_sources:
        print(f"[warn] unreadable: {', '.join(result.unreadable_sources)}")


def run_chat(runtime: AhamRuntime, sources: list[str]) -> int:
    print("Type your question. Ctrl-D or /exit to quit.")
    while True:
        try:
            user = input("you> ").strip()
        except EOFError:
            print()
            break
        if not user:
            continue
        if user in {"/exit", ":q"}:
            break
        try:
            print_answer(runtime, user, sources)
        except SessionLostError as exc:
            print(f"[error] {exc}")
            return 1
        except Exception as exc:
            print(f"[error] generation failed: {exc}")
            continue
        print()
    return 0


def run_note(runtime: AhamRuntime, args: argparse.Namespace) -> int:
    store = runtime.entries
    if args.note_command == "add":
        entry = store.add(args.text, args.tag)
        print(f"{entry.id} {entry.tags}")
    elif args.note_command == "list":
        for entry in store.list():
            print(f"[{entry.id}] {entry.timestamp.isoformat(timespec='seconds')} {' '.join(entry.tags)}")
            print(f"  {entry.text}")
    elif args.note_command == "delete":
        store.delete(args.entry_id)
    elif args.note_command == "restore":
        entries = runtime.guard.last_known_good()
        if not entries:
            print("[warn] no snapshot available")
            return 1
        store.replace_all(entries)
        print(f"[restore] {len(entries)} entries restored from {runtime.guard.snapshot_path}")
    return 0


def run_source(runtime: AhamRuntime, args: argparse.Namespace) -> int:
    store = runtime.sources
    if args.source_command == "create":
        content = Path(args.file).read_text(encoding="utf-8") if args.file else ""
        created = store.create(args.name, content)
        print(f"[source] created {created.identifier} ({created.size} bytes)")
    elif args.source_command == "rename":
        store.rename(args.old, args.new)
    elif args.source_command == "delete":
        store.delete(args.name)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = build_config(args)
    telemetry = LoggingTelemetryClient(level=logging.WARNING) if args.telemetry else None
    runtime = AhamRuntime.from_config(config, telemetry=telemetry)

    if args.dry_run:
        print("[plan] Oracle runtime:")
        print(f"  model_path={config.model.model_path}")
        print(f"  n_ctx={config.model.context_window} n_batch={config.model.batch_size} "
              f"threads={config.model.thread_count} gpu_layers={config.model.gpu_layers}")
        print(f"  max_new_tokens={config.model.max_new_tokens} temp={config.model.temperature} top_p={config.model.top_p}")
        print(f"  data_dir={config.data_dir} sources_dir={config.sources_dir or '-'}")
        print(f"  sources={', '.join(runtime.assembler.list_sources()) or 'none'}")
        print(f"  entries={len(runtime.entries)}")
        print("[plan] No model load due to --dry-run")
        return 0

    try:
        if args.command == "sources":
            for tag in runtime.sources.source_tags():
                print(f"{tag.name}\t{tag.origin}")
            return 0
        if args.command == "note":
            return run_note(runtime, args)
        if args.command == "source":
            return run_source(runtime, args)

        try:
            runtime.session.initialize()
        except ModelLoadError as exc:
            print(f"[error] {exc}")
            return 1
        print(f"[model] {runtime.session.describe()}")

        if args.command == "ask":
            try:
                print_answer(runtime, args.question, args.source)
            except SessionLostError as exc:
                print(f"[error] {exc}")
                return 1
            return 0
        if args.command == "chat":
            return run_chat(runtime, args.source)
        if args.command == "group":
            try:
                outcome = runtime.reorganize()
            except MutationRollbackError as exc:
                print(f"[error] grouping failed AND restore failed: {exc}")
                print(f"Hint: recover manually from {runtime.guard.snapshot_path}")
                return 2
            except Exception as exc:
                print(f"[error] grouping failed, entries restored: {exc}")
                return 1
            if not outcome.changed:
                print("[group] fewer than two entries; nothing to do")
            else:
                note = " (semantic step fell back to singletons)" if outcome.fallback_used else ""
                print(f"[group] {outcome.before} entries -> {outcome.after}{note}")
            return 0
    finally:
        runtime.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
