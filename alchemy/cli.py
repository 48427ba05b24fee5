"""Command-line sandbox: place concepts, drop them on each other, discover new ones."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import shlex
from pathlib import Path
from typing import List, Optional

from .api import Alchemy
from .config import Config
from .generator import EchoGenerator, resolve_generator
from .workspace import DropResult, DropStatus

HELP = """Commands:
  inv [term]      list discovered concepts (optionally filtered)
  ls              list workspace tokens
  add NAME        place a discovered concept on the workspace
  drop ID X Y     release token ID at (X, Y)
  mix A B         place A and B and drop one on the other
  rm ID           remove a token
  clear           empty the workspace
  reset           forget every discovery (asks first)
  /exit           quit
"""


class Session:
    """Interactive driver around one player's sandbox."""

    def __init__(self, alchemy: Alchemy, confirm=input):
        self.alchemy = alchemy
        self._confirm = confirm

    def _short(self, token_id: str) -> str:
        return token_id[:8]

    def _resolve_id(self, prefix: str) -> Optional[str]:
        matches = [t.id for t in self.alchemy.workspace.tokens if t.id.startswith(prefix)]
        return matches[0] if len(matches) == 1 else None

    def _describe_drop(self, result: DropResult) -> str:
        if result.status is DropStatus.MOVED:
            return f"moved {self._short(result.token.id)} to ({result.token.x:.0f}, {result.token.y:.0f})"
        if result.status is DropStatus.COMBINED:
            concept = result.token.concept
            suffix = "  (new discovery!)" if result.discovered else ""
            return f"{concept.glyph} {concept.name}{suffix}"
        if result.status is DropStatus.REJECTED:
            return "These elements refuse to combine!"
        return "that token is gone"

    async def execute(self, line: str) -> str:
        """Run one command line and return what to print."""
        try:
            parts: List[str] = shlex.split(line)
        except ValueError as exc:
            return f"error: {exc}"
        if not parts:
            return ""
        cmd, args = parts[0].lower(), parts[1:]
        workspace = self.alchemy.workspace

        if cmd in {"help", "?"}:
            return HELP
        if cmd == "inv":
            concepts = self.alchemy.search_inventory(" ".join(args))
            lines = [f"{c.glyph} {c.name}" for c in concepts] or ["No elements found."]
            lines.append(f"{self.alchemy.discovered_count} discovered")
            return "\n".join(lines)
        if cmd == "ls":
            if not len(workspace):
                return "Workspace is empty. Add elements with `add NAME`."
            return "\n".join(
                f"{self._short(t.id)}  {t.concept.glyph} {t.concept.name}  ({t.x:.0f}, {t.y:.0f})"
                + ("  [mixing]" if t.is_loading else "")
                for t in workspace.tokens
            )
        if cmd == "add" and args:
            concept = self.alchemy.find_concept(" ".join(args))
            if concept is None:
                return f"'{' '.join(args)}' is not discovered yet"
            token = workspace.add_token(concept)
            return f"placed {concept.glyph} {concept.name} as {self._short(token.id)}"
        if cmd == "drop" and len(args) == 3:
            token_id = self._resolve_id(args[0])
            if token_id is None:
                return f"no single token matches '{args[0]}'"
            try:
                x, y = float(args[1]), float(args[2])
            except ValueError:
                return "X and Y must be numbers"
            return self._describe_drop(await workspace.drop(token_id, x, y))
        if cmd == "mix" and len(args) == 2:
            first = self.alchemy.find_concept(args[0])
            second = self.alchemy.find_concept(args[1])
            if first is None or second is None:
                return "both concepts must be discovered first"
            target = workspace.add_token(first)
            dragged = workspace.add_token(second)
            return self._describe_drop(await workspace.combine(dragged.id, target.id))
        if cmd == "rm" and len(args) == 1:
            token_id = self._resolve_id(args[0])
            if token_id is None or not workspace.remove_token(token_id):
                return f"no single token matches '{args[0]}'"
            return "removed"
        if cmd == "clear":
            workspace.clear_workspace()
            return "workspace cleared"
        if cmd == "reset":
            def ask(prompt: str) -> bool:
                return self._confirm(f"{prompt} [y/N] ").strip().lower() in {"y", "yes"}
            return "progress reset" if workspace.reset_all(ask) else "reset cancelled"
        return f"unknown command: {line!r} (try `help`)"

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        print(f"Sandbox for '{self.alchemy.player}': {self.alchemy.discovered_count} discovered. Type /exit to finish.")
        try:
            while True:
                try:
                    line = await loop.run_in_executor(None, input, "alchemy> ")
                except EOFError:
                    print()
                    break

                line = line.strip()
                if not line:
                    continue
                if line.lower() in {"/exit", "/quit"}:
                    break

                print(await self.execute(line))
        except KeyboardInterrupt:
            print("\nSession interrupted.")


def build_argparser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--player", default="default", help="Player identifier (e.g. user42)")
    parser.add_argument("--memory", default=None, help="Path to the discovery file (.db or .json)")
    parser.add_argument("--config", default=None, help="JSON file of settings to apply (section.FIELD keys)")
    parser.add_argument("--show-config", action="store_true", help="Print the effective settings as JSON and exit")
    parser.add_argument("--model", default=None, help="LLM model name for the OpenAI generator")
    parser.add_argument("--api-key", default=None, help="Optional API key override")
    parser.add_argument("--offline", action="store_true", help="Use the deterministic echo generator")
    parser.add_argument("--seed", type=int, default=None, help="Seed for token spawn jitter")
    return parser


def main() -> None:
    args = build_argparser().parse_args()
    if args.config:
        Config.load_file(args.config)
    if args.show_config:
        print(json.dumps(Config.to_dict(), indent=2))
        return
    logging.basicConfig(level=logging.DEBUG if Config.core.DEBUG else logging.WARNING)

    memory_path = Path(args.memory or Config.player_save_path(args.player))
    model = args.model or Config.generator.MODEL
    generator = EchoGenerator() if args.offline else resolve_generator(api_key=args.api_key, model=model)
    alchemy = Alchemy.load(str(memory_path), generator=generator, seed=args.seed)
    alchemy.player = args.player

    try:
        asyncio.run(Session(alchemy).run())
    finally:
        alchemy.save()
        alchemy.close()
        print(f"Saved discoveries to {memory_path}")


if __name__ == "__main__":
    main()
