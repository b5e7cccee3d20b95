#!/usr/bin/env python3
"""lsystem_engine.py

A deterministic, context-free L-system (D0L) rewriting engine.

Key features:
- Mutable LSystem object: axiom, rule table and current generation.
- Generation stepping, reset-to-axiom, rule/axiom editing.
- Lazy streaming expansion and memoized expansion helpers.
- Length prediction without materializing exponential generations.
- Built-in 3D presets and JSON-based configuration.

Run:
  python lsystem_engine.py expand dragon-curve -n 10
  python lsystem_engine.py validate config.json
  python lsystem_engine.py presets
  python lsystem_engine.py --help
"""

from __future__ import annotations

import argparse
import functools
import json
import os
import sys
from collections import Counter
from collections.abc import Generator, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TextIO, cast

Word = str
RuleTable = dict[str, Word]

PUSH = "["
POP = "]"


# -------------------------
# Errors / Validation
# -------------------------


class ConfigError(ValueError):
    pass


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigError(msg)


def _as_float(x: Any, path: str) -> float:
    _require(
        isinstance(x, (int, float)) and not isinstance(x, bool),
        f"{path} must be a number",
    )
    return float(x)


def _as_int(x: Any, path: str) -> int:
    _require(
        isinstance(x, int) and not isinstance(x, bool), f"{path} must be an integer"
    )
    return int(x)


def _as_str(x: Any, path: str) -> str:
    _require(isinstance(x, str), f"{path} must be a string")
    return cast(str, x)


def _as_dict(x: Any, path: str) -> dict[str, Any]:
    _require(isinstance(x, dict), f"{path} must be an object")
    return cast(dict[str, Any], x)


# -------------------------
# Engine
# -------------------------


def _word(symbols: Iterable[str]) -> Word:
    return "".join(symbols)


class LSystem:
    """An axiom, a rule table and the generation reached so far.

    Symbols without a rule rewrite to themselves. The rule table is not
    ordered; nothing here depends on its iteration order.

    The object is also an endless iterator: ``next(lsys)`` advances one
    generation and returns it.
    """

    def __init__(
        self,
        axiom: Iterable[str] = "",
        rules: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        self._axiom: Word = _word(axiom)
        self._current: Word = self._axiom
        self._rules: RuleTable = {}
        if rules is not None:
            for symbol, replacement in rules.items():
                self._rules[symbol] = _word(replacement)

    # axiom

    @property
    def axiom(self) -> Word:
        return self._axiom

    def get_axiom(self) -> Word:
        return self._axiom

    def set_axiom(self, new_axiom: Iterable[str]) -> None:
        """Replace the axiom.

        The current generation is left alone; call reset() to restart from
        the new axiom.
        """
        self._axiom = _word(new_axiom)

    # rules

    def get_rules(self) -> Mapping[str, Word]:
        return MappingProxyType(self._rules)

    def add_rule(self, symbol: str, replacement: Iterable[str]) -> None:
        self._rules[symbol] = _word(replacement)

    def remove_rule(self, symbol: str) -> Word | None:
        return self._rules.pop(symbol, None)

    def clear_rules(self) -> None:
        self._rules.clear()

    # generations

    @property
    def current(self) -> Word:
        return self._current

    def get_current(self) -> Word:
        return self._current

    def reset(self) -> None:
        self._current = self._axiom

    def step(self) -> Word:
        """Rewrite every symbol of the current generation once, left to right."""
        parts: list[str] = []
        for symbol in self._current:
            replacement = self._rules.get(symbol)
            if replacement is None:
                parts.append(symbol)
            else:
                parts.append(replacement)
        self._current = "".join(parts)
        return self._current

    def __iter__(self) -> Iterator[Word]:
        return self

    def __next__(self) -> Word:
        return self.step()

    def copy(self) -> LSystem:
        clone = LSystem(self._axiom, self._rules)
        clone._current = self._current
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LSystem):
            return NotImplemented
        return (
            self._axiom == other._axiom
            and self._current == other._current
            and self._rules == other._rules
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        parts = [json.dumps(self._axiom, ensure_ascii=False)]
        for symbol in sorted(self._rules):
            replacement = json.dumps(self._rules[symbol], ensure_ascii=False)
            parts.append(f"{symbol} => {replacement}")
        return f"LSystem({', '.join(parts)})"


# -------------------------
# Expansion helpers
# -------------------------


def stream_expand(
    axiom: str, rules: Mapping[str, str], iterations: int
) -> Generator[str, None, None]:
    """Yield the symbols of generation `iterations` without building it.

    Uses an explicit stack of (word, index, depth) frames.
    """
    _require(iterations >= 0, "iterations must be >= 0")

    stack: list[tuple[str, int, int]] = [(axiom, 0, 0)]

    while stack:
        word, i, depth = stack.pop()
        if i >= len(word):
            continue

        symbol = word[i]
        stack.append((word, i + 1, depth))

        replacement = rules.get(symbol) if depth < iterations else None
        if replacement is None:
            # Symbols without a rule are fixed points, so they can be yielded
            # at any depth.
            yield symbol
        else:
            # Replacement goes on top of the continuation so it is drained first.
            stack.append((replacement, 0, depth + 1))


_EXPAND_CACHE_SIZE = 8


@functools.lru_cache(maxsize=_EXPAND_CACHE_SIZE)
def _expand_cached(
    axiom: str, rule_items: tuple[tuple[str, str], ...], iterations: int
) -> Word:
    lsys = LSystem(axiom, dict(rule_items))
    for _ in range(iterations):
        lsys.step()
    return lsys.get_current()


def expand(axiom: str, rules: Mapping[str, str], iterations: int) -> Word:
    """Return generation `iterations`, memoized per (axiom, rules, iterations).

    The most recent results are kept alive by the cache, and each one can be
    exponentially long. Use stream_expand() for one-off large generations.
    """
    _require(iterations >= 0, "iterations must be >= 0")
    return _expand_cached(axiom, tuple(sorted(rules.items())), iterations)


def generation_length(
    axiom: str,
    rules: Mapping[str, str],
    iterations: int,
    *,
    limit: int | None = None,
) -> int:
    """Length of generation `iterations`, computed from symbol counts only.

    With `limit`, counting stops at the first generation longer than `limit`
    and that generation's length is returned, so any result above `limit`
    means "at least this long".
    """
    _require(iterations >= 0, "iterations must be >= 0")

    counts = Counter(axiom)
    for _ in range(iterations):
        if limit is not None and sum(counts.values()) > limit:
            break
        nxt: Counter[str] = Counter()
        for symbol, n in counts.items():
            replacement = rules.get(symbol)
            if replacement is None:
                nxt[symbol] += n
            else:
                for produced in replacement:
                    nxt[produced] += n
        counts = nxt
    return sum(counts.values())


def is_balanced(word: Iterable[str], push: str = PUSH, pop: str = POP) -> bool:
    """True when every pop closes an earlier push and none stay open."""
    depth = 0
    for symbol in word:
        if symbol == push:
            depth += 1
        elif symbol == pop:
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


# -------------------------
# Configuration
# -------------------------


@dataclass(frozen=True)
class LSystemConfig:
    name: str
    axiom: str
    iterations: int
    rules: Mapping[str, str] = field(default_factory=dict)

    # turn angle in degrees, consumed by renderers only
    angle_deg: float = 90.0

    def __post_init__(self) -> None:
        # read-only copy; presets are shared module state
        object.__setattr__(self, "rules", MappingProxyType(dict(self.rules)))

    def __hash__(self) -> int:
        return hash(
            (
                self.name,
                self.axiom,
                self.iterations,
                tuple(sorted(self.rules.items())),
                self.angle_deg,
            )
        )

    def build(self) -> LSystem:
        return LSystem(self.axiom, self.rules)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "axiom": self.axiom,
            "iterations": self.iterations,
            "rules": dict(self.rules),
            "angle": self.angle_deg,
        }


def parse_config(obj: dict[str, Any]) -> LSystemConfig:
    obj = _as_dict(obj, "root")

    name = _as_str(obj.get("name", "L-System"), "name")
    _require("axiom" in obj, "axiom is required")
    axiom = _as_str(obj["axiom"], "axiom")

    iterations = _as_int(obj.get("iterations", 0), "iterations")
    _require(iterations >= 0, "iterations must be >= 0")

    rules_obj = _as_dict(obj.get("rules", {}), "rules")
    rules: dict[str, str] = {}
    for k, v in rules_obj.items():
        _require(
            isinstance(k, str) and len(k) == 1,
            "rules keys must be single-character strings",
        )
        rules[k] = _as_str(v, f"rules['{k}']")

    angle_deg = _as_float(obj.get("angle", 90), "angle")

    return LSystemConfig(
        name=name,
        axiom=axiom,
        iterations=iterations,
        rules=rules,
        angle_deg=angle_deg,
    )


def load_json(path: str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        try:
            return cast(dict[str, Any], json.load(f))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e


def _ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)) or ".", exist_ok=True)


def dump_json(obj: dict[str, Any], path: str) -> None:
    _ensure_parent_dir(path)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, ensure_ascii=False)
        f.write("\n")


# -------------------------
# Presets
# -------------------------

PRESETS: dict[str, LSystemConfig] = {
    "plant-1": LSystemConfig(
        name="Plant 1",
        axiom="+TT+F",
        iterations=4,
        rules={"F": "F[Fz[zFZXFZYF]Z[ZFxzFyzF]C+]"},
        angle_deg=23.0,
    ),
    "plant-2": LSystemConfig(
        name="Plant 2",
        axiom="+TT+R",
        iterations=4,
        rules={"R": "FFF[FXYZ[FxRxF[zFRzXFC]R[ZFZyFC]]yFRyF]"},
        angle_deg=23.0,
    ),
    "sierpinski": LSystemConfig(
        name="Sierpinski",
        axiom="T",
        iterations=6,
        rules={"T": "FxTxF", "F": "TXFXT"},
        angle_deg=60.0,
    ),
    "plant-3": LSystemConfig(
        name="Plant 3",
        axiom="+TT+R",
        iterations=4,
        rules={"R": "F[[yyBBzB]XB]", "B": "XXYYYYYYYYFRFzzFRRC"},
        angle_deg=23.0,
    ),
    "dragon-curve": LSystemConfig(
        name="Dragon Curve",
        axiom="T",
        iterations=10,
        rules={"T": "TxF", "F": "TXF"},
        angle_deg=90.0,
    ),
    "hilbert": LSystemConfig(
        name="Hilbert",
        axiom="T",
        iterations=3,
        rules={"T": "YxTFYxTFTzFYXXTFTyFZXXTFTzFXTzX"},
        angle_deg=90.0,
    ),
}


def resolve_source(source: str) -> LSystemConfig:
    """Return the preset named `source`, or parse `source` as a JSON path."""
    preset = PRESETS.get(source)
    if preset is not None:
        return preset
    return parse_config(load_json(source))


# -------------------------
# CLI / Help
# -------------------------

HELP_EPILOG = r"""
SOURCES

Every command that takes SOURCE accepts either the key of a built-in preset
(see `presets`) or the path to a JSON config.

INPUT JSON SYNTAX

  name: string (optional, default "L-System")
      A human-readable title.

  axiom: string (required)
      The initial word (generation 0). May be empty.

  iterations: integer >= 0 (optional, default 0)
      Number of rewriting steps performed by `expand`.

  rules: object mapping single-character string -> string (optional)
      Production rules. Each key must be a single character.
      Symbols without a rule rewrite to themselves. An empty replacement
      deletes the symbol.

  angle: number (optional, default 90)
      Turn angle in degrees. Not used by the engine; carried for renderers.

Example (Dragon curve):

    {
      "name": "Dragon Curve",
      "axiom": "T",
      "iterations": 10,
      "rules": {"T": "TxF", "F": "TXF"},
      "angle": 90
    }

SYMBOL CONVENTION (renderer side, never enforced here)

  F, T        draw forward
  t           draw backwards
  x / X       rotate +angle / -angle about the x axis
  y / Y       rotate +angle / -angle about the y axis
  z / Z       rotate +angle / -angle about the z axis
  |           half turn
  [ / ]       push / pop position and direction
"""


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lsystem-engine",
        description="Deterministic L-system rewriting engine.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=HELP_EPILOG,
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    pe = sub.add_parser(
        "expand",
        help="Write generation N of an L-system.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pe.add_argument("source", help="Preset key or path to a JSON config.")
    pe.add_argument(
        "-n",
        "--iterations",
        type=int,
        default=None,
        help="Number of generations (default: the config's iterations).",
    )
    pe.add_argument(
        "-o", "--output", default=None, help="Write to this file instead of stdout."
    )

    pv = sub.add_parser(
        "validate",
        help="Validate a config and print a brief summary.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pv.add_argument("source", help="Preset key or path to a JSON config.")

    sub.add_parser("presets", help="List the built-in presets.")

    px = sub.add_parser("export", help="Write a built-in preset as a JSON config.")
    px.add_argument("preset", choices=sorted(PRESETS), help="Preset key.")
    px.add_argument("output", help="Where to write the JSON file.")

    return p


# -------------------------
# Commands
# -------------------------

_CHUNK_SIZE = 8192


def write_symbols(symbols: Iterable[str], out: TextIO) -> int:
    """Write streamed symbols in chunks; returns the number written."""
    count = 0
    chunk: list[str] = []
    for sym in symbols:
        chunk.append(sym)
        if len(chunk) >= _CHUNK_SIZE:
            out.write("".join(chunk))
            count += len(chunk)
            chunk.clear()
    out.write("".join(chunk))
    count += len(chunk)
    out.write("\n")
    return count


def cmd_expand(source: str, iterations: int | None, output_path: str | None) -> None:
    cfg = resolve_source(source)
    n = cfg.iterations if iterations is None else iterations
    _require(n >= 0, "iterations must be >= 0")
    symbols = stream_expand(cfg.axiom, cfg.rules, n)

    if output_path is None:
        write_symbols(symbols, sys.stdout)
        return

    _ensure_parent_dir(output_path)
    with open(output_path, "w", encoding="utf-8") as f:
        write_symbols(symbols, f)


_VALIDATE_SYMBOL_LIMIT = 10_000_000


def cmd_validate(source: str) -> None:
    cfg = resolve_source(source)

    print(f"name: {cfg.name}")
    print(f"axiom: {cfg.axiom!r} (length {len(cfg.axiom)})")
    print(f"iterations: {cfg.iterations}")
    print(f"angle: {cfg.angle_deg}")
    print(f"rules: {len(cfg.rules)}")
    for symbol in sorted(cfg.rules):
        print(f"  {symbol} => {cfg.rules[symbol]!r}")

    length = generation_length(
        cfg.axiom, cfg.rules, cfg.iterations, limit=_VALIDATE_SYMBOL_LIMIT
    )
    truncated = length > _VALIDATE_SYMBOL_LIMIT
    sym_label = f"{_VALIDATE_SYMBOL_LIMIT}+" if truncated else str(length)
    print(f"symbols at iteration {cfg.iterations}: {sym_label}")

    # Branches stay balanced in every generation when the axiom and all
    # replacements are balanced on their own.
    unbalanced = [
        label
        for label, word in [("axiom", cfg.axiom), *sorted(cfg.rules.items())]
        if not is_balanced(word)
    ]
    if unbalanced:
        print(
            f"warning: unbalanced '{PUSH}'/'{POP}' in: {', '.join(unbalanced)}",
            file=sys.stderr,
        )
    if truncated:
        print(
            f"warning: expansion exceeds {_VALIDATE_SYMBOL_LIMIT} symbols; "
            "consider fewer iterations",
            file=sys.stderr,
        )


def cmd_presets() -> None:
    for key, cfg in PRESETS.items():
        print(f"{key}: {cfg.name} (angle {cfg.angle_deg:g}) {cfg.build()!r}")


def cmd_export(preset: str, output_path: str) -> None:
    dump_json(PRESETS[preset].to_dict(), output_path)


def main(argv: list[str] | None = None) -> int:
    ap = build_argparser()
    args = ap.parse_args(argv)

    try:
        if args.cmd == "expand":
            cmd_expand(args.source, args.iterations, args.output)
        elif args.cmd == "validate":
            cmd_validate(args.source)
        elif args.cmd == "presets":
            cmd_presets()
        elif args.cmd == "export":
            cmd_export(args.preset, args.output)
        else:
            raise AssertionError("unreachable")
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"File error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
