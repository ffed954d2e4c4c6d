"""Search tools: regex-or-literal grep over a glob-selected file set, and glob."""

import re
from pathlib import Path
from typing import Any, Dict, Iterator, List

from ..errors import FileAccessError, ToolExecutionError
from ..logger import get_logger
from .environment import SKIP_DIRS, ToolEnvironment
from .registry import ArgKind, ArgSpec, ToolSpec

_log = get_logger(__name__)

DEFAULT_GLOB = "**/*"
DEFAULT_MAX_RESULTS = 50
MAX_RESULTS_CAP = 200
SKIP_SUFFIXES = {".log"}


def compile_pattern(pattern: str) -> "re.Pattern":
    """Case-insensitive regex; patterns that do not compile are matched literally."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return re.compile(re.escape(pattern), re.IGNORECASE)


def _skipped(root: Path, fp: Path) -> bool:
    try:
        parts = fp.relative_to(root).parts
    except ValueError:
        return True
    if any(part in SKIP_DIRS for part in parts[:-1]):
        return True
    return fp.suffix in SKIP_SUFFIXES


def iter_files(root: Path, pattern: str) -> Iterator[Path]:
    """Files under ``root`` matching ``pattern``, sorted, skipping ignored dirs."""
    seen = set()
    for fp in sorted(root.glob(pattern)):
        if fp in seen or not fp.is_file() or _skipped(root, fp):
            continue
        seen.add(fp)
        yield fp


def search_files(env: ToolEnvironment, args: Dict[str, Any]) -> Dict[str, Any]:
    pattern = args["pattern"]
    glob_pattern = args.get("glob") or DEFAULT_GLOB
    limit = args.get("max_results") or env.setting("max_search_results", DEFAULT_MAX_RESULTS)
    limit = max(1, min(int(limit), MAX_RESULTS_CAP))
    regex = compile_pattern(pattern)

    matches: List[Dict[str, Any]] = []
    try:
        files = list(iter_files(env.root_path, glob_pattern))
    except (ValueError, NotImplementedError) as e:
        raise ToolExecutionError("search", f"Invalid glob '{glob_pattern}': {e}")

    for fp in files:
        rel = env.file_access.relative(fp)
        try:
            content = env.file_access.read(rel)
        except FileAccessError:
            continue  # binary or unreadable
        for number, line in enumerate(content.splitlines(), 1):
            found = regex.search(line)
            if not found:
                continue
            matches.append({
                "path": rel,
                "line_number": number,
                "line": line.strip(),
                "match": found.group(0),
            })
            if len(matches) >= limit:
                _log.info("search '%s' hit the %d result limit", pattern, limit)
                return {"pattern": pattern, "total": len(matches), "matches": matches}
    return {"pattern": pattern, "total": len(matches), "matches": matches}


def glob_files(env: ToolEnvironment, args: Dict[str, Any]) -> Dict[str, Any]:
    patterns = list(args.get("patterns") or [])
    if args.get("pattern"):
        patterns.insert(0, args["pattern"])
    if not patterns:
        raise ToolExecutionError("glob", "Provide 'pattern' or 'patterns'")

    found = set()
    for pattern in patterns:
        try:
            found.update(env.file_access.relative(fp) for fp in iter_files(env.root_path, pattern))
        except (ValueError, NotImplementedError) as e:
            raise ToolExecutionError("glob", f"Invalid glob '{pattern}': {e}")
    return {"patterns": patterns, "files": sorted(found)}


SEARCH_TOOL = ToolSpec(
    name="search",
    description="Search file contents by regex (falls back to literal text).",
    schema={
        "pattern": ArgSpec(ArgKind.STRING, "Regex or literal text", required=True),
        "glob": ArgSpec(ArgKind.STRING, "File selection glob, default '**/*'"),
        "max_results": ArgSpec(ArgKind.NUMBER, f"Result limit, at most {MAX_RESULTS_CAP}"),
    },
    execute=search_files,
)

GLOB_TOOL = ToolSpec(
    name="glob",
    description="Find files by glob pattern.",
    schema={
        "pattern": ArgSpec(ArgKind.STRING, "Glob pattern, e.g. 'src/**/*.py'"),
        "patterns": ArgSpec(ArgKind.LIST, "Several glob patterns", items=ArgKind.STRING),
    },
    execute=glob_files,
)

SEARCH_TOOLS = (SEARCH_TOOL, GLOB_TOOL)
