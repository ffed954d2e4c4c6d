"""File tools: read, write, edit, list."""

from typing import Any, Dict

from ..errors import FileAccessError, ToolExecutionError
from .environment import ToolEnvironment
from .registry import ArgKind, ArgSpec, ToolSpec

EDIT_OPERATIONS = ("replace", "insert")


def _read_one(env: ToolEnvironment, path: str) -> str:
    try:
        return env.file_access.read(path)
    except FileAccessError as e:
        raise ToolExecutionError("read", str(e))


def read_files(env: ToolEnvironment, args: Dict[str, Any]) -> Dict[str, Any]:
    """Read one path, or several when ``paths`` is given.

    With several paths a failing file is reported inline so the others still
    come back.
    """
    paths = args.get("paths")
    if not paths:
        path = args.get("path")
        if not path:
            raise ToolExecutionError("read", "Provide 'path' or 'paths'")
        return {"path": path, "content": _read_one(env, path)}

    files = []
    for path in paths:
        try:
            files.append({"path": path, "content": env.file_access.read(path), "error": None})
        except FileAccessError as e:
            files.append({"path": path, "content": None, "error": str(e)})
    return {"files": files}


def write_file(env: ToolEnvironment, args: Dict[str, Any]) -> Dict[str, Any]:
    path, content = args["path"], args["content"]
    try:
        env.file_access.write(path, content)
    except FileAccessError as e:
        raise ToolExecutionError("write", str(e))
    return {"path": path, "operation": "write", "bytes": len(content.encode("utf-8"))}


def _replace(content: str, path: str, old_text, new_text) -> str:
    if not old_text:
        raise ToolExecutionError("edit", "replace requires a non-empty 'old_text'")
    if old_text not in content:
        raise ToolExecutionError("edit", f"Text to replace not found in {path}")
    return content.replace(old_text, new_text or "", 1)


def _insert(content: str, path: str, line, new_text) -> str:
    if line is None:
        raise ToolExecutionError("edit", "insert requires 'line'")
    if int(line) != line or line < 1:
        raise ToolExecutionError("edit", f"'line' must be a positive integer, got {line!r}")
    lines = content.split("\n")
    idx = min(int(line) - 1, len(lines))
    lines.insert(idx, new_text or "")
    return "\n".join(lines)


def edit_file(env: ToolEnvironment, args: Dict[str, Any]) -> Dict[str, Any]:
    """Replace the first occurrence of ``old_text``, or insert at a 1-based line.

    Nothing is written unless the edit can be applied in full.
    """
    path = args["path"]
    operation = args.get("operation") or ("insert" if args.get("line") is not None else "replace")
    try:
        content = env.file_access.read(path)
    except FileAccessError as e:
        raise ToolExecutionError("edit", str(e))

    if operation == "replace":
        updated = _replace(content, path, args.get("old_text"), args.get("new_text"))
    else:
        updated = _insert(content, path, args.get("line"), args.get("new_text"))

    try:
        env.file_access.write(path, updated)
    except FileAccessError as e:
        raise ToolExecutionError("edit", str(e))
    return {"path": path, "operation": operation}


def list_directory(env: ToolEnvironment, args: Dict[str, Any]) -> Dict[str, Any]:
    path = args.get("path") or "."
    try:
        entries = env.file_access.list(path)
    except FileAccessError as e:
        raise ToolExecutionError("list", str(e))
    return {
        "path": path,
        "entries": [{"name": name, "type": "dir" if is_dir else "file"} for name, is_dir in entries],
    }


READ_TOOL = ToolSpec(
    name="read",
    description="Read a file, or several files via 'paths'.",
    schema={
        "path": ArgSpec(ArgKind.STRING, "File path relative to the project root"),
        "paths": ArgSpec(ArgKind.LIST, "Several file paths", items=ArgKind.STRING),
    },
    execute=read_files,
)

WRITE_TOOL = ToolSpec(
    name="write",
    description="Create or overwrite a file with the given content.",
    schema={
        "path": ArgSpec(ArgKind.STRING, "File path", required=True),
        "content": ArgSpec(ArgKind.STRING, "Complete file content", required=True),
    },
    execute=write_file,
    writes=True,
)

EDIT_TOOL = ToolSpec(
    name="edit",
    description=(
        "Edit a file: 'replace' swaps the first exact occurrence of old_text for new_text; "
        "'insert' puts new_text before the 1-based line."
    ),
    schema={
        "path": ArgSpec(ArgKind.STRING, "File path", required=True),
        "operation": ArgSpec(ArgKind.STRING, "Edit mode", enum=EDIT_OPERATIONS),
        "old_text": ArgSpec(ArgKind.STRING, "Exact text to replace"),
        "new_text": ArgSpec(ArgKind.STRING, "Replacement or inserted text"),
        "line": ArgSpec(ArgKind.NUMBER, "1-based line for insert"),
    },
    execute=edit_file,
    writes=True,
)

LIST_TOOL = ToolSpec(
    name="list",
    description="List directory entries tagged as file or dir.",
    schema={"path": ArgSpec(ArgKind.STRING, "Directory path, default '.'")},
    execute=list_directory,
)

FILE_TOOLS = (READ_TOOL, WRITE_TOOL, EDIT_TOOL, LIST_TOOL)
