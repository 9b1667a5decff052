import sys
from pathlib import Path

from ham.ham_manifest import Manifest, ManifestError, find_manifest
from ham.ham_runtime import ScriptRunner

USAGE = "usage: ham <file.ham | project-directory>"


def resolve_entry(target: str):
    """Maps a CLI argument to (entry file, manifest or None)."""
    p = Path(target)
    if p.is_dir():
        manifest = Manifest.from_file(find_manifest(p))
        return manifest.entry_path, manifest
    return p, None


def run_script_file(target: str) -> int:
    """Run a Ham file or project and return the process exit status."""
    try:
        entry, manifest = resolve_entry(target)
    except ManifestError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    try:
        source = entry.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {entry}", file=sys.stderr)
        return 1

    depth = manifest.max_call_depth if manifest else None
    # Output is streamed as the program runs, so side effects are not reprinted.
    try:
        runner = ScriptRunner(max_call_depth=depth, output=sys.stdout)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    result = runner.handle_script(source)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return 1
    return 0


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 1 or args[0].startswith("-"):
        print(USAGE, file=sys.stderr)
        return 2
    return run_script_file(args[0])


if __name__ == "__main__":
    raise SystemExit(main())
