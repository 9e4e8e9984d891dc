"""
CLI interface for inkwell projects.

Usage:
    inkwell init ~/writing novel
    inkwell -p ~/writing/novel doc-new "Scene A"
    inkwell -p ~/writing/novel search lighthouse
"""

import json
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from typing_extensions import Annotated

from .errors import InkwellError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .project import create_project
from .store import ProjectStore
from .types import Tree


# Configure quiet mode by default
# Set INKWELL_VERBOSE=1 to enable debug mode via environment
if os.environ.get("INKWELL_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"inkwell {version('inkwell-store')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_project_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _project_callback(value: Optional[Path]):
    global _project_override
    _project_override = value


app = typer.Typer(
    name="inkwell",
    help="Writing project store: folders, documents, characters, backups.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    project: Annotated[Optional[Path], typer.Option(
        "--project", "-p",
        envvar="INKWELL_PROJECT",
        help="Project directory (default: current directory)",
        callback=_project_callback,
        is_eager=True,
    )] = None,
):
    """Writing project store: folders, documents, characters, backups."""


FolderOption = Annotated[
    Optional[str],
    typer.Option("--folder", "-f", help="Folder id to create the item in")
]


@contextmanager
def _user_errors() -> Iterator[None]:
    """Show store errors as a single line and exit 1."""
    try:
        yield
    except InkwellError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _get_store() -> ProjectStore:
    """Open the selected project, handling errors gracefully."""
    import atexit

    root = _project_override if _project_override is not None else Path.cwd()
    with _user_errors():
        store = ProjectStore(root)
    atexit.register(store.close)
    return store


def _echo_json(value) -> None:
    typer.echo(json.dumps(value, indent=2, ensure_ascii=False))


def _read_input(file: Optional[Path]) -> str:
    """Text from a file, or from stdin when no file is given."""
    if file is not None:
        try:
            return file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            typer.echo(f"Error: cannot read {file}: {e}", err=True)
            raise typer.Exit(1)
    if sys.stdin.isatty():
        typer.echo("Error: no input (give --file or pipe text to stdin)", err=True)
        raise typer.Exit(1)
    return sys.stdin.read()


def render_tree(tree: Tree) -> str:
    """Indented outline of folders with their documents and characters."""
    children: dict[Optional[str], list] = {}
    for folder in tree.folders:
        children.setdefault(folder.parent_id, []).append(folder)
    docs: dict[Optional[str], list] = {}
    for doc in tree.documents:
        docs.setdefault(doc.folder_id, []).append(doc)
    chars: dict[Optional[str], list] = {}
    for char in tree.characters:
        chars.setdefault(char.folder_id, []).append(char)

    lines: list[str] = []
    seen: set[str] = set()

    def walk(folder_id: Optional[str], depth: int) -> None:
        pad = "  " * depth
        for folder in children.get(folder_id, []):
            if folder.id in seen:
                continue
            seen.add(folder.id)
            lines.append(f"{pad}{folder.name}/  [{folder.id}]")
            walk(folder.id, depth + 1)
        for doc in docs.get(folder_id, []):
            lines.append(f"{pad}{doc.title}  [{doc.id}]")
        for char in chars.get(folder_id, []):
            lines.append(f"{pad}@{char.name}  [{char.id}]")

    walk(None, 0)
    return "\n".join(lines)


# -----------------------------------------------------------------------------
# Project
# -----------------------------------------------------------------------------

@app.command()
def init(
    directory: Annotated[Path, typer.Argument(help="Parent directory")],
    name: Annotated[str, typer.Argument(help="Project name (directory to create)")],
):
    """Create a new project."""
    with _user_errors():
        root = create_project(directory, name)
    typer.echo(str(root))


@app.command()
def tree():
    """Show folders, documents and characters."""
    store = _get_store()
    with _user_errors():
        t = store.list_tree()
    if _get_json_output():
        _echo_json(t.to_dict())
    else:
        out = render_tree(t)
        if out:
            typer.echo(out)


# -----------------------------------------------------------------------------
# Folders
# -----------------------------------------------------------------------------

@app.command("folder-new")
def folder_new(
    name: Annotated[str, typer.Argument(help="Folder name")],
    parent: Annotated[Optional[str], typer.Option(
        "--parent", help="Parent folder id"
    )] = None,
):
    """Create a folder."""
    store = _get_store()
    with _user_errors():
        folder = store.create_folder(name, parent)
    typer.echo(folder.id)


@app.command("folder-rm")
def folder_rm(
    folder_id: Annotated[str, typer.Argument(help="Folder id")],
):
    """Delete a folder and everything inside it."""
    store = _get_store()
    with _user_errors():
        report = store.delete_folder(folder_id)
    if _get_json_output():
        _echo_json(report.to_dict())
    else:
        typer.echo(
            f"Deleted {len(report.folder_ids)} folders, "
            f"{len(report.document_ids)} documents, "
            f"{len(report.character_ids)} characters"
        )
        if report.cleanup_failures:
            typer.echo(
                f"Warning: could not remove files for {', '.join(report.cleanup_failures)}",
                err=True,
            )


# -----------------------------------------------------------------------------
# Documents
# -----------------------------------------------------------------------------

@app.command("doc-new")
def doc_new(
    title: Annotated[str, typer.Argument(help="Document title")],
    folder: FolderOption = None,
):
    """Create a document."""
    store = _get_store()
    with _user_errors():
        doc = store.create_document(title, folder)
    typer.echo(doc.id)


@app.command("doc-get")
def doc_get(
    document_id: Annotated[str, typer.Argument(help="Document id")],
):
    """Print a document's markdown."""
    store = _get_store()
    with _user_errors():
        if _get_json_output():
            doc = store.get_document(document_id)
            _echo_json({
                "id": doc.id,
                "title": doc.title,
                "folder_id": doc.folder_id,
                "created_at": doc.created_at,
                "updated_at": doc.updated_at,
                "markdown": store.load_document(document_id),
            })
        else:
            typer.echo(store.load_document(document_id))


@app.command("doc-save")
def doc_save(
    document_id: Annotated[str, typer.Argument(help="Document id")],
    file: Annotated[Optional[Path], typer.Option(
        "--file", "-F", help="Read markdown from this file instead of stdin"
    )] = None,
):
    """Replace a document's markdown."""
    markdown = _read_input(file)
    store = _get_store()
    with _user_errors():
        store.save_document(document_id, markdown)
    typer.echo(f"Saved {document_id}")


@app.command("doc-rm")
def doc_rm(
    document_id: Annotated[str, typer.Argument(help="Document id")],
):
    """Delete a document."""
    store = _get_store()
    with _user_errors():
        store.delete_document(document_id)
    typer.echo(f"Deleted {document_id}")


@app.command()
def snapshot(
    document_id: Annotated[str, typer.Argument(help="Document id")],
    note: Annotated[str, typer.Option("--note", "-m", help="Snapshot note")] = "",
):
    """Save a snapshot of a document's current body."""
    store = _get_store()
    with _user_errors():
        snap = store.create_snapshot(document_id, note)
    typer.echo(snap.id)


@app.command()
def snapshots(
    document_id: Annotated[str, typer.Argument(help="Document id")],
):
    """List a document's snapshots."""
    store = _get_store()
    with _user_errors():
        snaps = store.list_snapshots(document_id)
    if _get_json_output():
        _echo_json([
            {"id": s.id, "note": s.note, "created_at": s.created_at, "markdown": s.markdown}
            for s in snaps
        ])
    else:
        for s in snaps:
            typer.echo(f"{s.id}  {s.created_at}  {s.note}".rstrip())


# -----------------------------------------------------------------------------
# Characters
# -----------------------------------------------------------------------------

@app.command("char-new")
def char_new(
    name: Annotated[str, typer.Argument(help="Character name")],
    folder: FolderOption = None,
):
    """Create a character."""
    store = _get_store()
    with _user_errors():
        character = store.create_character(name, folder)
    typer.echo(character.id)


@app.command("char-get")
def char_get(
    character_id: Annotated[str, typer.Argument(help="Character id")],
):
    """Show a character profile as JSON."""
    store = _get_store()
    with _user_errors():
        character = store.load_character(character_id)
    _echo_json(character.to_dict())


@app.command("char-save")
def char_save(
    character_id: Annotated[str, typer.Argument(help="Character id")],
    profile: Annotated[Optional[str], typer.Argument(
        help="Profile JSON, e.g. '{\"age\": \"30\"}' (default: read --file or stdin)"
    )] = None,
    file: Annotated[Optional[Path], typer.Option(
        "--file", "-F", help="Read profile JSON from this file"
    )] = None,
):
    """Overwrite a character profile from JSON."""
    text = profile if profile is not None else _read_input(file)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        typer.echo(f"Error: profile is not valid JSON: {e}", err=True)
        raise typer.Exit(1)
    if not isinstance(data, dict):
        typer.echo("Error: profile must be a JSON object", err=True)
        raise typer.Exit(1)
    store = _get_store()
    with _user_errors():
        character = store.save_character(character_id, data)
    if _get_json_output():
        _echo_json(character.to_dict())
    else:
        typer.echo(f"Saved {character_id}")


@app.command("char-rm")
def char_rm(
    character_id: Annotated[str, typer.Argument(help="Character id")],
):
    """Delete a character and its images."""
    store = _get_store()
    with _user_errors():
        store.delete_character(character_id)
    typer.echo(f"Deleted {character_id}")


@app.command("char-image")
def char_image(
    character_id: Annotated[str, typer.Argument(help="Character id")],
    source: Annotated[str, typer.Argument(help="Image file to import")],
):
    """Copy an image into a character's asset folder."""
    store = _get_store()
    with _user_errors():
        dest = store.import_character_image(character_id, source)
    typer.echo(str(dest))


# -----------------------------------------------------------------------------
# Search, backups, maintenance
# -----------------------------------------------------------------------------

@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Full-text query")],
):
    """Search document bodies."""
    store = _get_store()
    with _user_errors():
        hits = store.search(query)
    if _get_json_output():
        _echo_json([{"id": h.document_id, "snippet": h.snippet} for h in hits])
    else:
        for h in hits:
            typer.echo(f"{h.document_id}  {h.snippet}")


@app.command()
def backup():
    """Write a backup archive of the project."""
    store = _get_store()
    with _user_errors():
        path = store.backup()
    typer.echo(str(path))


@app.command()
def backups():
    """List backup archives, newest first."""
    store = _get_store()
    for path in store.list_backups():
        typer.echo(path.name)


@app.command()
def reconcile(
    fix: Annotated[bool, typer.Option(
        "--fix", help="Rewrite missing/stale mirror files and remove orphans"
    )] = False,
):
    """Check that every document's markdown file matches the catalog."""
    store = _get_store()
    with _user_errors():
        result = store.reconcile(fix=fix)
    if _get_json_output():
        _echo_json(result)
        return
    typer.echo(
        f"Missing: {result['missing_from_mirror']}  "
        f"Stale: {result['stale_in_mirror']}  "
        f"Orphaned: {result['orphaned_in_mirror']}"
    )
    if fix:
        typer.echo(f"Fixed: {result['fixed']}  Removed: {result['removed']}")


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="inkwell CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
