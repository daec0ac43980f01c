"""Command line interface for muesli."""

from __future__ import annotations

import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn

from . import __version__
from .api import ApiClient
from .auth import resolve_openai_key, resolve_token, set_api_key_in_keychain
from .config import (
    Config,
    config_dir_context,
    load_config,
    resolve_data_dir,
    resolve_embed_model,
    update_config_from_json,
)
from .embeddings import EmbeddingEngine, create_engine
from .errors import AuthError, EmbeddingError, FilesystemError, IndexingError, MuesliError
from .services.index_service import TextIndex
from .services.search_service import semantic_search, text_search
from .services.summary_service import (
    OpenAISummarizer,
    load_prompt,
    save_summary,
    summarize_transcript,
)
from .services.sync_service import SyncEngine, fetch_document, fix_dates, reindex
from .storage import Paths, find_transcript_by_id, read_body
from .text import Messages, Styles

console = Console()
err_console = Console(stderr=True)


@dataclass
class AppState:
    token: str | None = None
    api_base: str | None = None
    data_dir: Path | None = None
    no_throttle: bool = False
    throttle: tuple[int, int] | None = None


app = typer.Typer(
    help=Messages.APP_HELP,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _styled(text: str, style: str) -> str:
    return f"[{style}]{escape(text)}[/{style}]"


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"muesli v{__version__}")
        raise typer.Exit()


def parse_throttle_range(value: str | None) -> tuple[int, int] | None:
    """Parse ``min:max`` milliseconds into a validated tuple."""
    if value is None:
        return None
    parts = value.split(":")
    if len(parts) != 2:
        raise typer.BadParameter(Messages.ERROR_THROTTLE_FORMAT)
    bounds: list[int] = []
    for part in parts:
        try:
            number = int(part.strip())
        except ValueError as exc:
            raise typer.BadParameter(Messages.ERROR_THROTTLE_VALUE.format(value=part)) from exc
        if number < 0:
            raise typer.BadParameter(Messages.ERROR_THROTTLE_VALUE.format(value=part))
        bounds.append(number)
    if bounds[0] > bounds[1]:
        raise typer.BadParameter(Messages.ERROR_THROTTLE_ORDER)
    return bounds[0], bounds[1]


@contextmanager
def _handle_errors() -> Iterator[None]:
    try:
        yield
    except MuesliError as exc:
        message = Messages.ERROR_PREFIX.format(code=exc.exit_code, message=exc)
        err_console.print(_styled(message, Styles.ERROR))
        raise typer.Exit(code=exc.exit_code) from exc


def _state(ctx: typer.Context) -> AppState:
    state = ctx.find_root().obj
    return state if isinstance(state, AppState) else AppState()


def _paths(state: AppState, config: Config) -> Paths:
    return Paths.from_data_dir(resolve_data_dir(state.data_dir, config))


def _warn(message: str) -> None:
    console.print(_styled(message, Styles.WARNING))


def _build_client(state: AppState, config: Config) -> ApiClient:
    token = resolve_token(state.token)
    client = ApiClient(
        token,
        state.api_base or config.api_base,
        throttle_min_ms=config.throttle_min_ms,
        throttle_max_ms=config.throttle_max_ms,
    )
    if state.no_throttle:
        client.disable_throttle()
    elif state.throttle is not None:
        client.with_throttle(*state.throttle)
    return client


def _openai_key(config: Config) -> str | None:
    return resolve_openai_key(config.openai_api_key)


def _build_engine(config: Config, paths: Paths) -> EmbeddingEngine:
    api_key = _openai_key(config) if config.embed_provider == "openai" else None
    return create_engine(config, models_dir=paths.models_dir, api_key=api_key)


def _try_engine(config: Config, paths: Paths) -> EmbeddingEngine | None:
    try:
        return _build_engine(config, paths)
    except (EmbeddingError, AuthError) as exc:
        _warn(Messages.WARNING_EMBED_SETUP.format(reason=exc))
        return None


def _try_text_index(paths: Paths) -> TextIndex | None:
    try:
        return TextIndex.open(paths.text_index_path)
    except IndexingError as exc:
        _warn(Messages.WARNING_INDEX_SETUP.format(reason=exc))
        return None


def _progress() -> Progress:
    return Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=True,
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    token: str | None = typer.Option(None, "--token", help=Messages.HELP_TOKEN),
    api_base: str | None = typer.Option(None, "--api-base", help=Messages.HELP_API_BASE),
    data_dir: Path | None = typer.Option(None, "--data-dir", help=Messages.HELP_DATA_DIR),
    config_dir: Path | None = typer.Option(None, "--config-dir", help=Messages.HELP_CONFIG_DIR),
    no_throttle: bool = typer.Option(False, "--no-throttle", help=Messages.HELP_NO_THROTTLE),
    throttle_ms: str | None = typer.Option(
        None,
        "--throttle-ms",
        help=Messages.HELP_THROTTLE,
        metavar="MIN:MAX",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help=Messages.HELP_VERSION,
    ),
) -> None:
    """Global Typer callback for shared options; runs sync without a subcommand."""
    # The override stays active until the invoked command finishes.
    try:
        ctx.with_resource(config_dir_context(config_dir))
    except NotADirectoryError as exc:
        raise typer.BadParameter(str(exc), param_hint="--config-dir") from exc
    ctx.obj = AppState(
        token=token,
        api_base=api_base,
        data_dir=data_dir,
        no_throttle=no_throttle,
        throttle=parse_throttle_range(throttle_ms),
    )
    if ctx.invoked_subcommand is None:
        ctx.invoke(sync, ctx=ctx, reindex_only=False, no_index=False, no_embeddings=False)


@app.command(help=Messages.HELP_SYNC)
def sync(
    ctx: typer.Context,
    reindex_only: bool = typer.Option(False, "--reindex", help=Messages.HELP_SYNC_REINDEX),
    no_index: bool = typer.Option(False, "--no-index", help=Messages.HELP_SYNC_NO_INDEX),
    no_embeddings: bool = typer.Option(
        False,
        "--no-embeddings",
        help=Messages.HELP_SYNC_NO_EMBEDDINGS,
    ),
) -> None:
    state = _state(ctx)
    config = load_config()
    with _handle_errors():
        paths = _paths(state, config)
        paths.ensure_dirs()
        if reindex_only:
            _run_reindex(paths, config, no_index=no_index, no_embeddings=no_embeddings)
            return
        client = _build_client(state, config)
        text_index = None if no_index else _try_text_index(paths)
        embedder = None if no_embeddings else _try_engine(config, paths)
        try:
            console.print(_styled(Messages.INFO_FETCHING_LIST, Styles.INFO))
            with _progress() as progress:
                task = progress.add_task(Messages.INFO_SYNCING, total=None)

                def _advance(done: int, total: int) -> None:
                    progress.update(task, completed=done, total=total)

                engine = SyncEngine(
                    client,
                    paths,
                    text_index=text_index,
                    embedder=embedder,
                    embed_char_budget=config.embed_char_budget,
                    warn=_warn,
                    progress=_advance,
                )
                result = engine.run()
        finally:
            if text_index is not None:
                text_index.close()
    console.print(
        _styled(
            Messages.INFO_SYNC_DONE.format(
                total=result.total,
                updated=result.updated,
                skipped=result.skipped,
            ),
            Styles.SUCCESS,
        )
    )
    if result.indexed:
        console.print(_styled(Messages.INFO_INDEXED.format(count=result.indexed), Styles.INFO))
    if result.embedded:
        console.print(_styled(Messages.INFO_EMBEDDED.format(count=result.embedded), Styles.INFO))


def _run_reindex(paths: Paths, config: Config, *, no_index: bool, no_embeddings: bool) -> None:
    console.print(_styled(Messages.INFO_REINDEX_RUNNING.format(path=paths.data_dir), Styles.INFO))
    text_index = None if no_index else _try_text_index(paths)
    embedder = None if no_embeddings else _try_engine(config, paths)
    try:
        result = reindex(
            paths,
            text_index=text_index,
            embedder=embedder,
            embed_char_budget=config.embed_char_budget,
            warn=_warn,
        )
    finally:
        if text_index is not None:
            text_index.close()
    console.print(
        _styled(
            Messages.INFO_REINDEX_DONE.format(indexed=result.indexed, embedded=result.embedded),
            Styles.SUCCESS,
        )
    )


@app.command("list", help=Messages.HELP_LIST)
def list_documents(ctx: typer.Context) -> None:
    state = _state(ctx)
    config = load_config()
    with _handle_errors():
        docs = _build_client(state, config).list_documents()
    # Plain echo keeps the tabs intact for piping.
    for doc in docs:
        typer.echo(
            Messages.INFO_LIST_ROW.format(
                id=doc.id,
                date=doc.created_at.strftime("%Y-%m-%d"),
                title=doc.title or Messages.UNTITLED,
            )
        )


@app.command(help=Messages.HELP_FETCH)
def fetch(
    ctx: typer.Context,
    doc_id: str = typer.Argument(..., metavar="ID", help=Messages.HELP_FETCH_ID),
) -> None:
    state = _state(ctx)
    config = load_config()
    with _handle_errors():
        paths = _paths(state, config)
        written = fetch_document(_build_client(state, config), paths, doc_id)
    for path in (written.raw_path, written.markdown_path):
        console.print(Messages.INFO_WROTE.format(path=path), markup=False, soft_wrap=True)


@app.command(help=Messages.HELP_SEARCH)
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help=Messages.HELP_SEARCH_QUERY),
    limit: int = typer.Option(10, "--limit", "-n", min=1, help=Messages.HELP_SEARCH_LIMIT),
    semantic: bool = typer.Option(False, "--semantic", help=Messages.HELP_SEARCH_SEMANTIC),
) -> None:
    state = _state(ctx)
    config = load_config()
    with _handle_errors():
        paths = _paths(state, config)
        if semantic:
            hits = semantic_search(paths, _build_engine(config, paths), query, limit)
        else:
            hits = text_search(paths, query, limit)
    if not hits:
        console.print(_styled(Messages.INFO_NO_RESULTS.format(query=query), Styles.WARNING))
        return
    for rank, hit in enumerate(hits, start=1):
        if semantic:
            line = Messages.INFO_SEMANTIC_RESULT.format(
                rank=rank,
                title=hit.title or Messages.UNTITLED,
                date=hit.date,
                score=hit.score,
                path=hit.path,
            )
        else:
            line = Messages.INFO_SEARCH_RESULT.format(
                rank=rank,
                title=hit.title or Messages.UNTITLED,
                date=hit.date,
                path=hit.path,
            )
        console.print(line, markup=False, soft_wrap=True)


@app.command("open", help=Messages.HELP_OPEN)
def open_data_dir(ctx: typer.Context) -> None:
    state = _state(ctx)
    config = load_config()
    with _handle_errors():
        paths = _paths(state, config)
        paths.ensure_dirs()
        code = typer.launch(str(paths.data_dir))
        if code != 0:
            raise FilesystemError(Messages.ERROR_OPEN_FAILED.format(reason=f"exit status {code}"))
    console.print(_styled(Messages.INFO_OPENED.format(path=paths.data_dir), Styles.SUCCESS))


@app.command("fix-dates", help=Messages.HELP_FIX_DATES)
def fix_dates_command(ctx: typer.Context) -> None:
    state = _state(ctx)
    config = load_config()
    with _handle_errors():
        count = fix_dates(_paths(state, config), warn=_warn)
    console.print(_styled(Messages.INFO_FIX_DATES_DONE.format(count=count), Styles.SUCCESS))


@app.command(help=Messages.HELP_SUMMARIZE)
def summarize(
    ctx: typer.Context,
    doc_id: str = typer.Argument(..., metavar="ID", help=Messages.HELP_SUMMARIZE_ID),
    save: bool = typer.Option(False, "--save", help=Messages.HELP_SUMMARIZE_SAVE),
) -> None:
    state = _state(ctx)
    config = load_config()
    with _handle_errors():
        paths = _paths(state, config)
        md_path = find_transcript_by_id(paths, doc_id)
        body = read_body(md_path)
        prompt = load_prompt(config.prompt_file)
        summarizer = OpenAISummarizer(
            api_key=_openai_key(config),
            model_name=config.summary_model,
        )
        console.print(_styled(Messages.INFO_SUMMARIZING, Styles.INFO))
        summary = summarize_transcript(
            body,
            summarizer,
            context_window=config.context_window,
            prompt=prompt,
            on_chunk=lambda index, total: console.print(
                _styled(Messages.INFO_SUMMARIZING_CHUNK.format(index=index, total=total), Styles.INFO)
            ),
        )
        if save:
            target = save_summary(paths, md_path, summary)
            console.print(_styled(Messages.INFO_SUMMARY_SAVED.format(path=target), Styles.SUCCESS))
            return
    console.print(f"\n{summary}\n", markup=False)


@app.command("set-api-key", help=Messages.HELP_SET_API_KEY)
def set_api_key(api_key: str = typer.Argument(..., metavar="KEY")) -> None:
    with _handle_errors():
        set_api_key_in_keychain(api_key)
    console.print(_styled(Messages.INFO_API_KEY_STORED, Styles.SUCCESS))


@app.command(help=Messages.HELP_CONFIG)
def config(
    show: bool = typer.Option(False, "--show", help=Messages.HELP_SHOW_CONFIG),
    set_api_base: str | None = typer.Option(None, "--set-api-base", help=Messages.HELP_SET_API_BASE),
    set_data_dir: str | None = typer.Option(None, "--set-data-dir", help=Messages.HELP_SET_DATA_DIR),
    set_throttle: str | None = typer.Option(
        None,
        "--set-throttle-ms",
        metavar="MIN:MAX",
        help=Messages.HELP_THROTTLE,
    ),
    set_embed_provider: str | None = typer.Option(
        None,
        "--set-embed-provider",
        help=Messages.HELP_SET_EMBED_PROVIDER,
    ),
    set_embed_model: str | None = typer.Option(
        None,
        "--set-embed-model",
        help=Messages.HELP_SET_EMBED_MODEL,
    ),
    set_embed_budget: int | None = typer.Option(
        None,
        "--set-embed-budget",
        help=Messages.HELP_SET_EMBED_BUDGET,
    ),
    set_openai_api_key: str | None = typer.Option(
        None,
        "--set-openai-api-key",
        help=Messages.HELP_SET_OPENAI_API_KEY,
    ),
    clear_openai_api_key: bool = typer.Option(
        False,
        "--clear-openai-api-key",
        help=Messages.HELP_CLEAR_OPENAI_API_KEY,
    ),
    set_summary_model: str | None = typer.Option(
        None,
        "--set-summary-model",
        help=Messages.HELP_SET_SUMMARY_MODEL,
    ),
    set_context_window: int | None = typer.Option(
        None,
        "--set-context-window",
        help=Messages.HELP_SET_CONTEXT_WINDOW,
    ),
    set_prompt_file: str | None = typer.Option(
        None,
        "--set-prompt-file",
        help=Messages.HELP_SET_PROMPT_FILE,
    ),
) -> None:
    """Show or update the persisted configuration."""
    updates: dict[str, object] = {}
    if set_api_base is not None:
        updates["api_base"] = set_api_base
    if set_data_dir is not None:
        updates["data_dir"] = set_data_dir
    throttle = parse_throttle_range(set_throttle)
    if throttle is not None:
        updates["throttle_min_ms"], updates["throttle_max_ms"] = throttle
    if set_embed_provider is not None:
        updates["embed_provider"] = set_embed_provider
    if set_embed_model is not None:
        updates["embed_model"] = set_embed_model
    if set_embed_budget is not None:
        updates["embed_char_budget"] = set_embed_budget
    if set_openai_api_key is not None:
        updates["openai_api_key"] = set_openai_api_key
    if clear_openai_api_key:
        updates["openai_api_key"] = None
    if set_summary_model is not None:
        updates["summary_model"] = set_summary_model
    if set_context_window is not None:
        updates["context_window"] = set_context_window
    if set_prompt_file is not None:
        updates["prompt_file"] = set_prompt_file

    if updates:
        try:
            current = update_config_from_json(updates)
        except ValueError as exc:
            err_console.print(_styled(str(exc), Styles.ERROR))
            raise typer.Exit(code=1)
        console.print(_styled(Messages.INFO_CONFIG_SAVED, Styles.SUCCESS))
        if not show:
            return
    else:
        current = load_config()

    console.print(
        Messages.INFO_CONFIG_SUMMARY.format(
            api_base=current.api_base,
            data_dir=resolve_data_dir(None, current),
            throttle_min=current.throttle_min_ms,
            throttle_max=current.throttle_max_ms,
            embed_provider=current.embed_provider,
            embed_model=resolve_embed_model(current.embed_provider, current.embed_model),
            embed_budget=current.embed_char_budget,
            openai_key="yes" if current.openai_api_key else "no",
            summary_model=current.summary_model,
            context_window=current.context_window,
            prompt_file=current.prompt_file or "default",
        ),
        markup=False,
        soft_wrap=True,
    )


def run(argv: list[str] | None = None) -> None:
    """Entry point wrapper allowing optional argument override."""
    args = list(argv) if argv is not None else sys.argv[1:]
    app(args=args, prog_name="muesli")
