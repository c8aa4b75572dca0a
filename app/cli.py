"""Console front end for the canvas and planner agents."""
from __future__ import annotations

import argparse
import logging
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt

from app.config import export_llm_settings, load_config
from core.canvas_agent import CanvasAgent
from core.memory import ConversationMemory
from core.planner_agent import PlannerAgent
from core.workflow import EmptyGenerationError, WorkflowError
from tools.cancellation import CancellationToken, RunCancelledError
from tools.file_utils import read_text_file, write_text_file
from tools.llm_client import LLMNotAvailableError, ModelCallError, SchemaViolationError
from tools.searxng import SearchToolError, SearxngTool

logger = logging.getLogger(__name__)

EXIT_WORDS = {"exit", "quit", ":q"}

RUN_ERRORS = (
    EmptyGenerationError,
    ModelCallError,
    SchemaViolationError,
    SearchToolError,
    WorkflowError,
)


@contextmanager
def cancel_on_interrupt(token: CancellationToken) -> Iterator[CancellationToken]:
    """Route Ctrl+C to the run's cancellation token while the block executes."""
    def handler(signum, frame):
        token.cancel("interrupted")

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)


def step_printer(console: Console):
    def observer(step: str, snapshot: Dict[str, Any]) -> None:
        console.print(f"[dim]> {step}[/dim]")
    return observer


def print_canvas_result(console: Console, result: Dict[str, Any]) -> None:
    if result.get("artifact"):
        title = result.get("artifact_title") or "Artifact"
        console.print(Panel(Markdown(result["artifact"]), title=title, border_style="cyan"))
    console.print(f"[bold green]Canvas:[/bold green] {result['output']}")


def run_canvas_loop(console: Console, agent: CanvasAgent) -> None:
    """Interactive loop; the artifact is carried from one turn to the next."""
    memory = ConversationMemory()
    artifact: Optional[str] = None
    artifact_title: Optional[str] = None

    console.print("[bold]Canvas[/bold] - type a request, 'exit' to quit.")
    while True:
        try:
            user_input = Prompt.ask("[bold blue]You[/bold blue]").strip()
        except (EOFError, KeyboardInterrupt):
            console.print()
            break
        if not user_input:
            continue
        if user_input.lower() in EXIT_WORDS:
            break

        memory.add("user", user_input)
        with cancel_on_interrupt(CancellationToken()) as token:
            try:
                result = agent.run(
                    user_input,
                    artifact=artifact,
                    artifact_title=artifact_title,
                    memory=memory.as_read_only(),
                    observer=step_printer(console),
                    cancel_token=token,
                )
            except RunCancelledError:
                console.print("[yellow]Run cancelled.[/yellow]")
                continue
            except RUN_ERRORS as exc:
                console.print(f"[red]Run failed:[/red] {exc}")
                continue

        artifact = result.get("artifact")
        artifact_title = result.get("artifact_title")
        memory.add("assistant", result["output"])
        print_canvas_result(console, result)


def run_selection_edit(
    console: Console,
    agent: CanvasAgent,
    path: Path,
    offset: int,
    length: int,
    request: str,
    write_back: bool = False,
) -> int:
    """Rewrite one range of a file in a single run."""
    document = read_text_file(path)
    memory = ConversationMemory()
    memory.add("user", request)

    with cancel_on_interrupt(CancellationToken()) as token:
        try:
            result = agent.run(
                request,
                artifact=document,
                artifact_title=path.name,
                selected_text_offset=offset,
                selected_text_length=length,
                memory=memory.as_read_only(),
                observer=step_printer(console),
                cancel_token=token,
            )
        except RunCancelledError:
            console.print("[yellow]Run cancelled.[/yellow]")
            return 130
        except RUN_ERRORS as exc:
            console.print(f"[red]Run failed:[/red] {exc}")
            return 1

    print_canvas_result(console, result)
    if write_back and result.get("artifact") and result["artifact"] != document:
        write_text_file(path, result["artifact"])
        console.print(f"Wrote {path}")
    return 0


def run_planner_loop(console: Console, planner: PlannerAgent) -> None:
    console.print("[bold]Planner[/bold] - ask a research question, 'exit' to quit.")
    while True:
        try:
            query = Prompt.ask("[bold blue]Query[/bold blue]").strip()
        except (EOFError, KeyboardInterrupt):
            console.print()
            break
        if not query:
            continue
        if query.lower() in EXIT_WORDS:
            break

        with cancel_on_interrupt(CancellationToken()) as token:
            try:
                result = planner.run(query, observer=step_printer(console), cancel_token=token)
            except RunCancelledError:
                console.print("[yellow]Run cancelled.[/yellow]")
                continue
            except RUN_ERRORS as exc:
                console.print(f"[red]Run failed:[/red] {exc}")
                continue

        for index, item in enumerate(result["plan"], start=1):
            console.print(f"[dim]{index}. [{item['agent']}] {item['step']}[/dim]")
        console.print(Markdown(result["output"] or ""))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cocanvas", description="Conversational artifact co-editing")
    parser.add_argument("request", nargs="?", help="Edit request for --edit-file")
    parser.add_argument("--planner", action="store_true", help="Run the research planner loop")
    parser.add_argument("--edit-file", type=Path, help="Rewrite a range of this file")
    parser.add_argument("--offset", type=int, help="Zero-based start of the range")
    parser.add_argument("--length", type=int, help="Length of the range")
    parser.add_argument("--write", action="store_true", help="Write the edited document back to --edit-file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[list] = None) -> int:
    console = Console()
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config()
    export_llm_settings(config)
    logging.basicConfig(level=logging.DEBUG if (args.verbose or config.get("DEBUG")) else logging.WARNING)

    try:
        if args.edit_file:
            if args.offset is None or args.length is None or not args.request:
                parser.error("--edit-file requires --offset, --length and a request")
            return run_selection_edit(
                console, CanvasAgent(), args.edit_file, args.offset, args.length,
                args.request, write_back=args.write,
            )
        if args.planner:
            search_tool = SearxngTool(
                base_url=config.get("SEARXNG_URL"),
                max_results=config.get("SEARXNG_MAX_RESULTS", 10),
            )
            run_planner_loop(console, PlannerAgent(search_tool=search_tool))
            return 0
        run_canvas_loop(console, CanvasAgent())
        return 0
    except LLMNotAvailableError as exc:
        console.print(f"[red]{exc}[/red]")
        return 2
    except FileNotFoundError as exc:
        raise SystemExit(f"File not found: {exc.filename}") from exc


if __name__ == "__main__":
    raise SystemExit(main())
