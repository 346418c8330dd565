"""
CLI entrypoint for the quizlive terminal client.
"""
import asyncio
import sys
from typing import Optional

import httpx
import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from quizlive.client.catalog import QuizCatalog
from quizlive.client.channel import ChannelManager
from quizlive.client.game_state import GameStateMachine
from quizlive.client.host import HostConsole
from quizlive.client.identity_store import SessionIdentityStore
from quizlive.client.visualizer import HostVisualizer, Visualizer
from quizlive.shared.config import settings
from quizlive.shared.events import EventDispatcher
from quizlive.shared.models import MatchState

app = typer.Typer(help="quizlive: play or host a real-time quiz from the terminal")
console = Console()

def configure_logging() -> None:
    # The dashboard owns the terminal, so logs go to a file only
    logger.remove()
    logger.add(settings.LOG_FILE, level=settings.LOG_LEVEL.upper(), rotation="1 MB", retention=3)

def watch_stdin(on_line) -> None:
    loop = asyncio.get_running_loop()

    def _readable():
        line = sys.stdin.readline()
        if not line:
            loop.remove_reader(sys.stdin.fileno())
            return
        loop.create_task(on_line(line.strip()))

    loop.add_reader(sys.stdin.fileno(), _readable)

async def _play(session_code: str, name: Optional[str]) -> None:
    dispatcher = EventDispatcher()
    channel = ChannelManager(dispatcher, client_id="player")
    game = GameStateMachine(channel, dispatcher, SessionIdentityStore(settings.IDENTITY_PATH))
    game.attach()

    if game.resume(session_code) is None:
        if not name:
            name = typer.prompt("Your name")
        # Sent once connected: the channel replays the remembered identity on connect
        await game.join(session_code, name)

    stop = asyncio.get_running_loop().create_future()

    async def on_line(line: str) -> None:
        if line.lower() in ("q", "quit", "exit"):
            game.leave()
            if not stop.done():
                stop.set_result("left")
        elif line.isdigit():
            await game.submit_answer(int(line) - 1)

    async def watch_match() -> None:
        while not stop.done():
            if game.match_state is MatchState.FINISHED:
                stop.set_result("finished")
            elif game.join_rejected:
                stop.set_result("rejected")
            await asyncio.sleep(0.25)

    await channel.connect()
    watch_stdin(on_line)
    watcher = asyncio.create_task(watch_match())
    try:
        await Visualizer(game).run(stop)
    finally:
        watcher.cancel()
        asyncio.get_running_loop().remove_reader(sys.stdin.fileno())
        await channel.close()

    if stop.result() == "rejected":
        console.print(f"[red]{game.user_error}[/]")
        # Nothing to rejoin: the server refused this session
        game.leave()
        raise typer.Exit(1)

async def _host(quiz: Optional[str]) -> None:
    dispatcher = EventDispatcher()
    channel = ChannelManager(dispatcher, client_id="host")
    host = HostConsole(channel, dispatcher)
    host.quiz_name = quiz
    host.attach()

    stop = asyncio.get_running_loop().create_future()

    async def on_line(line: str) -> None:
        if line.lower() in ("q", "quit", "exit"):
            if not stop.done():
                stop.set_result("left")
        elif host.match_state is MatchState.WAITING:
            await host.start_game()

    async def watch_match() -> None:
        while host.match_state is not MatchState.FINISHED and not stop.done():
            await asyncio.sleep(0.25)
        if not stop.done():
            stop.set_result("finished")

    await channel.connect()
    watch_stdin(on_line)
    watcher = asyncio.create_task(watch_match())
    try:
        await HostVisualizer(host).run(stop)
    finally:
        watcher.cancel()
        asyncio.get_running_loop().remove_reader(sys.stdin.fileno())
        await channel.close()

@app.command()
def play(
    session_code: str = typer.Argument(..., help="Session code shown on the host screen"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Your display name"),
):
    """Join a session (or resume the remembered one) and play."""
    configure_logging()
    try:
        asyncio.run(_play(session_code.strip().upper(), name))
    except ValueError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(2)
    except KeyboardInterrupt:
        pass

@app.command()
def host(quiz: Optional[str] = typer.Option(None, help="Quiz name from `quizlive quizzes`")):
    """Create a session and run it from the host dashboard."""
    configure_logging()
    try:
        asyncio.run(_host(quiz))
    except KeyboardInterrupt:
        pass

@app.command()
def quizzes():
    """List the quizzes stored on the server."""
    async def _list():
        catalog = QuizCatalog()
        try:
            return await catalog.list_quizzes()
        finally:
            await catalog.aclose()

    try:
        found = asyncio.run(_list())
    except httpx.HTTPError as e:
        console.print(f"[red]Could not load quizzes from {settings.server_url}: {e}[/]")
        raise typer.Exit(1)

    table = Table(title="Quizzes")
    table.add_column("Name", style="cyan")
    table.add_column("Title")
    table.add_column("Questions", justify="right")
    for quiz in found:
        table.add_row(quiz.name, quiz.title, str(quiz.question_count))
    console.print(table)

@app.command()
def forget():
    """Forget the remembered session so the next `play` starts fresh."""
    SessionIdentityStore(settings.IDENTITY_PATH).forget()
    typer.echo("Session identity cleared.")

if __name__ == "__main__":
    app()
