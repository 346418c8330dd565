"""
MODULE OVERVIEW:
The Rich Terminal Dashboard.

WHAT IS HAPPENING HERE:
We use Rich to render whatever the state machine currently holds. The dashboard
never mutates game state: it subscribes to connection state changes for its
timeline and otherwise just re-reads the GameStateMachine (or HostConsole) four
times a second.
"""

from collections import deque
from datetime import datetime
import asyncio

from rich.live import Live
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table

from quizlive.client.game_state import GameStateMachine
from quizlive.client.host import HostConsole
from quizlive.shared.config import resolve_media_url
from quizlive.shared.models import ConnectionState, MatchState, ScoreboardEntry

STATUS_COLORS = {
    ConnectionState.CONNECTED: "green",
    ConnectionState.CONNECTING: "yellow",
    ConnectionState.DISCONNECTED: "red",
}

def scoreboard_table(title: str, entries: list[ScoreboardEntry], highlight: str | None = None) -> Table:
    table = Table(title=title, expand=True)
    table.add_column("#", justify="right", style="cyan", no_wrap=True)
    table.add_column("Player", style="magenta")
    table.add_column("Score", justify="right", style="green")
    for position, entry in enumerate(entries, start=1):
        style = "bold" if entry.participant_name == highlight else None
        table.add_row(str(position), entry.participant_name, str(entry.score), style=style)
    return table

class Visualizer:
    def __init__(self, game: GameStateMachine):
        self.game = game
        self.timeline = deque(maxlen=5)

    async def on_status_change(self, status: ConnectionState):
        ts = datetime.now().strftime("%H:%M:%S")
        self.timeline.appendleft(f"[{ts}] Channel: {status.value}")

    def _question_panel(self) -> Panel:
        game = self.game
        question = game.current_question
        if game.match_state is MatchState.FINISHED:
            name = game.identity.participant_name if game.identity else None
            return Panel(scoreboard_table("Final Leaderboard", game.final_scoreboard, name), title="Game Over")
        if question is None:
            who = game.identity.participant_name if game.identity else "?"
            return Panel(f"Hi {who}! Waiting for the host to start...", title="Lobby")

        lines = [f"[bold]{question.prompt}[/]", ""]
        media = resolve_media_url(question.media_ref)
        if media:
            lines += [f"[dim]image: {media}[/]", ""]
        for index, option in enumerate(question.options):
            marker = " "
            if game.correct_index == index:
                marker = "[green]✔[/]"
            elif game.selected_index == index:
                marker = "[yellow]»[/]"
            lines.append(f"{marker} {index + 1}. {option}")
        lines.append("")
        if game.answered:
            lines.append("[cyan]Answer sent. Waiting for results...[/]")
        else:
            lines.append("Type an option number and press Enter.")
        if game.pending_result is not None:
            verdict = {True: "[green]Correct![/]", False: "[red]Wrong[/]", None: ""}[game.pending_result.is_correct]
            lines.append(f"+{game.pending_result.points_earned} points {verdict}")

        title = f"Question {question.ordinal}/{question.total_count} | {game.remaining_seconds or 0}s left"
        return Panel("\n".join(lines), title=title)

    def generate_layout(self) -> Layout:
        game = self.game
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main")
        )
        layout["main"].split_row(
            Layout(name="left", ratio=2),
            Layout(name="right", ratio=1)
        )
        layout["right"].split_column(
            Layout(name="stats"),
            Layout(name="timeline"),
            Layout(name="board")
        )

        color = STATUS_COLORS[game.connection_state]
        session = game.identity.session_code if game.identity else "-"
        header = f"[{color} bold]Session: {session} | Channel: {game.connection_state.value} | Match: {game.match_state.value}[/]"
        if game.user_error:
            header += f"  [red]{game.user_error}[/]"
        layout["header"].update(Panel(header, style=color))

        layout["left"].update(self._question_panel())

        stats_text = (
            f"Score: {game.score}\n"
            f"Rank: {game.rank or '-'}\n"
            f"Events Received: {game.channel.events_received}\n"
            f"Reconnects: {game.channel.reconnect_count}"
        )
        layout["stats"].update(Panel(stats_text, title="You"))
        layout["timeline"].update(Panel("\n".join(self.timeline), title="Timeline"))

        name = game.identity.participant_name if game.identity else None
        layout["board"].update(Panel(scoreboard_table("Leaderboard", game.scoreboard, name), title="Standings"))
        return layout

    async def run(self, until: asyncio.Future):
        self.game.channel.subscribe_state(self.on_status_change)
        with Live(self.generate_layout(), refresh_per_second=4) as live:
            while not until.done():
                live.update(self.generate_layout())
                await asyncio.sleep(0.25)
            live.update(self.generate_layout())

class HostVisualizer:
    def __init__(self, host: HostConsole):
        self.host = host

    def generate_layout(self) -> Layout:
        host = self.host
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main")
        )
        layout["main"].split_row(
            Layout(name="left", ratio=2),
            Layout(name="right", ratio=1)
        )

        color = STATUS_COLORS[host.channel.state]
        header = f"[{color} bold]Session: {host.session_code} | Join: {host.join_url} | Match: {host.match_state.value}[/]"
        if host.notice:
            header += f"  [red]{host.notice}[/]"
        layout["header"].update(Panel(header, style=color))

        question = host.current_question
        if question is None:
            body = "\n".join(f"• {p}" for p in host.players) or "No players yet."
            left = Panel(body + "\n\nPress Enter to start the game.", title=f"Players ({len(host.players)})")
        else:
            lines = [f"[bold]{question.prompt}[/]", ""]
            for index, option in enumerate(question.options):
                marker = "[green]✔[/]" if host.correct_index == index else " "
                lines.append(f"{marker} {index + 1}. {option}")
            left = Panel("\n".join(lines), title=f"Question {question.ordinal}/{question.total_count} | {host.remaining_seconds or 0}s left")
        layout["left"].update(left)
        layout["right"].update(Panel(scoreboard_table("Leaderboard", host.leaderboard), title="Standings"))
        return layout

    async def run(self, until: asyncio.Future):
        with Live(self.generate_layout(), refresh_per_second=4) as live:
            while not until.done():
                live.update(self.generate_layout())
                await asyncio.sleep(0.25)
            live.update(self.generate_layout())
