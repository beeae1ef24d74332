"""duochat command line.

Commands:
- duochat room create <title> -m <userId[:username]> [-m ...]
- duochat room join <room_id> <userId[:username]>
- duochat room show <room_id>
- duochat room list <user_id>
- duochat room title <room_id> <title>
- duochat room remove <room_id> [--soft]
- duochat room remove-mutual <user_a> <user_b> [--soft]
- duochat message send <room_id> <from> <body>
- duochat message edit <room_id> <message_id> <body>
- duochat message delete <room_id> <message_id>
- duochat message watch <room_id> [--timeout SECONDS]

The CLI always persists to the file store at ``store.path`` so that state
survives between invocations; ``message watch`` polls that file and shows
messages sent by other invocations.
"""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from duochat import __version__
from duochat.chat import ChatMessage, ChatRoom, create_room, join_room
from duochat.config.loader import load_config
from duochat.context import ChatContext, initialize
from duochat.errors import ChatError, PartialFailureError
from duochat.models.room import Member
from duochat.utils.logging import configure_logging

T = TypeVar("T")

console = Console()

app = typer.Typer(
    name="duochat",
    help="duochat - two-party chat rooms",
    no_args_is_help=True,
)
room_app = typer.Typer(help="Create, join and remove chat rooms")
message_app = typer.Typer(help="Send, edit and watch messages")
app.add_typer(room_app, name="room")
app.add_typer(message_app, name="message")

_state: dict[str, Any] = {"config_path": None}


@app.callback()
def main(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.json"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """duochat - two-party chat rooms."""
    _state["config_path"] = config
    settings = load_config(config)
    configure_logging(settings.logging, verbose=verbose)


@app.command("version")
def version():
    """Show the duochat version."""
    console.print(f"duochat {__version__}")


def _context() -> ChatContext:
    settings = load_config(_state["config_path"])
    settings.store.backend = "file"
    return initialize(settings)


def _run(action: Callable[[ChatContext], Awaitable[T]]) -> T:
    """Run an async action against a fresh context; exit 1 on chat errors."""

    async def runner() -> T:
        async with _context() as ctx:
            return await action(ctx)

    try:
        return asyncio.run(runner())
    except PartialFailureError as e:
        console.print(f"[red]✗[/red] {e}")
        for key, error in e.failures.items():
            console.print(f"  [red]•[/red] {key}: {error}")
        raise typer.Exit(1)
    except ChatError as e:
        console.print(f"[red]✗[/red] {type(e).__name__}: {e}")
        raise typer.Exit(1)


def _parse_member(value: str) -> dict:
    user_id, _, username = value.partition(":")
    return {"userId": user_id, "username": username}


def _members_text(members: List[Member]) -> str:
    return ", ".join(f"{m.user_id} ({m.username})" if m.username else m.user_id for m in members)


def _rooms_table(rooms: List[ChatRoom], title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="green")
    table.add_column("Members")
    table.add_column("State", style="yellow")
    table.add_column("Created", style="dim")
    for room in rooms:
        table.add_row(
            room.id,
            room.title,
            _members_text(room.members),
            room.state.value,
            room.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    return table


def _print_message(message: ChatMessage) -> None:
    stamp = message.created_at.strftime("%H:%M:%S")
    edited = " [dim](edited)[/dim]" if message.updated_at else ""
    console.print(f"[dim]{stamp}[/dim] [cyan]{message.sender}[/cyan]: {message.body}{edited} [dim]{message.id}[/dim]")


@room_app.command("create")
def room_create(
    title: str = typer.Argument(..., help="Room title"),
    member: List[str] = typer.Option(..., "--member", "-m", help="Member as userId or userId:username"),
):
    """Create an open chat room."""
    room = _run(lambda ctx: create_room(ctx, title, [_parse_member(m) for m in member]))
    console.print(f"[green]✓[/green] Created room [cyan]{room.id}[/cyan] '{room.title}'")


@room_app.command("join")
def room_join(
    room_id: str = typer.Argument(..., help="Room ID"),
    member: str = typer.Argument(..., help="Joining member as userId or userId:username"),
):
    """Join an open room as its second member."""
    room = _run(lambda ctx: join_room(ctx, room_id, _parse_member(member)))
    console.print(f"[green]✓[/green] Joined room [cyan]{room.id}[/cyan]: {_members_text(room.members)}")


@room_app.command("show")
def room_show(room_id: str = typer.Argument(..., help="Room ID")):
    """Show one room."""
    room = _run(lambda ctx: ChatRoom.find_by_id(ctx, room_id))
    console.print(_rooms_table([room], title=f"Room {room_id}"))


@room_app.command("list")
def room_list(user_id: str = typer.Argument(..., help="User ID")):
    """List the rooms a user belongs to."""
    rooms = _run(lambda ctx: ChatRoom.list_for_user(ctx, user_id))
    if not rooms:
        console.print(f"[yellow]{user_id} has no chat rooms left[/yellow]")
        return
    console.print(_rooms_table(rooms, title=f"Rooms of {user_id}"))


@room_app.command("title")
def room_title(
    room_id: str = typer.Argument(..., help="Room ID"),
    title: str = typer.Argument(..., help="New title"),
):
    """Change a room's title."""

    async def action(ctx: ChatContext) -> str:
        return await ctx.rooms.set_title(room_id, title)

    new_title = _run(action)
    console.print(f"[green]✓[/green] Room [cyan]{room_id}[/cyan] is now '{new_title}'")


@room_app.command("remove")
def room_remove(
    room_id: str = typer.Argument(..., help="Room ID"),
    soft: bool = typer.Option(False, "--soft", help="Mark as removed instead of deleting"),
):
    """Remove a room."""

    async def action(ctx: ChatContext) -> None:
        await ctx.rooms.remove(room_id, soft=soft)

    _run(action)
    console.print(f"[green]✓[/green] Room [cyan]{room_id}[/cyan] {'soft-removed' if soft else 'removed'}")


@room_app.command("remove-mutual")
def room_remove_mutual(
    user_a: str = typer.Argument(..., help="First user ID"),
    user_b: str = typer.Argument(..., help="Second user ID"),
    soft: bool = typer.Option(False, "--soft", help="Mark as removed instead of deleting"),
):
    """Remove every room two users share."""
    removed = _run(lambda ctx: ChatRoom.remove_mutual_rooms(ctx, user_a, user_b, soft=soft))
    console.print(f"[green]✓[/green] {len(removed)} shared room(s) {'soft-removed' if soft else 'removed'}")
    for room_id in removed:
        console.print(f"  • {room_id}")


@message_app.command("send")
def message_send(
    room_id: str = typer.Argument(..., help="Room ID"),
    sender: str = typer.Argument(..., help="Sender user ID"),
    body: str = typer.Argument(..., help="Message text"),
):
    """Send a message to a room."""

    async def action(ctx: ChatContext) -> ChatMessage:
        room = await ChatRoom.find_by_id(ctx, room_id)
        return await room.send_message(body, sender)

    message = _run(action)
    console.print(f"[green]✓[/green] Sent message [cyan]{message.id}[/cyan]")


@message_app.command("edit")
def message_edit(
    room_id: str = typer.Argument(..., help="Room ID"),
    message_id: str = typer.Argument(..., help="Message ID"),
    body: str = typer.Argument(..., help="New message text"),
):
    """Edit a message."""

    async def action(ctx: ChatContext) -> ChatMessage:
        message = ChatMessage(ctx, await ctx.messages.get(room_id, message_id))
        return await message.update_body(body)

    message = _run(action)
    console.print(f"[green]✓[/green] Updated message [cyan]{message.id}[/cyan]")


@message_app.command("delete")
def message_delete(
    room_id: str = typer.Argument(..., help="Room ID"),
    message_id: str = typer.Argument(..., help="Message ID"),
):
    """Delete a message."""

    async def action(ctx: ChatContext) -> None:
        await ctx.messages.remove(room_id, message_id)

    _run(action)
    console.print(f"[green]✓[/green] Deleted message [cyan]{message_id}[/cyan]")


@message_app.command("watch")
def message_watch(
    room_id: str = typer.Argument(..., help="Room ID"),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Stop after this many seconds"),
):
    """Print a room's messages, then new ones as they arrive."""

    async def action(ctx: ChatContext) -> int:
        room = await ChatRoom.find_by_id(ctx, room_id)
        async with await room.listen_for_messages(_print_message) as subscription:
            if timeout is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(timeout)
            return subscription.delivered

    try:
        delivered = _run(action)
    except KeyboardInterrupt:
        return
    console.print(f"[dim]{delivered} message(s)[/dim]")


if __name__ == "__main__":
    app()
