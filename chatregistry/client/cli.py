import asyncio
import contextlib
import shlex
from typing import List

import grpc
import typer

from .stub import RegistryClient

app = typer.Typer(help="Interactive client for the chat registry")


@app.callback()
def main():
    """Chat registry client."""


HELP = ("Commands:\n"
        "  /users                         list registered users\n"
        "  /contacts                      list your contacts\n"
        "  /add-contact <name>\n"
        "  /dm <name> <message>           send a direct message\n"
        "  /history <room_id>\n"
        "  /create-group <name> [description]\n"
        "  /add <group_id> <name>\n"
        "  /kick <group_id> <name>\n"
        "  /leave <group_id>\n"
        "  /promote <group_id> <name>\n"
        "  /demote <group_id> <name>\n"
        "  /group <group_id> <message>\n"
        "  /group-history <group_id>\n"
        "  /members <group_id>\n"
        "  /status <STATUS> [text]\n"
        "  /rename <new_name>\n"
        "  /chats                         list your conversations\n"
        "  /help")


def _profile_line(u: dict) -> str:
    presence = "online" if u["online"] else "offline"
    return f" - {u['username']} ({u['id']}) [{presence}, {u['status_label']}]"


class Session:
    """One logged-in user's command dispatcher.

    Each handler returns the lines to print; RPC errors are turned into
    "[error] ..." lines by handle().
    """

    def __init__(self, client: RegistryClient, username: str):
        self.client = client
        self.username = username

    async def handle(self, line: str) -> List[str]:
        """Run a single slash command.

        Args:
            line (str): Raw input line

        Returns:
            List[str]: Output lines for the console
        """
        line = line.strip()
        if not line:
            return []
        if line in {"/help", "help"}:
            return [HELP]
        if not line.startswith("/"):
            return ['Type "/help" for commands.']

        command, _, rest = line.partition(" ")
        handler = getattr(self, "cmd_" + command[1:].replace("-", "_"), None)
        if handler is None:
            return [f"[error] Unknown command {command}", 'Type "/help" for commands.']
        try:
            return await handler(rest.strip())
        except grpc.aio.AioRpcError as e:
            return [f"[error] {e.details()}"]
        except (ValueError, IndexError):
            return [f"[error] Bad arguments for {command}", 'Type "/help" for commands.']

    async def cmd_users(self, rest: str) -> List[str]:
        resp = await self.client.call("ListUsers")
        return ["[users]"] + [_profile_line(u) for u in resp["users"]]

    async def cmd_contacts(self, rest: str) -> List[str]:
        resp = await self.client.call("ListContacts", owner=self.username)
        if not resp["contacts"]:
            return ["[contacts] No contacts"]
        return ["[contacts]"] + [_profile_line(u) for u in resp["contacts"]]

    async def cmd_add_contact(self, rest: str) -> List[str]:
        (name,) = shlex.split(rest)
        await self.client.call("AddContact", contact=name, owner=self.username)
        return [f"[contacts] Added {name}"]

    async def cmd_dm(self, rest: str) -> List[str]:
        name, text = rest.split(" ", 1)
        room = await self.client.call("EnsureDirectRoom", user_a=self.username, user_b=name.lstrip("@"))
        await self.client.call("SendDirectMessage", room_id=room["room_id"], sender=self.username, content=text)
        return [f"[dm] sent to {name} (room {room['room_id']})"]

    async def cmd_history(self, rest: str) -> List[str]:
        resp = await self.client.call("ListDirectMessages", room_id=int(rest))
        return [m["line"] for m in resp["messages"]] or ["[history] No messages"]

    async def cmd_create_group(self, rest: str) -> List[str]:
        args = shlex.split(rest)
        name, description = args[0], " ".join(args[1:])
        resp = await self.client.call("CreateGroup", creator=self.username, name=name, description=description)
        return [f"[group] Created group {name} ({resp['group_id']})"]

    async def _membership(self, method: str, rest: str, target: str = None) -> dict:
        args = shlex.split(rest)
        group_id = int(args[0])
        return await self.client.call(method, group_id=group_id, actor=self.username, target=target or args[1])

    async def cmd_add(self, rest: str) -> List[str]:
        await self._membership("AddGroupParticipant", rest)
        return ["[group] Participant added"]

    async def cmd_kick(self, rest: str) -> List[str]:
        await self._membership("RemoveGroupParticipant", rest)
        return ["[group] Participant removed"]

    async def cmd_leave(self, rest: str) -> List[str]:
        await self._membership("RemoveGroupParticipant", rest, target=self.username)
        return [f"[group] Left group {rest}"]

    async def cmd_promote(self, rest: str) -> List[str]:
        await self._membership("PromoteAdmin", rest)
        return ["[group] Admin added"]

    async def cmd_demote(self, rest: str) -> List[str]:
        await self._membership("DemoteAdmin", rest)
        return ["[group] Admin removed"]

    async def cmd_group(self, rest: str) -> List[str]:
        group_id, text = rest.split(" ", 1)
        await self.client.call("SendGroupMessage", group_id=int(group_id), sender=self.username, content=text)
        return [f"[group {group_id}] sent"]

    async def cmd_group_history(self, rest: str) -> List[str]:
        resp = await self.client.call("ListGroupMessages", group_id=int(rest))
        return [m["line"] for m in resp["messages"]] or ["[group-history] No messages"]

    async def cmd_members(self, rest: str) -> List[str]:
        resp = await self.client.call("ListGroupMembers", group_id=int(rest))
        admins = {u["id"] for u in resp["admins"]}
        return [f"[members] group {rest}"] + [
            _profile_line(u) + (" admin" if u["id"] in admins else "") for u in resp["participants"]
        ]

    async def cmd_status(self, rest: str) -> List[str]:
        status, _, text = rest.partition(" ")
        await self.client.call("UpdateStatus", username=self.username, status=status.upper(), status_text=text)
        return [f"[status] {status.upper()}" + (f": {text}" if text else "")]

    async def cmd_rename(self, rest: str) -> List[str]:
        profile = await self.client.call("GetProfile", username=self.username)
        user = profile["user"]
        resp = await self.client.call(
            "UpdateProfile", old_name=self.username, new_name=rest,
            status=user["status"], status_text=user["status_text"],
        )
        self.username = resp["username"]
        return [f"[profile] You are now {self.username}"]

    async def cmd_chats(self, rest: str) -> List[str]:
        resp = await self.client.call("ListConversations", username=self.username)
        if not resp["conversations"]:
            return ["[chats] No conversations"]
        return ["[chats]"] + [f" - {c['kind']} {c['id']}: {c['title']}" for c in resp["conversations"]]


async def _run(name: str, host: str, port: int, register: bool = False):
    """Main client loop: log in or register, then read slash commands.

    Args:
        name (str): Username (will prompt if empty)
        host (str): Registry server hostname
        port (int): Registry server port
        register (bool): True to register a new user, False to log in first

    Side Effects:
        - Connects to gRPC server
        - Prints mutation events from the Subscribe stream
    """
    client = RegistryClient(host, port)

    if not name:
        name = input("Enter your username: ").strip()

    if not register:
        try:
            await client.call("GetProfile", username=name)
            print(f"Logged in as {name}")
        except grpc.aio.AioRpcError as e:
            print(f"Login failed: {e.details()}")
            if input("Would you like to register as a new user? (y/n): ").lower() != 'y':
                await client.close()
                return
            register = True

    if register:
        try:
            resp = await client.call("RegisterUser", username=name)
            print(f"Registered as {name} ({resp['user_id']})")
        except grpc.aio.AioRpcError as e:
            print(f"Error during registration: {e.details()}")
            await client.close()
            return

    session = Session(client, name)
    await client.call("SetOnline", username=name, online=True)

    async def reader():
        async for event in client.subscribe(name):
            print(f"[event] {event['kind']} {event['payload']}")

    reader_task = asyncio.create_task(reader())
    loop = asyncio.get_running_loop()
    try:
        while True:
            line = await loop.run_in_executor(None, input, "")
            if line.strip() in {"/quit", "/exit"}:
                break
            for out in await session.handle(line):
                print(out)
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        reader_task.cancel()
        with contextlib.suppress(asyncio.CancelledError, grpc.aio.AioRpcError):
            await reader_task
        with contextlib.suppress(grpc.aio.AioRpcError):
            await client.call("SetOnline", username=session.username, online=False)
        await client.close()


@app.command("run")
def run_cmd(
    name: str = typer.Option("", help="Username to use"),
    host: str = typer.Option("127.0.0.1", envvar="CHATREGISTRY_HOST", help="Server hostname"),
    port: int = typer.Option(50051, envvar="CHATREGISTRY_PORT", help="Server port"),
    register: bool = typer.Option(False, help="Register a new user instead of logging in"),
):
    """
    Run the chat client.
    """
    asyncio.run(_run(name, host, port, register))


if __name__ == "__main__":
    app()
