"""Log in through webssh, run one command and print the shell output."""

import argparse
import asyncio
import sys

import websockets

from webssh import MessageEnvelope, MessageType, decode_envelope, encode_envelope


async def run(url: str, username: str, password: str, command: str) -> None:
    async with websockets.connect(url) as websocket:
        await websocket.send(encode_envelope(MessageEnvelope(type=MessageType.LOGIN, data=username.encode())))
        await websocket.send(encode_envelope(MessageEnvelope(type=MessageType.PASSWORD, data=password.encode())))
        await websocket.send(encode_envelope(MessageEnvelope(type=MessageType.RESIZE, rows=24, cols=100)))
        await websocket.send(encode_envelope(MessageEnvelope(type=MessageType.STDIN, data=f"{command}\nexit\n".encode())))

        async for frame in websocket:
            envelope = decode_envelope(frame)
            stream = sys.stderr if envelope.type is MessageType.STDERR else sys.stdout
            stream.buffer.write(envelope.data)
            stream.flush()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser()
    parser.add_argument("--session-id", required=True)
    parser.add_argument("--ssh-host", required=True)
    parser.add_argument("--ssh-port", type=int, default=22)
    parser.add_argument("--username", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--command", default="uname -a")
    parser.add_argument("--host", default="ws://127.0.0.1:8000")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    url = f"{args.host}/webssh/{args.session_id}?host={args.ssh_host}&port={args.ssh_port}"
    asyncio.run(run(url, args.username, args.password, args.command))


if __name__ == "__main__":
    main()
