"""Post a Chatwoot-style webhook event to a running webhook service.

Useful for manual end-to-end checks of push delivery and consultation
message recording.
"""

import argparse
import json
from pathlib import Path

import httpx


def sample_event(shape: str, user_id: str, conversation_id: str, content: str) -> dict:
    """Build a minimal `message_created` event for the given payload shape."""

    if shape == "contact":
        return {
            "event": "message_created",
            "message_type": "incoming",
            "content": content,
            "sender": {"type": "User"},
            "contact": {"identifier": user_id},
        }
    return {
        "event": "message_created",
        "message": {"content": content, "message_type": "incoming"},
        "conversation": {"id": conversation_id},
        "sender": {"type": "contact", "name": "cli"},
    }


def main() -> None:
    """Parse CLI args, post one event and print the service response."""

    parser = argparse.ArgumentParser(description="Post a webhook event to the chat webhook service.")
    parser.add_argument("--url", default="http://localhost:3000/chatwoot-webhook")
    parser.add_argument("--shape", choices=["contact", "conversation"], default="contact")
    parser.add_argument("--user-id", default="user-1")
    parser.add_argument("--conversation-id", default="1")
    parser.add_argument("--content", default="Hello from the CLI")
    parser.add_argument("--file", dest="json_file", default=None, help="Path to a JSON payload to send instead")
    args = parser.parse_args()

    if args.json_file:
        payload = json.loads(Path(args.json_file).read_text())
    else:
        payload = sample_event(args.shape, args.user_id, args.conversation_id, args.content)

    resp = httpx.post(args.url, json=payload, timeout=10.0)
    print(f"status={resp.status_code}")
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
