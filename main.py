"""Entry point: load config → start guard → serve tool calls over stdio (or run one)."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, TextIO

from core.config import load_config
from core.guard import TOOL_SCHEMAS, VERSION, Guard

# stdout carries protocol responses, so logs go to stderr.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
    stream=sys.stderr,
)

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Local policy and verification guard for autonomous agents")
    parser.add_argument("--tool", help="run a single tool call and exit instead of serving stdio")
    parser.add_argument("--args-json", default="{}", help="tool arguments as a JSON object")
    parser.add_argument("--verbose", action="store_true", help="log at DEBUG level")
    return parser.parse_args(argv)


def _write_response(out: TextIO, response_id: Any, result: Any = None, error: str | None = None) -> None:
    payload: dict[str, Any] = {"id": response_id}
    if error is not None:
        payload["error"] = {"message": error}
    else:
        payload["result"] = result
    out.write(json.dumps(payload) + "\n")
    out.flush()


def serve_stdio(guard: Guard, stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout) -> int:
    """Answer one JSON request per line: initialize, tools/list, tools/call."""
    for line in stdin:
        line = line.strip()
        if not line:
            continue
        try:
            msg = json.loads(line)
        except json.JSONDecodeError:
            _write_response(stdout, None, error="Invalid JSON input.")
            continue
        if not isinstance(msg, dict):
            _write_response(stdout, None, error="Request must be a JSON object.")
            continue

        response_id = msg.get("id")
        method = msg.get("method")
        params = msg.get("params") or {}
        try:
            if method == "initialize":
                _write_response(stdout, response_id, {"server": "agent-guard", "version": VERSION})
            elif method == "tools/list":
                _write_response(stdout, response_id, {"tools": TOOL_SCHEMAS})
            elif method == "tools/call":
                result = guard.call_tool(params.get("name"), params.get("arguments"))
                _write_response(stdout, response_id, {"content": result})
            else:
                _write_response(stdout, response_id, error=f"Unsupported method: {method}")
        except Exception as exc:  # noqa: BLE001
            logger.warning("request %s failed: %s", response_id, exc)
            _write_response(stdout, response_id, error=str(exc))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    settings = load_config()
    guard = Guard(settings)
    try:
        guard.start()
    except Exception:
        logger.exception("fatal error during startup")
        return 1

    if args.tool:
        try:
            tool_args = json.loads(args.args_json)
            result = guard.call_tool(args.tool, tool_args)
        except ValueError as exc:
            logger.error("tool call failed: %s", exc)
            return 2
        print(json.dumps(result, indent=2))
        return 0

    logger.info("serving on stdio — version %s", VERSION)
    return serve_stdio(guard)


if __name__ == "__main__":
    raise SystemExit(main())
