"""Command-line interface: serve the API or ask one orchestrated question."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Sequence

import yaml
from pydantic import Field, ValidationError

from .container import build_container, shutdown
from .env import load_dotenv_if_present
from .llm import LLMProviderError
from .orchestration import OrchestrationError
from .run_logging import configure_logging
from .schemas import CamelModel, LLMConfig, ServerConfig
from .settings import get_settings


class AskConfig(CamelModel):
    """Servers and LLM used by ``mcpeer ask``."""

    servers: list[ServerConfig] = Field(..., min_length=1)
    llm_config: LLMConfig


def load_ask_config(path: str | Path) -> AskConfig:
    """Load and validate a YAML config file."""
    text = Path(path).read_text(encoding="utf-8")
    payload = yaml.safe_load(text)
    if not isinstance(payload, dict):
        msg = f"unsupported config format type={type(payload)}"
        raise ValueError(msg)
    try:
        return AskConfig.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"invalid config file: {exc}") from exc


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mcpeer", description="Orchestrate questions across MCP servers."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default=None, help="Bind address (default: MCPEER_HOST).")
    serve.add_argument("--port", type=int, default=None, help="Port (default: MCPEER_PORT).")

    ask = subparsers.add_parser("ask", help="Answer one question and print the result.")
    ask.add_argument("question", help="Question to answer.")
    ask.add_argument("--config", required=True, help="YAML file with servers and llmConfig.")
    ask.add_argument(
        "--json",
        action="store_true",
        dest="as_json",
        help="Print the full response body, including metadata, as JSON.",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


async def _ask(question: str, config: AskConfig, *, as_json: bool) -> int:
    container = build_container(settings=get_settings())
    try:
        outcome = await container.orchestration_loop.run(
            question, config.servers, config.llm_config
        )
    finally:
        await shutdown(container)
    if as_json:
        body = {"response": outcome.response, "metadata": outcome.metadata(), "orchestrated": True}
        print(json.dumps(body, indent=2))
    else:
        print(outcome.response)
    return 0


def _serve(host: str | None, port: int | None) -> int:
    import uvicorn

    from .main import create_app

    settings = get_settings()
    uvicorn.run(create_app(), host=host or settings.server.host, port=port or settings.server.port)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging()
    load_dotenv_if_present()
    if args.command == "serve":
        return _serve(args.host, args.port)
    try:
        config = load_ask_config(args.config)
        return asyncio.run(_ask(args.question, config, as_json=args.as_json))
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 1
    except (OSError, ValueError, OrchestrationError, LLMProviderError) as exc:
        print(f"Request failed: {exc}", file=sys.stderr)
        return 1


def entrypoint() -> None:
    raise SystemExit(main())


if __name__ == "__main__":  # pragma: no cover
    entrypoint()
