"""Command-line entry point: stream one prompt through any supported vendor.

    python main.py anthropic::claude-sonnet-4-5 "Explain SSE" --show-thoughts --budget-tokens 2048
"""

import argparse
import logging
import sys
import threading

import config
from observability.telemetry import setup_observability
from providers import (
    ApiKeys,
    Attachment,
    AttachmentType,
    ModelConfig,
    StreamRequest,
    UserMessage,
    VertexSettings,
    stream_response,
)
from providers.models import REASONING_EFFORTS, THINKING_LEVELS

logger = logging.getLogger(__name__)


def parse_attachment(value: str) -> Attachment:
    """``KIND:PATH`` -> Attachment. Webpage paths are URLs."""
    kind, sep, path = value.partition(":")
    if not sep or not path:
        raise argparse.ArgumentTypeError(f"expected KIND:PATH, got {value!r}")
    try:
        attachment_type = AttachmentType(kind.lower())
    except ValueError:
        kinds = ", ".join(t.value for t in AttachmentType)
        raise argparse.ArgumentTypeError(f"unknown attachment kind {kind!r} (choose from {kinds})") from None
    return Attachment(type=attachment_type, path=path, original_name=path)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stream one prompt through a model adapter.")
    parser.add_argument("model_id", metavar="MODEL_ID", help='e.g. "openai::gpt-5" or "openrouter::meta-llama/llama-4-scout"')
    parser.add_argument("prompt", metavar="PROMPT")
    parser.add_argument("--system", help="system prompt")
    parser.add_argument("--show-thoughts", action="store_true", help="stream reasoning inline")
    parser.add_argument("--budget-tokens", type=int, help="thinking budget (Anthropic, Gemini 2.5)")
    parser.add_argument("--reasoning-effort", choices=REASONING_EFFORTS)
    parser.add_argument("--thinking-level", choices=THINKING_LEVELS, help="Gemini 3 thinking level")
    parser.add_argument("--web", action="store_true", help="enable native web search where supported")
    parser.add_argument("--base-url", help="override the vendor base URL")
    parser.add_argument(
        "--attach", type=parse_attachment, action="append", default=[], metavar="KIND:PATH",
        help="attach a text, webpage, image or pdf (repeatable)",
    )
    return parser


def run(args: argparse.Namespace, out=None, err=None) -> int:
    """Stream the turn, printing chunks to ``out``. Returns the exit status."""
    out = out or sys.stdout
    err = err or sys.stderr
    done = threading.Event()
    outcome = {"ok": False}

    def on_chunk(text: str) -> None:
        out.write(text)
        out.flush()

    def on_complete(final_text, tool_calls, usage=None) -> None:
        out.write("\n")
        for call in tool_calls or []:
            print(f"[tool call] {call.namespaced_tool_name} {call.args}", file=err)
            if call.parse_error:
                print(f"[tool call] {call.id}: {call.parse_error}", file=err)
        if usage is not None:
            logger.info("Usage: prompt=%s completion=%s total=%s",
                        usage.prompt_tokens, usage.completion_tokens, usage.total_tokens)
        outcome["ok"] = True
        done.set()

    def on_error(message: str) -> None:
        print(f"\n[error] {message}", file=err)
        done.set()

    request = StreamRequest(
        model_config=ModelConfig(
            model_id=args.model_id,
            system_prompt=args.system,
            show_thoughts=args.show_thoughts,
            budget_tokens=args.budget_tokens,
            reasoning_effort=args.reasoning_effort,
            thinking_level=args.thinking_level,
        ),
        conversation=[UserMessage(content=args.prompt, attachments=list(args.attach))],
        api_keys=ApiKeys.from_env(),
        on_chunk=on_chunk,
        on_complete=on_complete,
        on_error=on_error,
        enabled_toolsets=["web"] if args.web else [],
        custom_base_url=args.base_url,
        vertex=VertexSettings.from_env(),
    )
    stream_response(request)
    done.wait()
    return 0 if outcome["ok"] else 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    setup_observability()
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
